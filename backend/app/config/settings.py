"""
后端基础配置（微信小程序登录 + .env 自动加载）
---------------------------------
功能：
- 定义允许的前端跨域源。
- 定义微信小程序接入配置：`WX_APP_ID`、`WX_APP_SECRET`、`WX_API_BASE`，
  以及网关调用的超时、重试次数与 access_token 提前过期时间。
- 定义 JWT 会话凭证配置：密钥、算法、有效期（默认 2 小时）。
- 定义数据库连接地址 `DATABASE_URL`。

使用说明：
- 请在部署环境中设置 `WX_APP_ID` 与 `WX_APP_SECRET`（来自微信公众平台），也可通过 `.env` 注入；
- 生产环境必须设置 `JWT_SECRET_KEY` 为强密钥；
- 默认使用 SQLite（aiosqlite），如需 MySQL 可设置 `DATABASE_URL=mysql+aiomysql://...`。
"""

from pathlib import Path
import os
from dotenv import find_dotenv, load_dotenv


# 注意：settings.py 位于 project_root/backend/app/config/
# 因此项目根目录应为 `parents[3]`
PROJECT_ROOT = Path(__file__).resolve().parents[3]
BACKEND_DIR = PROJECT_ROOT / "backend"

# 自动加载项目根目录 .env（若存在）。
# 注意：`override=False`，即环境变量已存在时不被 .env 覆盖，方便在生产环境直接通过系统环境变量注入。
_found = find_dotenv(filename=".env", usecwd=True)
if _found:
    load_dotenv(_found, override=False)
else:
    load_dotenv(str(PROJECT_ROOT / ".env"), override=False)

# 允许跨域的前端地址
_origins_csv = os.getenv("FRONTEND_ORIGINS", "").strip()
if _origins_csv:
    FRONTEND_ORIGINS = [o.strip() for o in _origins_csv.split(",") if o.strip()]
else:
    FRONTEND_ORIGINS = [
        os.getenv("FRONTEND_ORIGIN", "http://localhost:5173"),
        "http://localhost:5174",
    ]

# --- 数据库配置 ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./backend/sql_app.db")

# --- 微信小程序配置 ---
WX_APP_ID = os.getenv("WX_APP_ID", "")
# 从环境变量或 .env 中读取，不要在代码中硬编码真实密钥。
WX_APP_SECRET = os.getenv("WX_APP_SECRET", "")
WX_API_BASE = os.getenv("WX_API_BASE", "https://api.weixin.qq.com")
# 单次网关请求超时（秒）
WX_HTTP_TIMEOUT = float(os.getenv("WX_HTTP_TIMEOUT", 10))
# 网络层失败的最大尝试次数（含首次）
WX_RETRY_ATTEMPTS = int(os.getenv("WX_RETRY_ATTEMPTS", 3))
# access_token 提前过期的安全窗口（秒），默认提前 5 分钟
WX_TOKEN_EXPIRY_MARGIN = int(os.getenv("WX_TOKEN_EXPIRY_MARGIN", 300))

# --- JWT 认证配置 ---
# JWT 密钥：用于签名和验证 Token，生产环境必须修改为强密钥
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-secret-key-please-change-in-production")
# JWT 算法
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
# Token 过期时间（秒），默认 2 小时
JWT_EXPIRE_SECONDS = int(os.getenv("JWT_EXPIRE_SECONDS", 7200))
