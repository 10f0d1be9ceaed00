"""
后端入口（FastAPI 应用）
---------------------------------
功能：
- 创建 FastAPI 应用并配置 CORS，允许小程序调试工具与管理后台跨域访问。
- 暴露健康检查接口 `/healthz`。
- 挂载认证与用户两个路由模块，路径分别为 `/auth` 与 `/user`。
- 注册统一异常处理：所有业务异常都返回 {code, message, data: null}，
  内部错误细节只写日志，不回显给前端。

部署：
- `uvicorn app.main:app --app-dir backend`，生产环境建议结合反向代理（如 Nginx）。
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers.auth_router import router as auth_router
from .routers.user_router import router as user_router
from .services.wx_service import wx_service
from .config.settings import FRONTEND_ORIGINS
from .models.response_schema import ApiResponse
from .utils.exceptions import AppError, AuthError
from .utils.logger import log


app = FastAPI(title="Mini Program API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_ORIGINS,
    # 通配来源不能与凭证同时放行
    allow_credentials="*" not in FRONTEND_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _envelope(body: ApiResponse, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(AppError)
async def _app_error_handler(request: Request, exc: AppError):
    """业务异常：鉴权类返回对应 HTTP 状态码，其余以返回体中的 code 为准。"""
    log.warning(f"{request.method} {request.url.path} 失败：{exc!r}")
    status_code = exc.code if isinstance(exc, AuthError) else 200
    if exc.code == 404:
        status_code = 404
    return _envelope(ApiResponse.from_exc(exc), status_code)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError):
    log.warning(f"{request.method} {request.url.path} 参数错误：{exc.errors()}")
    return _envelope(ApiResponse.error(message="请求参数错误", code=400))


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception):
    log.exception(f"{request.method} {request.url.path} 发生未预期错误")
    return _envelope(ApiResponse.error(message="服务器内部错误", code=500), 500)


@app.get("/healthz")
async def healthz():
    """健康检查接口：用于确认服务已启动且可访问。"""
    return {"status": "ok"}


app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(user_router, prefix="/user", tags=["user"])


@app.on_event("shutdown")
async def _close_clients():
    """关闭微信网关的 HTTP 连接池。"""
    await wx_service.close()
