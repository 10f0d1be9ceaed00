import logging
import os

_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, _level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
# httpx 默认会在 INFO 级别打印完整 URL（含 appid/secret 查询参数）
logging.getLogger("httpx").setLevel(logging.WARNING)

log = logging.getLogger("app")


def mask_phone(phone: str | None) -> str:
    """脱敏手机号：138****8888，用于日志输出。"""
    if not phone:
        return ""
    if len(phone) >= 11:
        return f"{phone[:3]}****{phone[-4:]}"
    return "****" + phone[-4:]
