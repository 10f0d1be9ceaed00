"""
统一返回模型（ApiResponse）
---------------------------------
功能：
- 定义后端接口统一返回结构：code、message、data。
- `code = 0` 表示成功；失败时 `data` 固定为 null，`message` 为可读的错误描述。
- 提供便捷的 `ok`、`error` 与 `from_exc` 工厂方法，便于路由与服务快速构建返回体。
"""

from typing import Any, Optional
from pydantic import BaseModel

from ..utils.exceptions import AppError


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "ok"
    data: Optional[Any] = None

    @classmethod
    def ok(cls, data: Any | None = None, message: str = "ok") -> "ApiResponse":
        return cls(code=0, message=message, data=data)

    @classmethod
    def error(cls, message: str = "error", code: int = -1) -> "ApiResponse":
        return cls(code=code, message=message, data=None)

    @classmethod
    def from_exc(cls, exc: AppError) -> "ApiResponse":
        return cls.error(message=exc.message, code=exc.code)
