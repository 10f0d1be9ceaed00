"""
业务异常定义
---------------------------------
功能：
- 统一的业务异常基类 `AppError`，携带返回给前端的 `code` 与可读的 `message`；
- 按来源划分子类：微信网关（GatewayError）、用户目录（IdentityError）、
  认证（AuthError）、请求参数（ValidationError）。

约定：
- `code = 0` 表示成功，因此任何异常的 code 都不为 0；
- 微信平台返回的 errcode 原样透传到 code，便于前端排查；
- 403 专用于账号被禁用，401 专用于缺失或无效的凭证。
"""

from typing import Optional


class AppError(Exception):
    """业务异常基类"""

    default_code = 500
    default_message = "服务器内部错误"

    def __init__(self, message: Optional[str] = None, code: Optional[int] = None):
        self.message = message or self.default_message
        self.code = code if code is not None else self.default_code
        super().__init__(self.message)

    def __repr__(self):
        return f"<{self.__class__.__name__}(code={self.code}, message={self.message})>"


class GatewayError(AppError):
    """微信网关异常：网络层失败，或透传的平台错误"""

    default_code = 502
    default_message = "微信服务调用失败"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[int] = None,
        errcode: Optional[int] = None,
        errmsg: Optional[str] = None,
    ):
        self.errcode = errcode
        self.errmsg = errmsg
        # 平台错误码优先透传
        super().__init__(message, errcode if errcode else code)


class IdentityError(AppError):
    """用户目录异常：数据库不可用，或唯一约束冲突重试后仍无法解决"""

    default_code = 500
    default_message = "用户数据处理失败"


class InsufficientPointsError(IdentityError):
    default_code = 4001
    default_message = "积分不足或用户不存在"


class AuthError(AppError):
    """认证异常：缺失凭证、凭证无效或已过期"""

    default_code = 401
    default_message = "未登录"


class AccountDisabledError(AuthError):
    default_code = 403
    default_message = "账号已被禁用"


class ValidationError(AppError):
    """请求参数缺失或格式错误"""

    default_code = 400
    default_message = "请求参数错误"
