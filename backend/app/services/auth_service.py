"""
认证服务
---------------------------------
功能：
- 手机号一键登录的完整流程编排（状态机）：
  START → EXCHANGING_SESSION → EXCHANGING_PHONE → RESOLVING_IDENTITY
        → CHECKING_STATUS → ISSUING_TOKEN → DONE，任一环节失败进入 FAILED
- 在边界处捕获所有异常并转换为统一返回体 {code, message, data: null}
- 提供 get_current_user 依赖注入函数，供需要登录的路由使用

使用：
- 登录：await auth_service.phone_login(db, code, phone_code)
- 鉴权：current_user: User = Depends(get_current_user)
"""

import enum
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer
from fastapi.security.http import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from ..config.database import get_db
from ..models.response_schema import ApiResponse
from ..models.user import User
from ..utils.exceptions import (
    AccountDisabledError,
    AppError,
    AuthError,
    GatewayError,
    IdentityError,
    ValidationError,
)
from ..utils.logger import log, mask_phone
from . import user_service
from .token_service import TokenPayload, TokenService, token_service
from .wx_service import PlatformError, WxService, wx_service


class LoginState(str, enum.Enum):
    START = "START"
    EXCHANGING_SESSION = "EXCHANGING_SESSION"
    EXCHANGING_PHONE = "EXCHANGING_PHONE"
    RESOLVING_IDENTITY = "RESOLVING_IDENTITY"
    CHECKING_STATUS = "CHECKING_STATUS"
    ISSUING_TOKEN = "ISSUING_TOKEN"
    DONE = "DONE"
    FAILED = "FAILED"


class LoginFlow:
    """单次登录请求的状态记录，仅用于按顺序推进与日志排查。"""

    def __init__(self):
        self.state = LoginState.START

    def advance(self, state: LoginState):
        log.debug(f"phoneLogin: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, exc: Exception):
        log.warning(f"phoneLogin 失败于 {self.state.value}: {exc!r}")
        self.state = LoginState.FAILED


class AuthService:
    """认证服务类"""

    def __init__(self, wx: WxService = wx_service, tokens: TokenService = token_service):
        self.wx = wx
        self.tokens = tokens

    async def phone_login(
        self,
        db: AsyncSession,
        code: Optional[str],
        phone_code: Optional[str],
    ) -> ApiResponse:
        """
        手机号一键登录

        Args:
            db: 数据库会话
            code: wx.login 返回的登录 code
            phone_code: 手机号授权返回的 code

        Returns:
            ApiResponse: 成功时 data 为 {token, expiresIn, user}；失败时 data 为 null
        """
        flow = LoginFlow()
        try:
            data = await self._run_phone_login(flow, db, code, phone_code)
        except AppError as e:
            flow.fail(e)
            return ApiResponse.from_exc(e)
        except Exception as e:
            flow.fail(e)
            log.exception("phoneLogin 发生未预期错误")
            return ApiResponse.error(message="登录失败，请稍后重试", code=500)
        return ApiResponse.ok(data)

    async def _run_phone_login(
        self,
        flow: LoginFlow,
        db: AsyncSession,
        code: Optional[str],
        phone_code: Optional[str],
    ) -> dict:
        if not code or not phone_code:
            raise ValidationError("缺少必要参数 code 或 phoneCode")

        # 1. code 换取 openid
        flow.advance(LoginState.EXCHANGING_SESSION)
        session = await self.wx.exchange_login_code(code)
        if isinstance(session, PlatformError):
            raise GatewayError(
                message=f"微信登录失败: {session.errmsg}",
                errcode=session.errcode,
                errmsg=session.errmsg,
            )
        if not session.openid:
            raise GatewayError(message="微信登录失败: 未获取到 openid")

        # 2. phoneCode 换取手机号
        flow.advance(LoginState.EXCHANGING_PHONE)
        phone_info = await self.wx.exchange_phone_code(phone_code)
        if isinstance(phone_info, PlatformError):
            raise GatewayError(
                message=f"获取手机号失败: {phone_info.errmsg}",
                errcode=phone_info.errcode,
                errmsg=phone_info.errmsg,
            )
        phone = phone_info.pure_phone_number or phone_info.phone_number
        if not phone:
            raise GatewayError(message="获取手机号失败: 未获取到手机号")

        # 3. 按手机号查找或创建用户
        flow.advance(LoginState.RESOLVING_IDENTITY)
        user = await user_service.find_or_create_by_phone(
            db, phone, openid=session.openid, unionid=session.unionid
        )

        # 4. 禁用账号不签发 token
        flow.advance(LoginState.CHECKING_STATUS)
        if not await user_service.check_status(db, user.id):
            raise AccountDisabledError()

        # 5. 签发 token
        flow.advance(LoginState.ISSUING_TOKEN)
        token = self.tokens.issue(TokenPayload(user_id=user.id, phone=user.phone, openid=user.openid))

        flow.advance(LoginState.DONE)
        log.info(f"手机号登录成功: id={user.id}, phone={mask_phone(user.phone)}")
        return {
            "token": token,
            "expiresIn": self.tokens.expire_seconds,
            "user": user.to_login_view(),
        }


auth_service = AuthService()


def get_auth_service() -> AuthService:
    return auth_service


def get_token_service() -> TokenService:
    return token_service


# HTTP Bearer 认证方案（缺失时由 get_current_user 返回统一的 401）
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """
    获取当前登录用户（依赖注入函数）

    用法：
    @router.get("/protected")
    async def protected_route(current_user: User = Depends(get_current_user)):
        return {"user_id": current_user.id}

    Raises:
        AuthError: 未携带 Token（401）或 Token 无效/过期（401）
        IdentityError: 用户不存在（404）
        AccountDisabledError: 账号已禁用（403）
    """
    if not credentials or not credentials.credentials:
        raise AuthError("未登录")

    payload = tokens.verify(credentials.credentials)
    if not payload:
        raise AuthError("token 无效或已过期")

    user = await user_service.get_by_id(db, payload.user_id)
    if not user:
        raise IdentityError("用户不存在", code=404)
    if not user.is_enabled:
        raise AccountDisabledError()
    return user
