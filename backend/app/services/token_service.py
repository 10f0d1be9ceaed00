"""
会话凭证服务（JWT）
---------------------------------
功能：
- 登录成功后签发 JWT，载荷为 {userId, phone, openid, iat, exp}，有效期固定（默认 2 小时）
- 校验 JWT：内部保留 有效 / 已过期 / 格式错误 三种结果，对外只暴露 有效载荷 或 None
- 不校验签名的解码，仅用于排查问题，禁止用于任何鉴权判断

使用：
- 登录时：token_service.issue(TokenPayload(...))
- 鉴权时：token_service.verify(token)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from jose import ExpiredSignatureError, JWTError, jwt

from ..config.settings import JWT_SECRET_KEY, JWT_ALGORITHM, JWT_EXPIRE_SECONDS
from ..utils.logger import log


@dataclass(frozen=True)
class TokenPayload:
    """Token 中携带的身份信息"""
    user_id: int
    phone: str
    openid: Optional[str] = None


@dataclass(frozen=True)
class TokenValid:
    payload: TokenPayload


@dataclass(frozen=True)
class TokenExpired:
    pass


@dataclass(frozen=True)
class TokenMalformed:
    reason: str = ""


TokenCheck = Union[TokenValid, TokenExpired, TokenMalformed]


class TokenService:
    def __init__(
        self,
        secret: str = JWT_SECRET_KEY,
        algorithm: str = JWT_ALGORITHM,
        expire_seconds: int = JWT_EXPIRE_SECONDS,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_seconds = expire_seconds

    def issue(self, payload: TokenPayload, now: Optional[datetime] = None) -> str:
        """
        签发 JWT Token

        Args:
            payload: 身份信息
            now: 签发时间（默认当前 UTC 时间）

        Returns:
            JWT Token 字符串
        """
        issued_at = now or datetime.now(timezone.utc)
        claims = {
            "userId": payload.user_id,
            "phone": payload.phone,
            "openid": payload.openid,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.expire_seconds),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def inspect(self, token: str) -> TokenCheck:
        """校验签名与有效期，返回带标签的结果。"""
        if not token:
            return TokenMalformed("empty token")
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            return TokenExpired()
        except JWTError as e:
            return TokenMalformed(str(e))

        user_id = claims.get("userId")
        phone = claims.get("phone")
        if not isinstance(user_id, int) or not phone:
            return TokenMalformed("missing identity claims")
        return TokenValid(TokenPayload(user_id=user_id, phone=phone, openid=claims.get("openid")))

    def verify(self, token: str) -> Optional[TokenPayload]:
        """
        校验 JWT Token，从不抛出异常

        Returns:
            有效时返回身份信息；签名错误、格式错误或已过期均返回 None
        """
        result = self.inspect(token)
        if isinstance(result, TokenValid):
            return result.payload
        if isinstance(result, TokenExpired):
            log.info("Token 已过期")
        else:
            log.info(f"Token 验证失败: {result.reason}")
        return None

    @staticmethod
    def decode(token: str) -> Optional[dict]:
        """不校验签名地解析 Token，仅用于日志与排查。"""
        try:
            return jwt.get_unverified_claims(token)
        except JWTError:
            return None


token_service = TokenService()
