# -*- coding: utf-8 -*-
"""
微信小程序服务端接口网关
---------------------------------
功能：
- 封装微信平台的三个远程接口：
  1) `/cgi-bin/token`：获取小程序全局 access_token（带进程内缓存）；
  2) `/sns/jscode2session`：登录 code 换取 openid / session_key / unionid；
  3) `/wxa/business/getuserphonenumber`：手机号授权 code 换取手机号。
- 每个接口的结果都是显式的带标签结果：成功数据类或 `PlatformError`，
  调用方必须自行区分；只有网络层失败（超时、连接失败、5xx、响应非 JSON）才抛出 `GatewayError`。

使用说明：
- 需在环境中设置 `WX_APP_ID` 与 `WX_APP_SECRET`；
- 网络层失败按指数退避重试，次数由 `WX_RETRY_ATTEMPTS` 控制；平台业务错误不重试；
- access_token 缓存为单槽位，刷新通过 asyncio.Lock 串行化，同一时刻最多只有一个刷新请求。
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config.settings import (
    WX_API_BASE,
    WX_APP_ID,
    WX_APP_SECRET,
    WX_HTTP_TIMEOUT,
    WX_RETRY_ATTEMPTS,
    WX_TOKEN_EXPIRY_MARGIN,
)
from ..utils.exceptions import GatewayError
from ..utils.logger import log, mask_phone

TOKEN_PATH = "/cgi-bin/token"
CODE2SESSION_PATH = "/sns/jscode2session"
PHONE_NUMBER_PATH = "/wxa/business/getuserphonenumber"

# access_token 失效 / 过期
ACCESS_TOKEN_INVALID_CODES = {40001, 42001}
DEFAULT_ACCESS_TOKEN_TTL = 7200


@dataclass(frozen=True)
class PlatformError:
    """微信平台返回的业务错误（errcode / errmsg 原样保留）"""
    errcode: int
    errmsg: str = ""


@dataclass(frozen=True)
class SessionInfo:
    """code2Session 成功结果"""
    openid: Optional[str]
    session_key: Optional[str] = None
    unionid: Optional[str] = None


@dataclass(frozen=True)
class PhoneInfo:
    """getuserphonenumber 成功结果"""
    phone_number: Optional[str]
    pure_phone_number: Optional[str] = None
    country_code: Optional[str] = None
    watermark: Dict[str, Any] = field(default_factory=dict)


SessionResult = Union[SessionInfo, PlatformError]
PhoneResult = Union[PhoneInfo, PlatformError]


@dataclass(frozen=True)
class CachedAccessToken:
    token: str
    expires_at: float


class AccessTokenCache:
    """进程内单槽位 access_token 缓存。

    - 进程启动时为空；
    - 每次刷新整体替换槽位，不做字段级的读-改-写；
    - `lock` 供刷新方串行化使用（single-flight）。
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._slot: Optional[CachedAccessToken] = None
        self._clock = clock
        self.lock = asyncio.Lock()

    def get(self) -> Optional[str]:
        slot = self._slot
        if slot is not None and self._clock() < slot.expires_at:
            return slot.token
        return None

    def put(self, token: str, ttl: float) -> None:
        self._slot = CachedAccessToken(token=token, expires_at=self._clock() + ttl)

    def invalidate(self, token: Optional[str] = None) -> None:
        """清空槽位；若指定 token，仅当槽位仍是该 token 时才清空，避免覆盖别人刚刷新的值。"""
        slot = self._slot
        if slot is None:
            return
        if token is None or slot.token == token:
            self._slot = None


class _ServerError(Exception):
    """微信接口返回 5xx，视为网络层失败，可重试"""


def _platform_error(data: Dict[str, Any]) -> Optional[PlatformError]:
    errcode = data.get("errcode")
    if not errcode:
        return None
    try:
        code = int(errcode)
    except (TypeError, ValueError) as e:
        log.error(f"微信接口返回的 errcode 无法解析：{errcode!r}")
        raise GatewayError(message="微信服务响应格式错误") from e
    if code == 0:
        return None
    return PlatformError(errcode=code, errmsg=str(data.get("errmsg") or ""))


class WxService:
    """微信服务"""

    def __init__(
        self,
        app_id: str = WX_APP_ID,
        app_secret: str = WX_APP_SECRET,
        base_url: str = WX_API_BASE,
        timeout: float = WX_HTTP_TIMEOUT,
        retry_attempts: int = WX_RETRY_ATTEMPTS,
        expiry_margin: int = WX_TOKEN_EXPIRY_MARGIN,
        backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
        token_cache: Optional[AccessTokenCache] = None,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.retry_attempts = max(1, retry_attempts)
        self.expiry_margin = expiry_margin
        self.backoff = backoff
        self.token_cache = token_cache or AccessTokenCache()
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
        )

    async def _request_json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """发送请求并解析 JSON 对象；网络层失败按指数退避重试，最终失败抛出 GatewayError。"""
        retryer = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.backoff, min=0, max=8),
            retry=retry_if_exception_type((httpx.TransportError, _ServerError)),
            before_sleep=before_sleep_log(log, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retryer:
                with attempt:
                    response = await self._client.request(method, path, **kwargs)
                    if response.status_code >= 500:
                        raise _ServerError(f"HTTP {response.status_code}")
        except (httpx.TransportError, _ServerError) as e:
            log.error(f"微信接口 {path} 请求失败：{e!r}")
            raise GatewayError(message="微信服务暂时不可用，请稍后重试") from e

        if response.status_code != 200:
            log.error(f"微信接口 {path} 返回异常状态码：{response.status_code}")
            raise GatewayError(message="微信服务响应异常")

        try:
            data = response.json()
        except ValueError as e:
            log.error(f"微信接口 {path} 返回非 JSON 内容")
            raise GatewayError(message="微信服务响应格式错误") from e
        if not isinstance(data, dict):
            log.error(f"微信接口 {path} 返回的 JSON 不是对象：{type(data).__name__}")
            raise GatewayError(message="微信服务响应格式错误")
        return data

    async def get_access_token(self) -> str:
        """获取 access_token：缓存有效时直接返回，否则刷新（同一时刻只有一个刷新在进行）。"""
        token = self.token_cache.get()
        if token:
            return token

        async with self.token_cache.lock:
            # 等锁期间可能已被其他请求刷新
            token = self.token_cache.get()
            if token:
                return token

            log.info("access_token 缓存为空或已过期，开始刷新")
            data = await self._request_json(
                "GET",
                TOKEN_PATH,
                params={
                    "grant_type": "client_credential",
                    "appid": self.app_id,
                    "secret": self.app_secret,
                },
            )
            err = _platform_error(data)
            if err:
                log.error(f"获取 access_token 失败：errcode={err.errcode}, errmsg={err.errmsg}")
                raise GatewayError(
                    message=f"获取 access_token 失败: {err.errmsg}",
                    errcode=err.errcode,
                    errmsg=err.errmsg,
                )
            token = data.get("access_token")
            if not token:
                log.error("获取 access_token 失败：响应中缺少 access_token")
                raise GatewayError(message="获取 access_token 失败: 响应无效")

            try:
                expires_in = int(data.get("expires_in") or DEFAULT_ACCESS_TOKEN_TTL)
            except (TypeError, ValueError) as e:
                log.error(f"access_token 的 expires_in 无法解析：{data.get('expires_in')!r}")
                raise GatewayError(message="微信服务响应格式错误") from e
            ttl = max(expires_in - self.expiry_margin, 0)
            self.token_cache.put(token, ttl)
            log.info(f"access_token 刷新成功，缓存 {ttl}s")
            return token

    async def exchange_login_code(self, code: str) -> SessionResult:
        """通过 wx.login 的 code 换取 openid / session_key / unionid。"""
        data = await self._request_json(
            "GET",
            CODE2SESSION_PATH,
            params={
                "appid": self.app_id,
                "secret": self.app_secret,
                "js_code": code,
                "grant_type": "authorization_code",
            },
        )
        err = _platform_error(data)
        if err:
            log.warning(f"code2Session 平台错误：errcode={err.errcode}, errmsg={err.errmsg}")
            return err
        return SessionInfo(
            openid=data.get("openid"),
            session_key=data.get("session_key"),
            unionid=data.get("unionid"),
        )

    async def exchange_phone_code(self, phone_code: str) -> PhoneResult:
        """通过手机号授权 code 换取手机号；access_token 失效时刷新后重试一次。"""
        err: Optional[PlatformError] = None
        data: Dict[str, Any] = {}
        for attempt in range(2):
            access_token = await self.get_access_token()
            data = await self._request_json(
                "POST",
                PHONE_NUMBER_PATH,
                params={"access_token": access_token},
                json={"code": phone_code},
            )
            err = _platform_error(data)
            if err and err.errcode in ACCESS_TOKEN_INVALID_CODES and attempt == 0:
                log.warning(f"access_token 已失效（errcode={err.errcode}），刷新后重试")
                self.token_cache.invalidate(access_token)
                continue
            break

        if err:
            log.warning(f"getuserphonenumber 平台错误：errcode={err.errcode}, errmsg={err.errmsg}")
            return err

        info = data.get("phone_info") or {}
        if not isinstance(info, dict):
            log.error(f"getuserphonenumber 返回的 phone_info 不是对象：{type(info).__name__}")
            raise GatewayError(message="微信服务响应格式错误")
        result = PhoneInfo(
            phone_number=info.get("phoneNumber"),
            pure_phone_number=info.get("purePhoneNumber"),
            country_code=info.get("countryCode"),
            watermark=info.get("watermark") or {},
        )
        log.info(f"获取手机号成功：{mask_phone(result.phone_number)}")
        return result

    async def close(self):
        """关闭 HTTP 客户端连接"""
        await self._client.aclose()


wx_service = WxService()
