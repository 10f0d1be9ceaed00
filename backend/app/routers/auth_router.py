"""
认证路由
---------------------------------
功能：
- POST /auth/phoneLogin - 手机号一键登录（code + phoneCode）
- GET  /auth/logout     - 退出登录（无服务端会话，直接确认）

使用：
- 前端调用 wx.login 获取 code、getPhoneNumber 获取 phoneCode 后请求登录
- 登录成功后返回 JWT Token，前端保存并在后续请求中以 `Authorization: Bearer <token>` 携带
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..config.database import get_db
from ..models.auth_schema import PhoneLoginRequest
from ..models.response_schema import ApiResponse
from ..services.auth_service import AuthService, get_auth_service

router = APIRouter()


@router.post("/phoneLogin", response_model=ApiResponse)
async def phone_login(
    req: PhoneLoginRequest,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """
    手机号一键登录

    请求体：
    - code: wx.login 返回的登录 code
    - phoneCode: 手机号授权返回的 code

    返回：
    - token: JWT Token
    - expiresIn: 有效期（秒）
    - user: {id, phone, nickname, avatar, level, points, companyName}
    """
    return await auth.phone_login(db, req.code, req.phoneCode)


@router.get("/logout", response_model=ApiResponse)
async def logout():
    """退出登录：Token 无服务端状态，前端丢弃即可。"""
    return ApiResponse.ok()
