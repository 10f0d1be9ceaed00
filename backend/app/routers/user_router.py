"""
用户路由（需要登录）
---------------------------------
功能：
- GET /user/info   - 获取完整用户信息
- PUT /user/info   - 更新用户信息（仅昵称、头像、真实姓名、公司名称）
- GET /user/points - 获取积分余额

使用：
- 请求头需携带 `Authorization: Bearer <token>`，鉴权由 get_current_user 完成
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..config.database import get_db
from ..models.auth_schema import UpdateProfileRequest
from ..models.response_schema import ApiResponse
from ..models.user import User
from ..services import user_service
from ..services.auth_service import get_current_user
from ..utils.exceptions import IdentityError

router = APIRouter()


@router.get("/info", response_model=ApiResponse)
async def get_info(current_user: User = Depends(get_current_user)):
    return ApiResponse.ok(current_user.to_profile())


@router.put("/info", response_model=ApiResponse)
async def update_info(
    req: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    更新用户信息

    请求体（均可选，未提供的字段保持不变）：
    - nickname / avatar / realName / companyName
    """
    user = await user_service.update_profile(
        db,
        current_user.id,
        nickname=req.nickname,
        avatar=req.avatar,
        real_name=req.realName,
        company_name=req.companyName,
    )
    if not user:
        raise IdentityError("用户不存在", code=404)
    return ApiResponse.ok(user.to_profile())


@router.get("/points", response_model=ApiResponse)
async def get_points(current_user: User = Depends(get_current_user)):
    return ApiResponse.ok({"points": current_user.points})
