"""
用户服务（手机号为唯一标识）
---------------------------------
功能：
- 按手机号 / openid / ID 查找用户
- 按手机号查找或创建用户（登录核心逻辑），并发首次登录时以手机号唯一约束为准
- 更新 openid、最后登录时间、个人资料
- 原子化的积分增减（余额不足时整体不生效）
- 检查账号状态

约定：
- 所有函数接收调用方的 AsyncSession，由本模块负责提交或回滚；
- 数据库异常统一转换为 IdentityError，不把驱动层异常暴露给路由。
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User, UserLevel, UserStatus, default_nickname, utcnow
from ..utils.exceptions import IdentityError, InsufficientPointsError
from ..utils.logger import log, mask_phone

# 创建用户遇到手机号唯一约束冲突时的最大尝试次数
CREATE_CONFLICT_RETRIES = 3

PROFILE_FIELDS = ("nickname", "avatar", "real_name", "company_name")


async def get_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    return await db.get(User, user_id, populate_existing=True)


async def get_by_phone(db: AsyncSession, phone: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.phone == phone))
    return result.scalar_one_or_none()


async def get_by_openid(db: AsyncSession, openid: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.openid == openid).limit(1))
    return result.scalars().first()


def _next_login_time(user: User):
    """最后登录时间必须严格递增，即使系统时钟没有前进。"""
    now = utcnow()
    if user.last_login_at is not None and now <= user.last_login_at:
        now = user.last_login_at + timedelta(microseconds=1)
    return now


def _apply_openid(user: User, openid: Optional[str], unionid: Optional[str] = None) -> None:
    if openid and user.openid != openid:
        log.info(f"更新用户 openid: id={user.id}")
        user.openid = openid
    if unionid and user.unionid != unionid:
        user.unionid = unionid


async def update_openid(
    db: AsyncSession,
    user_id: int,
    openid: str,
    unionid: Optional[str] = None,
) -> Optional[User]:
    """覆盖用户的 openid（及 unionid）；用户不存在时返回 None。"""
    try:
        user = await get_by_id(db, user_id)
        if not user:
            return None
        _apply_openid(user, openid, unionid)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.error(f"更新 openid 失败：{e}")
        raise IdentityError("用户数据库暂时不可用") from e
    return user


async def touch_last_login(db: AsyncSession, user: User) -> User:
    """记录一次登录：最后登录时间严格递增，连同会话中未提交的修改一起提交。"""
    user.last_login_at = _next_login_time(user)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.error(f"更新最后登录时间失败：{e}")
        raise IdentityError("用户数据库暂时不可用") from e
    return user


async def _stamp_login(
    db: AsyncSession,
    user: User,
    openid: Optional[str],
    unionid: Optional[str],
) -> User:
    _apply_openid(user, openid, unionid)
    return await touch_last_login(db, user)


async def _create(
    db: AsyncSession,
    phone: str,
    openid: Optional[str],
    unionid: Optional[str],
) -> Optional[User]:
    """尝试插入新用户；手机号冲突时回滚并返回 None。"""
    user = User(
        phone=phone,
        openid=openid,
        unionid=unionid,
        nickname=default_nickname(phone),
        level=int(UserLevel.LEVEL_1),
        points=0,
        status=int(UserStatus.ENABLED),
        last_login_at=utcnow(),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return None
    log.info(f"新用户创建成功: id={user.id}, phone={mask_phone(phone)}")
    return await get_by_id(db, user.id)


async def find_or_create_by_phone(
    db: AsyncSession,
    phone: str,
    openid: Optional[str] = None,
    unionid: Optional[str] = None,
) -> User:
    """
    根据手机号查找或创建用户

    - 已存在：openid 不同则覆盖，并更新最后登录时间；
    - 不存在：以默认昵称、等级 1、积分 0 创建；
    - 并发首次登录时两个请求都可能判定"不存在"，插入冲突的一方重新读取已存在的记录。

    Raises:
        IdentityError: 数据库不可用，或冲突重试后仍无法得到用户
    """
    try:
        user = await get_by_phone(db, phone)
        if user:
            log.info(f"用户已存在: id={user.id}, phone={mask_phone(phone)}")
            return await _stamp_login(db, user, openid, unionid)

        for attempt in range(1, CREATE_CONFLICT_RETRIES + 1):
            log.info(f"创建新用户: phone={mask_phone(phone)}")
            user = await _create(db, phone, openid, unionid)
            if user:
                return user

            log.warning(f"创建用户冲突（第 {attempt} 次），手机号已被并发请求创建，重新读取: phone={mask_phone(phone)}")
            user = await get_by_phone(db, phone)
            if user:
                return await _stamp_login(db, user, openid, unionid)
    except SQLAlchemyError as e:
        await db.rollback()
        log.error(f"查找或创建用户失败：{e}")
        raise IdentityError("用户数据库暂时不可用") from e

    raise IdentityError("创建用户失败，请重试")


async def update_points(db: AsyncSession, user_id: int, delta: int) -> int:
    """
    原子化更新积分，返回更新后的余额

    余额 + delta < 0 或用户不存在时，更新影响 0 行，抛出 InsufficientPointsError，余额保持不变。
    """
    stmt = (
        update(User)
        .where(User.id == user_id, User.points + delta >= 0)
        .values(points=User.points + delta)
        .execution_options(synchronize_session=False)
    )
    try:
        result = await db.execute(stmt)
        if result.rowcount == 0:
            await db.rollback()
            raise InsufficientPointsError()
        await db.commit()
        user = await get_by_id(db, user_id)
    except SQLAlchemyError as e:
        await db.rollback()
        log.error(f"更新积分失败：{e}")
        raise IdentityError("用户数据库暂时不可用") from e

    log.info(f"用户积分变更: id={user_id}, delta={delta}, balance={user.points}")
    return user.points


async def check_status(db: AsyncSession, user_id: int) -> bool:
    """账号是否为启用状态；用户不存在视为不可用。"""
    try:
        user = await get_by_id(db, user_id)
    except SQLAlchemyError as e:
        await db.rollback()
        log.error(f"查询账号状态失败：{e}")
        raise IdentityError("用户数据库暂时不可用") from e
    return bool(user and user.is_enabled)


async def update_profile(db: AsyncSession, user_id: int, **fields) -> Optional[User]:
    """更新个人资料，仅处理 PROFILE_FIELDS 中且值不为 None 的字段。"""
    user = await get_by_id(db, user_id)
    if not user:
        return None

    changes = {k: v for k, v in fields.items() if k in PROFILE_FIELDS and v is not None}
    if not changes:
        return user

    for key, value in changes.items():
        setattr(user, key, value)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        log.error(f"更新用户信息失败：{e}")
        raise IdentityError("用户数据库暂时不可用") from e
    return await get_by_id(db, user_id)
