"""
用户数据模型
---------------------------------
功能：
- 定义 User 表结构，手机号为唯一标识（B2B 场景：同一手机号即同一客户）
- openid / unionid 为微信平台范围内的标识，登录时若变化则覆盖
- level 决定商品价格档位（1-4），points 为积分余额（不可为负）
- status 为账号启用/禁用标记，禁用账号不允许登录

使用：
- 由 user_service 负责查找、创建与更新
- to_login_view() 为登录接口返回的最小用户信息
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime
from .base import Base


def utcnow() -> datetime:
    # 存「UTC 无时区」的 datetime
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserStatus(enum.IntEnum):
    """用户状态"""
    DISABLED = 0
    ENABLED = 1


class UserLevel(enum.IntEnum):
    """用户等级（1-4 级，不同等级对应不同价格）"""
    LEVEL_1 = 1
    LEVEL_2 = 2
    LEVEL_3 = 3
    LEVEL_4 = 4


def default_nickname(phone: str) -> str:
    return f"用户{phone[-4:]}"


class User(Base):
    """用户模型"""
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("points >= 0", name="points_non_negative"),
        CheckConstraint("level BETWEEN 1 AND 4", name="level_range"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True, comment="用户ID")
    phone = Column(String(20), unique=True, index=True, nullable=False, comment="手机号")
    openid = Column(String(64), nullable=True, index=True, comment="微信 openid")
    unionid = Column(String(64), nullable=True, comment="微信 unionid")
    nickname = Column(String(64), nullable=True, comment="昵称")
    avatar = Column(String(255), nullable=True, comment="头像URL")
    real_name = Column(String(32), nullable=True, comment="真实姓名")
    company_name = Column(String(128), nullable=True, comment="公司名称")
    level = Column(Integer, nullable=False, default=int(UserLevel.LEVEL_1), comment="价格等级 1-4")
    points = Column(Integer, nullable=False, default=0, comment="积分余额")
    status = Column(Integer, nullable=False, default=int(UserStatus.ENABLED), comment="状态 0禁用 1启用")
    created_at = Column(DateTime, default=utcnow, comment="创建时间")
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, comment="更新时间")
    last_login_at = Column(DateTime, nullable=True, comment="最后登录时间")

    @property
    def is_enabled(self) -> bool:
        return self.status == UserStatus.ENABLED

    def to_login_view(self) -> dict:
        """登录成功后返回给前端的最小用户信息（不含 openid 等平台标识）"""
        return {
            "id": self.id,
            "phone": self.phone,
            "nickname": self.nickname,
            "avatar": self.avatar,
            "level": self.level,
            "points": self.points,
            "companyName": self.company_name,
        }

    def to_profile(self) -> dict:
        """个人中心使用的完整用户信息"""
        return {
            "id": self.id,
            "phone": self.phone,
            "nickname": self.nickname,
            "avatar": self.avatar,
            "realName": self.real_name,
            "companyName": self.company_name,
            "level": self.level,
            "points": self.points,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
        }

    def __repr__(self):
        return f"<User(id={self.id}, phone={self.phone})>"
