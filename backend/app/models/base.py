"""
数据库模型基类
---------------------------------
功能：
- 提供统一的 Base 供所有模型继承，确保所有表注册到同一个 metadata
- 统一约束命名规则，便于日后在 MySQL 上做迁移

使用：
from .base import Base

class MyModel(Base):
    __tablename__ = "my_table"
    ...
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
