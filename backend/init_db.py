"""
数据库初始化脚本
---------------------------------
功能：
- 创建 users 表（手机号唯一约束、积分非负约束）

使用：
python backend/init_db.py
（数据库地址取自环境变量 DATABASE_URL，默认 backend/sql_app.db）
"""

import asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from app.config.settings import DATABASE_URL

# 导入 Base 和所有模型（这会自动注册到 Base.metadata）
from app.models.base import Base
from app.models.user import User  # noqa: F401


async def init_database():
    """初始化数据库表"""
    print("正在初始化数据库...")

    engine = create_async_engine(DATABASE_URL, echo=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await engine.dispose()

    print("✅ 数据库表创建成功！")
    print(f"   数据库位置：{DATABASE_URL}")
    print(f"   已创建表：{', '.join(Base.metadata.tables.keys())}")


if __name__ == "__main__":
    asyncio.run(init_database())
