"""
数据库连接配置
---------------------------------
功能：
- 根据 `DATABASE_URL` 创建异步数据库引擎（默认 SQLite + aiosqlite）
- 提供数据库会话工厂
- 提供依赖注入函数供路由使用

使用：
- 在路由中通过 Depends(get_db) 获取数据库会话
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from .settings import DATABASE_URL

# 创建异步引擎
engine = create_async_engine(
    DATABASE_URL,
    echo=False,  # 生产环境设为 False
    pool_pre_ping=True,
)

# 创建异步会话工厂
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db():
    """
    依赖注入：获取数据库会话

    使用示例：
    @router.get("/example")
    async def example(db: AsyncSession = Depends(get_db)):
        ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
