"""
数据库会话管理

- engine：连接 BaaS 自带的 Postgres（asyncpg），连接池参数来自配置
- SessionLocal：异步会话工厂，请求内与审计后台任务共用
- get_db：FastAPI 依赖，每个请求一个会话

本地调试可以把 DATABASE_URL 指向 sqlite+aiosqlite，此时不设置连接池参数。

使用方式（在 FastAPI 路由中）：
    from app.db.session import get_db

    @router.get("/api/documents")
    async def list_documents(db: AsyncSession = Depends(get_db)):
        ...
"""

from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import Settings, get_settings
from app.db.base import Base


def build_engine(settings: Settings) -> AsyncEngine:
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite":
        return create_async_engine(url, echo=settings.db_echo)
    return create_async_engine(
        url,
        echo=settings.db_echo,
        pool_pre_ping=True,     # 取连接前先探活，避免使用被 BaaS 断开的连接
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=30,
        pool_recycle=settings.db_pool_recycle_seconds,
    )


engine = build_engine(get_settings())

# expire_on_commit=False：提交后仍可读取属性；服务层在回滚后不再访问 ORM 对象
SessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """每个请求一个独立会话，请求结束后自动关闭"""
    async with SessionLocal() as session:
        yield session


async def init_models() -> None:
    """
    建表（仅开发环境）

    生产环境的表由 Alembic 迁移维护，create_all 不会修改已存在的表。
    """
    from app import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
