"""
数据库连接模块

- engine / AsyncSessionLocal: Web 进程共享的连接池
- build_engine: 按驱动选择连接池参数（Celery 任务使用 NullPool）
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from alembic import command
from alembic.config import Config
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ratestuff.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).resolve().parents[1] / "alembic.ini"


def normalize_database_url(url: str) -> str:
    """postgresql:// -> postgresql+asyncpg://"""
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def build_engine(url: str, null_pool: bool = False) -> AsyncEngine:
    """创建异步引擎，SQLite 不接受连接池大小参数"""
    if null_pool:
        options = {"poolclass": pool.NullPool}
    elif url.startswith("sqlite"):
        options = {}
    else:
        options = {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}
    return create_async_engine(url, echo=False, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


database_url = normalize_database_url(settings.database_url)
engine = build_engine(database_url)
AsyncSessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """SQLAlchemy 基类"""
    pass


async def get_db():
    """FastAPI 依赖：请求结束提交，异常回滚"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_session(
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> AsyncIterator[AsyncSession]:
    """脚本与后台任务使用的会话上下文"""
    async with session_factory() as session:
        yield session


def run_migrations() -> None:
    """alembic upgrade head"""
    alembic_cfg = Config(str(ALEMBIC_INI))
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")


async def init_db():
    """建表并执行迁移"""
    # 注册模型到 Base.metadata
    from ratestuff.models import brand_account, brand_otp, brand_login_nonce  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await asyncio.to_thread(run_migrations)
    logger.info("Database initialised")
