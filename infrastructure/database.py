"""
Database engine and session factory.

The entry point (FastAPI lifespan, Celery task) builds one Database and
passes it down; nothing here connects at import time.
"""
from typing import Any, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from core.logging_config import get_logger
from infrastructure.models import Base


logger = get_logger(__name__)


def _build_async_url(database_url: str) -> str:
    """Make sure the URL names an async driver."""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"Unsupported database driver: {drivername}. Use an async driver in database.url")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


class Database:
    """Owns the async engine and the session factory built on it."""

    def __init__(self, url: str, *, echo: bool = False, **engine_kwargs: Any) -> None:
        self.url = _build_async_url(url)
        self.engine: AsyncEngine = create_async_engine(self.url, echo=echo, **engine_kwargs)
        self.session_factory = async_sessionmaker(bind=self.engine, expire_on_commit=False)

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_created")

    async def drop_tables(self) -> None:
        """Drops everything. Tests only."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def create_database(url: Optional[str] = None, *, echo: Optional[bool] = None) -> Database:
    """Build a Database from settings, with optional overrides."""
    from core.config import settings

    kwargs: dict[str, Any] = {}
    target = url or settings.database.url
    if not make_url(target).drivername.startswith("sqlite"):
        kwargs["pool_size"] = settings.database.pool_size
        kwargs["pool_pre_ping"] = True
    return Database(
        target,
        echo=settings.database.echo if echo is None else echo,
        **kwargs,
    )
