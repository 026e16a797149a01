"""Database engine, session management and the configured user repository."""

from functools import lru_cache
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backend.config import settings
from backend.models import Base
from backend.repositories.base import UserRepository
from backend.repositories.json_file import JsonFileUserRepository
from backend.repositories.sql import SqlUserRepository

engine = create_async_engine(settings.database_url, echo=settings.debug)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables() -> None:
    """Create tables if they don't exist."""
    database = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@lru_cache
def get_user_repository() -> UserRepository:
    """Return the repository selected by ``settings.storage_backend``."""
    if settings.storage_backend == "json":
        return JsonFileUserRepository(settings.users_json_path)
    return SqlUserRepository(async_session)
