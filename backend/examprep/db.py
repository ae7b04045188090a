from collections.abc import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from fastapi import Depends
from sqlalchemy.orm import DeclarativeBase

from . import config


class Base(DeclarativeBase):
    pass


def _engine_kwargs(url: str) -> dict:
    kwargs = {"echo": config.SQL_ECHO}
    # search_path is an asyncpg server setting; other drivers reject it
    if config.SCHEMA_SEARCH_PATH and url.startswith("postgresql+asyncpg"):
        kwargs["connect_args"] = {"server_settings": {"search_path": config.SCHEMA_SEARCH_PATH}}
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return kwargs


engine = create_async_engine(config.DATABASE_URL, **_engine_kwargs(config.DATABASE_URL))
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables():

    from examprep.models import user_model, test_model, billing_model, attempt_model  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


async def get_user_db(session: AsyncSession = Depends(get_async_session)):
    from examprep.models.user_model import User
    from fastapi_users.db import SQLAlchemyUserDatabase
    yield SQLAlchemyUserDatabase(session, User)
