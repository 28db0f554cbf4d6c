from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pushworker.core.config import Settings


def resolve_database_url(settings: Settings) -> str:
    # Keep the store credential out of DATABASE_URL so it can be injected from a secret store.
    url = make_url(settings.database_url)
    if settings.database_password is not None:
        url = url.set(password=settings.database_password.get_secret_value())
    return url.render_as_string(hide_password=False)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    database_url = resolve_database_url(settings)
    engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    # One sequential worker invocation needs only a couple of connections.
    if not database_url.startswith("sqlite"):
        engine_kwargs["pool_size"] = 2
        engine_kwargs["max_overflow"] = 2
        engine_kwargs["pool_timeout"] = 30
        engine_kwargs["pool_recycle"] = 1800
    return create_async_engine(database_url, **engine_kwargs)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)
