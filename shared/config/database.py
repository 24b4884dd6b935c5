from functools import wraps

from fastapi import Request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from shared.errors import StoreError

from .settings import Settings

# Every service keeps its tables in its own schema to simulate microservice isolation
SCHEMAS = ("order_schema", "product_schema", "auth_schema")

Base = declarative_base()


def build_engine(settings: Settings) -> AsyncEngine:
    kwargs = {"echo": settings.sql_echo, "pool_pre_ping": True}
    if settings.database_url.startswith("postgresql+asyncpg"):
        kwargs["pool_timeout"] = settings.db_pool_timeout_seconds
        kwargs["connect_args"] = {"command_timeout": settings.db_command_timeout_seconds}
    return create_async_engine(settings.database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def get_db(request: Request):
    async with request.app.state.session_factory() as session:
        yield session


def translate_store_errors(func):
    """Re-raise database failures from a repository call as StoreError.

    IntegrityError passes through untouched so callers can react to
    constraint violations.
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            raise StoreError(f"{func.__qualname__} failed: {exc}") from exc
    return wrapper
