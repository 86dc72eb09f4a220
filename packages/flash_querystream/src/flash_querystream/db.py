from collections.abc import AsyncGenerator
from typing import Any, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .builder import QueryBuilder
from .config import querystream_settings

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def init_db(
    database_url: Optional[str] = None,
    *,
    echo: Optional[bool] = None,
    **engine_kwargs: Any,
) -> None:
    """
    Initialize the asynchronous SQLAlchemy engine and session factory.

    Args:
        database_url: The connection URL. Defaults to
            ``QUERYSTREAM_DATABASE_URL``.
        echo: If True, SQLAlchemy will log all emitted SQL. Defaults to
            ``QUERYSTREAM_ECHO``.
        **engine_kwargs: Additional keyword arguments passed to `create_async_engine`.

    Example:
        >>> init_db("sqlite+aiosqlite:///db.sqlite3")
    """
    global _engine, _session_factory

    database_url = database_url or querystream_settings.DATABASE_URL
    if not database_url:
        msg = "No database URL given and QUERYSTREAM_DATABASE_URL is not set."
        raise RuntimeError(msg)

    options: dict[str, Any] = {
        "echo": querystream_settings.ECHO if echo is None else echo,
        **engine_kwargs,
    }
    if database_url.startswith("sqlite"):
        options.setdefault("connect_args", {"check_same_thread": False})

    _engine = create_async_engine(database_url, **options)
    _session_factory = async_sessionmaker(
        bind=_engine,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


async def close_db() -> None:
    """
    Dispose of the database engine and clean up resources.
    """
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_query_builder() -> AsyncGenerator[QueryBuilder, None]:
    """
    Async generator that yields a QueryBuilder over a fresh session.

    Example:
        >>> async for qb in get_query_builder():
        ...     products = await qb.stream(Product).to_query().fetch()
    """
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    async with _session_factory() as session:
        yield QueryBuilder(session)
