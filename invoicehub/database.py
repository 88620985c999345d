from contextlib import asynccontextmanager
from typing import AsyncIterator
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
import structlog

from invoicehub.config import settings

logger = structlog.get_logger()

_SSL_MODES = {"require", "verify-ca", "verify-full"}


class Base(DeclarativeBase):
    pass


def split_ssl_mode(url: str) -> tuple[str, bool]:
    """Remove any sslmode query parameter from a DSN.

    asyncpg rejects sslmode in the URL, so SSL is passed through connect_args.
    Returns the cleaned URL and whether the parameter asked for SSL.
    """
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    wants_ssl = any(k == "sslmode" and v in _SSL_MODES for k, v in query)
    kept = [(k, v) for k, v in query if k != "sslmode"]
    return urlunsplit(parts._replace(query=urlencode(kept))), wants_ssl


_db_url, _url_wants_ssl = split_ssl_mode(settings.DATABASE_URL)

engine: AsyncEngine = create_async_engine(
    _db_url,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=30,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True,
    connect_args={"ssl": "require"} if (settings.DB_SSL or _url_wants_ssl) else {},
)

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One unit of work: commit on success, roll back on any error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db():
    async with session_scope() as session:
        yield session


async def init_db():
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("db_connected", ssl=bool(settings.DB_SSL or _url_wants_ssl))


async def close_db():
    await engine.dispose()
    logger.info("db_disconnected")
