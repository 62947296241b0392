"""Database base configuration."""
import os
import ssl
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def normalize_async_pg_url(url: str) -> str:
    """Ensure URL uses asyncpg driver; cloud often gives postgresql:// (sync)."""
    u = (url or "").strip()
    if u.startswith("postgresql://"):
        return u.replace("postgresql://", "postgresql+asyncpg://", 1)
    return u


def _ssl_context_no_verify() -> ssl.SSLContext:
    """SSL context that skips certificate verification."""
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def async_pg_connect_args(url: str) -> dict:
    """asyncpg does not accept sslmode; translate sslmode=require into an ssl connect arg.
    Set DATABASE_SSL_VERIFY=true to enable strict certificate verification."""
    qs = parse_qs(urlparse(url).query, keep_blank_values=True)
    if qs.get("sslmode") != ["require"]:
        return {}
    verify = os.environ.get("DATABASE_SSL_VERIFY", "false").strip().lower()
    if verify in ("true", "1"):
        return {"ssl": True}
    return {"ssl": _ssl_context_no_verify()}


def async_pg_url_without_sslmode(url: str) -> str:
    """Return URL with sslmode removed."""
    parsed = urlparse(url)
    qs = parse_qs(parsed.query, keep_blank_values=True)
    qs.pop("sslmode", None)
    return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))


def create_engine_from_url(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Async engine for the notification store (asyncpg in production, aiosqlite in tests)."""
    db_url = normalize_async_pg_url(url)
    connect_args = dict(kwargs.pop("connect_args", {}) or {})
    if db_url.startswith("postgresql+asyncpg://"):
        connect_args.update(async_pg_connect_args(db_url))
        db_url = async_pg_url_without_sslmode(db_url)
    return create_async_engine(db_url, echo=echo, future=True, connect_args=connect_args, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_all(engine: AsyncEngine, metadata: Optional[object] = None) -> None:
    """Create tables (dev/test). Production schema is managed by Alembic."""
    from notification_sync.infra.db import models  # noqa: F401  registers models on Base

    async with engine.begin() as conn:
        await conn.run_sync((metadata or Base.metadata).create_all)
