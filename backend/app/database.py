"""
Cadastro API — Database Engine & Session Management
=====================================================

What:  The Database object (engine + session factory) and the per-request
       session dependency.
Why:   The datastore handle is built once at startup and injected into the
       app (app.state.database) instead of living in a module global. Tests
       build their own Database against SQLite and hand it to create_app().
How:   SQLAlchemy 2.x async engine on asyncpg. Each request gets its own
       AsyncSession, which is rolled back on error and always closed.

Connection Pooling:
    pool_size / max_overflow come from settings. pool_pre_ping catches stale
    connections after a database restart. SQLite (tests) uses SQLAlchemy's
    default pool, so pool arguments are only passed for PostgreSQL.
"""

import logging
import ssl
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import Request
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shares one MetaData)."""
    pass


# libpq spells TLS options as URL query parameters (?sslmode=require), which
# asyncpg.connect() rejects. They are removed from the engine URL and
# translated into an ssl.SSLContext by build_connect_args().
LIBPQ_SSL_QUERY_KEYS = ("ssl", "sslmode", "sslrootcert", "sslcert", "sslkey", "sslcrl", "sslpassword")


def _query_value(url: URL, key: str) -> Optional[str]:
    value = url.query.get(key)
    if isinstance(value, tuple):
        return value[-1] if value else None
    return value


def build_engine_url(settings: Settings) -> str:
    """DATABASE_URL without the libpq TLS parameters."""
    if not settings.is_postgres:
        return settings.database_url
    url = make_url(settings.database_url).difference_update_query(LIBPQ_SSL_QUERY_KEYS)
    return url.render_as_string(hide_password=False)


def build_connect_args(settings: Settings) -> Dict[str, Any]:
    """
    Driver-level arguments for asyncpg.

    TLS is decided by ?sslmode= in DATABASE_URL when present, else by DB_SSL:
        sslmode=disable (or DB_SSL=false)   → plain connection
        require / prefer / allow (or DB_SSL=true)
                                            → encrypted; certificate checked only
                                              when PG_SSL_REJECT_UNAUTHORIZED=true
        verify-ca                           → certificate checked, hostname not
        verify-full                         → certificate and hostname checked

    ?sslrootcert= is loaded as the trusted CA bundle.
    """
    if not settings.is_postgres:
        return {}

    connect_args: Dict[str, Any] = {
        "timeout": settings.db_timeout_seconds,
        "command_timeout": settings.db_timeout_seconds,
    }

    url = make_url(settings.database_url)
    sslmode = (_query_value(url, "sslmode") or _query_value(url, "ssl") or "").lower()
    if sslmode in ("disable", "false") or (not sslmode and not settings.db_ssl):
        return connect_args

    verify = sslmode in ("verify-ca", "verify-full") or settings.pg_ssl_reject_unauthorized
    ssl_context = ssl.create_default_context(cafile=_query_value(url, "sslrootcert"))
    if not verify:
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
    elif sslmode == "verify-ca":
        ssl_context.check_hostname = False
    connect_args["ssl"] = ssl_context
    return connect_args


class Database:
    """
    Owns the async engine and the session factory.

    Lifecycle:
        1. Constructed by create_app() (or injected by tests)
        2. Optionally create_tables() during startup
        3. Sessions handed out per request through get_db_session()
        4. dispose() on shutdown closes every pooled connection
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        pool_pre_ping: bool = True,
        connect_args: Optional[Dict[str, Any]] = None,
        echo: bool = False,
    ):
        engine_kwargs: Dict[str, Any] = {
            "echo": echo,
            "pool_pre_ping": pool_pre_ping,
        }
        if connect_args:
            engine_kwargs["connect_args"] = connect_args
        if not url.startswith("sqlite"):
            if pool_size is not None:
                engine_kwargs["pool_size"] = pool_size
            if max_overflow is not None:
                engine_kwargs["max_overflow"] = max_overflow
            engine_kwargs["pool_recycle"] = 3600

        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        # expire_on_commit=False: attributes stay readable after commit, which
        # the service relies on when building the response from the ORM object
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            build_engine_url(settings),
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            connect_args=build_connect_args(settings),
            echo=settings.log_level == "DEBUG",
        )

    async def create_tables(self) -> None:
        """Create every table registered on Base.metadata (no-op if present)."""
        # Model modules register themselves on import
        from app.models import usuario  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The service commits its own writes. This dependency guarantees the other
    half of the contract: any exception rolls the transaction back, and the
    connection always goes back to the pool.
    """
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
