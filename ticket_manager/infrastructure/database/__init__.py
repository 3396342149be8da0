"""
Database Infrastructure
=======================

Manages database connections, engine configuration and the per-provider
connection settings.

Uses SQLAlchemy 2.0 async engines. Each supported backend has its own config
type; the type of the config object is what selects the ticket provider.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


# ========== Provider configs ==========

@dataclass
class DatabaseConfig:
    """Connection settings shared by every provider."""

    host: str = "localhost"
    port: int = 0
    database: str = "tickets"
    username: Optional[str] = None
    password: Optional[str] = None
    url_override: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 10
    query: dict = field(default_factory=dict)

    drivername = ""

    def url(self) -> URL:
        """Async SQLAlchemy URL for this config."""
        if self.url_override:
            return make_url(self.url_override)
        return URL.create(
            self.drivername,
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port or None,
            database=self.database,
            query=self.query,
        )


@dataclass
class PSQLDb(DatabaseConfig):
    """PostgreSQL via asyncpg."""

    port: int = 5432
    drivername = "postgresql+asyncpg"

    def url(self) -> URL:
        url = super().url()
        # asyncpg expects ``ssl`` rather than libpq's ``sslmode``
        if "sslmode" in url.query:
            query = dict(url.query)
            query["ssl"] = query.pop("sslmode")
            url = url.set(query=query)
        return url


@dataclass
class MySQLDb(DatabaseConfig):
    """MySQL via aiomysql."""

    port: int = 3306
    drivername = "mysql+aiomysql"

    def __post_init__(self) -> None:
        self.query.setdefault("charset", "utf8mb4")


@dataclass
class SQLDb(DatabaseConfig):
    """SQL Server via aioodbc."""

    port: int = 1433
    driver: str = "ODBC Driver 18 for SQL Server"
    trust_server_certificate: bool = True
    drivername = "mssql+aioodbc"

    def __post_init__(self) -> None:
        self.query.setdefault("driver", self.driver)
        if self.trust_server_certificate:
            self.query.setdefault("TrustServerCertificate", "yes")


# ========== Engine lifecycle ==========

def build_engine(config: DatabaseConfig, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``config``; the ticket manager disposes it on stop."""
    url = config.url()
    options = {"echo": echo, "pool_pre_ping": True}
    if not url.get_backend_name().startswith("sqlite"):
        options.update(pool_size=config.pool_size, max_overflow=config.max_overflow)
    return create_async_engine(url, **options)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading after commit
        autoflush=False,
    )
