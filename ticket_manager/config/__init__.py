"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DatabaseProvider = Literal["postgresql", "mysql", "sqlserver"]
CacheBackend = Literal["memory", "redis"]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticket-manager", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_provider: DatabaseProvider = Field(
        default="postgresql",
        description="Relational backend: postgresql, mysql or sqlserver"
    )
    database_url: Optional[str] = Field(
        default=None,
        description="Full async SQLAlchemy URL; overrides the db_* fields when set"
    )
    db_host: str = Field(default="localhost", description="Database host")
    db_port: Optional[int] = Field(default=None, description="Database port (provider default when unset)")
    db_name: str = Field(default="tickets", description="Database name")
    db_user: Optional[str] = Field(default=None, description="Database user")
    db_password: Optional[str] = Field(default=None, description="Database password")
    db_driver: str = Field(
        default="ODBC Driver 18 for SQL Server",
        description="ODBC driver name used by the SQL Server provider"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)
    apply_migrations_automatically: bool = Field(
        default=True,
        description="Create the ticket schema on startup when it is not recorded yet"
    )

    # ========== Cache ==========
    cache_backend: CacheBackend = Field(default="memory", description="Cache backend: memory or redis")
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    cache_namespace: str = Field(default="TicketService", description="Prefix for every cache key")
    cache_ttl_seconds: int = Field(default=300, description="Cache entry lifetime", ge=1)

    # ========== Attachments ==========
    upload_dir: Path = Field(default=Path("UploadedFiles"), description="Root folder for ticket attachments")
    max_files_per_upload: int = Field(default=2, description="Max files accepted in one upload", ge=1)

    # ========== Pagination ==========
    lazy_load_page_size: int = Field(default=10, description="Batch size for lazy ticket loading", ge=1)

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    def database_config(self):
        """Build the provider-specific database config from the flat settings."""
        from ticket_manager.infrastructure.database import MySQLDb, PSQLDb, SQLDb

        common = dict(
            host=self.db_host,
            database=self.db_name,
            username=self.db_user,
            password=self.db_password,
            url_override=self.database_url,
            pool_size=self.db_pool_size,
            max_overflow=self.db_max_overflow,
        )
        if self.database_provider == "mysql":
            return MySQLDb(port=self.db_port or 3306, **common)
        if self.database_provider == "sqlserver":
            return SQLDb(port=self.db_port or 1433, driver=self.db_driver, **common)
        return PSQLDb(port=self.db_port or 5432, **common)


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Ticket enumerations ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "Open"
    IN_PROGRESS = "InProgress"
    IN_REVIEW = "InReview"
    ON_HOLD = "OnHold"
    PENDING = "Pending"
    CLOSED = "Closed"


class Priority(str, Enum):
    """Ticket priority levels."""
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class Tags(str, Enum):
    """Ticket categories."""
    BILLING = "Billing"
    URGENT = "Urgent"
    FEATURE_REQUEST = "FeatureRequest"
    BUG_REPORT = "BugReport"
    SALES_INQUIRY = "SalesInquiry"
    PRODUCT_ISSUE = "ProductIssue"
    CUSTOMER_CARE = "CustomerCare"


class SearchMode(str, Enum):
    """How a search term is matched against text columns."""
    CONTAINS = "Contains"
    STARTS_WITH = "StartsWith"
    ENDS_WITH = "EndsWith"
    EXACT = "Exact"


# ========== Lists for validation ==========

VALID_STATUSES = [s.value for s in TicketStatus]
VALID_PRIORITIES = [p.value for p in Priority]
VALID_TAGS = [t.value for t in Tags]
SORT_FIELDS = ["name", "title", "assignee", "createdat", "updatedat"]
