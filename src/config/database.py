"""Database configuration for the tenancy store.

SQLite backs development and tests; PostgreSQL backs production, where
every operation runs as one SERIALIZABLE transaction. Values come from
``DB_*`` environment variables (or ``.env``).
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ISOLATION_LEVELS = ("SERIALIZABLE", "REPEATABLE READ", "READ COMMITTED")
IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


class DatabaseSettings(BaseSettings):
    """
    Where the tenancy tables live and how connections are pooled.

    Either set ``DB_URL`` to a full SQLAlchemy URL, or set ``DB_DRIVER``
    plus the server parts:

        DB_DRIVER=postgresql+psycopg2
        DB_HOST=db.internal
        DB_NAME=tenancy
        DB_USER=tenancy
        DB_PASSWORD=secret
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL, overrides everything below")
    driver: str = Field(default="sqlite", description="sqlite or postgresql+psycopg2")

    host: str = Field(default="localhost")
    port: int = Field(default=5432, ge=1, le=65535)
    name: str = Field(default="tenancy")
    user: str = Field(default="")
    password: str = Field(default="")

    sqlite_path: Path = Field(default=Path("data/tenancy.db"), description="File used when driver is sqlite")

    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1, description="Seconds to wait for a free connection")
    pool_recycle: int = Field(default=1800, ge=60, description="Seconds before a connection is replaced")
    pool_pre_ping: bool = Field(default=True)

    # SQLite serializes writers itself and ignores this
    isolation_level: str = Field(default="SERIALIZABLE")

    echo_sql: bool = Field(default=False, description="Log every SQL statement")

    @field_validator("isolation_level")
    @classmethod
    def normalize_isolation_level(cls, value: str) -> str:
        level = " ".join(value.upper().replace("_", " ").split())
        if level not in ISOLATION_LEVELS:
            raise ValueError(f"isolation_level must be one of {', '.join(ISOLATION_LEVELS)}")
        return level

    @property
    def is_sqlite(self) -> bool:
        return (self.url or self.driver).lower().startswith("sqlite")

    @property
    def is_memory(self) -> bool:
        """In-memory SQLite: one shared connection, gone with the process."""
        return self.url in IN_MEMORY_SQLITE_URLS

    @property
    def sync_url(self) -> str:
        """SQLAlchemy URL for the synchronous engine."""
        if self.url:
            return self.url

        if self.is_sqlite:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{self.sqlite_path.absolute()}"

        credentials = self.user
        if credentials and self.password:
            credentials = f"{credentials}:{self.password}"
        if credentials:
            credentials += "@"
        return f"{self.driver}://{credentials}{self.host}:{self.port}/{self.name}"

    def pool_options(self) -> Dict[str, Any]:
        """QueuePool arguments for a server database."""
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "pool_pre_ping": self.pool_pre_ping,
        }


@lru_cache()
def get_database_settings() -> DatabaseSettings:
    """Database settings from the environment, loaded once per process."""
    return DatabaseSettings()
