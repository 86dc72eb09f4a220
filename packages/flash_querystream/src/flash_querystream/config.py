"""
Settings for Flash QueryStream.

Values come from ``QUERYSTREAM_``-prefixed environment variables or a local
``.env`` file.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueryStreamSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="QUERYSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Database ---
    DATABASE_URL: str | None = None
    ECHO: bool = False

    # --- Diagnostics ---
    # Log the SQL of every query materialized through to_query() at DEBUG.
    LOG_COMPILED_SQL: bool = False

    # --- Safety ---
    # Bulk DELETE/UPDATE without a WHERE clause is refused unless enabled.
    ALLOW_UNFILTERED_BULK: bool = False

    @field_validator("DATABASE_URL")
    @classmethod
    def normalize_database_url(cls, value: str | None) -> str | None:
        """Select the async driver for plain PostgreSQL URLs."""
        if value and value.startswith("postgresql://"):
            return value.replace("postgresql://", "postgresql+asyncpg://", 1)
        return value


# Singleton instance for core use
querystream_settings = QueryStreamSettings()
