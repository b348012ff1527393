"""
Application configuration loaded from environment variables.

All configuration is validated at startup to fail fast on misconfiguration.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PostgresDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    All settings are loaded from environment variables prefixed with
    INVOICING_. Use .env file for local development.
    """

    model_config = SettingsConfigDict(
        env_prefix="INVOICING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: PostgresDsn = Field(
        description="PostgreSQL connection string with asyncpg driver"
    )

    # Invoice numbering
    invoice_number_prefix: str = Field(
        default="INV",
        pattern=r"^[A-Z]{2,4}$",
        description="Prefix for generated invoice numbers",
    )
    proration_number_prefix: str = Field(
        default="PRO",
        pattern=r"^[A-Z]{2,4}$",
        description="Prefix for numbers of prorated invoices",
    )
    number_allocation_attempts: int = Field(
        default=5,
        ge=1,
        le=100,
        description="How many generated numbers to try before giving up on a collision",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level for the CLI",
    )

    debug: bool = Field(
        default=False,
        description="Echo SQL statements and enable verbose errors",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
