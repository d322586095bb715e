"""Mini README: Centralised configuration for Project Ledger.

Structure:
    * StoreBackend - enumeration of the supported document store backends.
    * LedgerSettings - pydantic settings model read from the environment.
    * get_settings - cached accessor for environment-aware settings.

Usage:
    Import ``get_settings`` to read ``PROJECTLEDGER_*`` environment variables
    (or a local ``.env`` file). Validation runs once per process; tests build
    ``LedgerSettings(...)`` directly instead of touching the cache.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreBackend(str, Enum):
    """Document store implementations selectable at start-up."""

    MEMORY = "memory"
    MONGO = "mongo"


class LedgerSettings(BaseSettings):
    """Runtime configuration for the ledger API and dashboard."""

    model_config = SettingsConfigDict(
        env_prefix="PROJECTLEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = Field(
        "development",
        description="Environment label controlling debug toggles and logging levels.",
    )
    log_level: str = Field("INFO", description="Root logging level.")
    interface_host: str = Field(
        "0.0.0.0",
        description="Network interface for the API and dashboard to bind to.",
    )
    interface_port: int = Field(
        8000,
        description="Port the API and dashboard expose.",
        ge=1,
        le=65535,
    )
    store_backend: StoreBackend = Field(
        StoreBackend.MEMORY,
        description="Which document store to use: 'memory' or 'mongo'.",
    )
    mongo_uri: str = Field(
        "mongodb://localhost:27017",
        description="Connection string used by the MongoDB backend.",
    )
    mongo_database: str = Field("projectledger", description="MongoDB database name.")
    store_timeout_ms: int = Field(
        5000,
        description="Upper bound for server selection and socket operations.",
        ge=100,
    )
    conflict_retries: int = Field(
        3,
        description="Re-read attempts when a concurrent write bumps a group's revision.",
        ge=0,
        le=20,
    )
    default_page_size: int = Field(10, ge=1, description="Transactions per page by default.")
    max_page_size: int = Field(100, ge=1, description="Largest page a caller may request.")
    currency_code: str = Field("INR", description="Currency shown on the dashboard.")

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        """Accept any casing for log levels."""

        return value.strip().upper()

    @model_validator(mode="after")
    def _check_page_sizes(self) -> "LedgerSettings":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> LedgerSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return LedgerSettings()
