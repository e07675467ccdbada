"""Runtime configuration read from environment variables.

Secrets are not configured here; they are fetched from SSM Parameter Store
by SSMService under ``/rentcore/{environment}/...``.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field


class Settings(BaseModel):
    """Settings for the reservation core."""

    model_config = ConfigDict(frozen=True)

    environment: str = "dev"
    table_prefix: str = "rentcore-dev"
    payment_timeout_hours: int = Field(default=24, ge=1)
    max_write_attempts: int = Field(default=3, ge=1)
    default_currency: str = "EUR"
    admin_ids: frozenset[str] = frozenset()

    @classmethod
    def from_env(cls) -> "Settings":
        environment = os.getenv("ENVIRONMENT", "dev")
        admin_ids = os.getenv("RENTCORE_ADMIN_IDS", "")
        return cls(
            environment=environment,
            # Allow override via DYNAMODB_TABLE_PREFIX for testing
            table_prefix=os.getenv("DYNAMODB_TABLE_PREFIX", f"rentcore-{environment}"),
            payment_timeout_hours=int(os.getenv("RENTCORE_PAYMENT_TIMEOUT_HOURS", "24")),
            max_write_attempts=int(os.getenv("RENTCORE_MAX_WRITE_ATTEMPTS", "3")),
            default_currency=os.getenv("RENTCORE_DEFAULT_CURRENCY", "EUR"),
            admin_ids=frozenset(a.strip() for a in admin_ids.split(",") if a.strip()),
        )


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings.from_env()
