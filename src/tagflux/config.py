"""Store configuration using Pydantic Settings.

Usage:
    from tagflux import StoreConfig

    # Load from environment variables (TAGFLUX_*)
    config = StoreConfig()

    # Or override with explicit values
    config = StoreConfig(name="cart", strict=True, max_retries=0)
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreConfig(BaseSettings):
    """Configuration for a Store.

    Attributes:
        name: Human-readable store name, used in logs and fork names.
        strict: Reject transitions whose output tag is outside the fixed tag set.
        max_error_history: Number of error records kept before the oldest is evicted.
        max_retries: Extra attempts for a failing async effect (0 = single attempt).
        retry_delay: Seconds to wait between async attempts.
        max_snapshots: Named snapshots kept before the least recently used is evicted.

    Environment Variables:
        TAGFLUX_NAME
        TAGFLUX_STRICT
        TAGFLUX_MAX_ERROR_HISTORY
        TAGFLUX_MAX_RETRIES
        TAGFLUX_RETRY_DELAY
        TAGFLUX_MAX_SNAPSHOTS
    """

    model_config = SettingsConfigDict(
        env_prefix="TAGFLUX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = "store"
    strict: bool = False
    max_error_history: int = Field(default=50, ge=1)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=0.0, ge=0.0)
    max_snapshots: int = Field(default=10, ge=1)
