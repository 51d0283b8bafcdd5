"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup; a malformed value fails fast with a clear error message.

Usage:
    from spaza_escrow.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from spaza_escrow.domain.enums import MobileCarrier


class Settings(BaseSettings):
    """Central configuration for Spaza Escrow."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_log_level: str = "INFO"

    # --- Database ---
    database_url: str = "sqlite:///spaza_escrow.db"
    db_echo_sql: bool = False

    # --- Escrow Defaults ---
    default_currency: str = "ZAR"
    default_description: str = "Monthly stock purchase"
    arbitrator_panel_size: int = Field(default=3, ge=1, le=15)

    # --- SMS ---
    sms_simulate: bool = True
    sms_carrier: MobileCarrier = MobileCarrier.SAFARICOM
    sms_sender_id: str = "SPAZAESCROW"
    sms_audit_log: str = "sms_audit.log"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
