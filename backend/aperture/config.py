"""
Aperture application configuration.

Loads settings from environment variables with sensible defaults for local
development.  Uses Pydantic BaseSettings so every value can be overridden via
an environment variable or a ``.env`` file placed next to the backend root.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Aperture backend.

    All attributes can be overridden through environment variables of the same
    name (case-insensitive).  For example, set ``SERVICENOW_INSTANCE`` in the
    shell or in a ``.env`` file to point the record source at a real CMDB.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ─────────────────────────────────────────────────────────
    APP_NAME: str = "Aperture"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False

    # ── Logging ─────────────────────────────────────────────────────────────
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_JSON: bool = False

    # ── CORS ────────────────────────────────────────────────────────────────
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # ── Record Source ───────────────────────────────────────────────────────
    RECORD_SOURCE: Literal["servicenow", "memory"] = "servicenow"
    CATALOG_PATH: Optional[str] = None

    # ── ServiceNow ──────────────────────────────────────────────────────────
    SERVICENOW_INSTANCE: Optional[str] = None
    SERVICENOW_USERNAME: Optional[str] = None
    SERVICENOW_PASSWORD: Optional[str] = None
    SERVICENOW_TIMEOUT_SECONDS: float = 30.0
    SERVICENOW_PAGE_LIMIT: int = 100

    # ── Fetch caps ──────────────────────────────────────────────────────────
    # Browse loads walk at most this many portfolios and services each.
    MAX_PORTFOLIOS: int = 10
    MAX_SERVICES_PER_PORTFOLIO: int = 20

    # ── Session store ───────────────────────────────────────────────────────
    MAX_SESSIONS: int = 200
    SESSION_IDLE_TTL_SECONDS: float = 3600.0  # 0 disables expiry

    # ── Validators ──────────────────────────────────────────────────────────

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: object) -> list[str]:
        """Accept a comma-separated string *or* an actual list."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return list(value)  # type: ignore[arg-type]

    @field_validator("SERVICENOW_INSTANCE", mode="after")
    @classmethod
    def strip_instance_scheme(cls, value: Optional[str]) -> Optional[str]:
        """Store the bare instance host (``acme.service-now.com``)."""
        if value is None:
            return None
        host = value.strip()
        for prefix in ("https://", "http://"):
            if host.startswith(prefix):
                host = host[len(prefix):]
        return host.rstrip("/") or None

    @property
    def servicenow_configured(self) -> bool:
        """``True`` when instance and credentials are all present."""
        return bool(
            self.SERVICENOW_INSTANCE
            and self.SERVICENOW_USERNAME
            and self.SERVICENOW_PASSWORD
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings.

    Using ``lru_cache`` ensures the ``.env`` file is read only once and the
    same ``Settings`` instance is reused across the entire process.
    """
    return Settings()
