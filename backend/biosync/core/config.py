from __future__ import annotations

import json
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    app_name: str = "BioSync API"
    app_version: str = "2.4.0"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite:///./biosync.db"

    cors_allowed_origins: str = "http://localhost:3000"

    rate_limit_read: str = "180/minute"
    rate_limit_mutating: str = "60/minute"
    rate_limit_enabled: bool = True

    # Attachments are embedded into the stored timeline, so keep them small.
    max_attachment_bytes: int = Field(default=2 * 1024 * 1024)

    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    gemini_model_name: str = "gemini-2.5-flash"
    advisory_temperature: float = 0.1
    advisory_max_retries: int = Field(default=1, ge=0)
    advisory_initial_delay_seconds: float = Field(default=1.0, ge=0)
    advisory_backoff_multiplier: float = Field(default=2.0, ge=1)
    advisory_cache_max_entries: int | None = Field(default=None, ge=1)

    rescue_base_url: str = "http://localhost:3000"
    default_theme: Literal["dark", "light"] = "dark"

    @property
    def cors_allowed_origins_list(self) -> list[str]:
        raw = self.cors_allowed_origins.strip()
        if not raw:
            return []
        if raw.startswith("["):
            parsed = json.loads(raw)
            if not isinstance(parsed, list):
                raise ValueError("CORS_ALLOWED_ORIGINS JSON must be an array")
            return [str(x) for x in parsed]
        return [part.strip() for part in raw.split(",") if part.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
