"""Runtime configuration for the rate comparison engine.

Relies on pydantic-settings so that environment variables (prefixed with
``RATE_COMPARE_``) can override defaults. See `.env.example` for common values.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rate_compare.rates.models import BASE_CURRENCY, DEFAULT_LOCALE, SUPPORTED_CURRENCIES

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Captures runtime configuration for aggregation and the reference transport."""

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("data/logs"), description="Directory for the rotating log file")

    channel_timeout_s: float = Field(
        default=8.0, description="Upper bound for a single channel fetch before it counts as timed out"
    )
    cache_ttl_s: float = Field(default=300.0, description="Lifetime of cached aggregation results")
    base_currency: str = Field(default=BASE_CURRENCY, description="Currency assumed when a channel omits one")
    default_locale: str = Field(default=DEFAULT_LOCALE)

    scraper_base_url: str = Field(
        default="https://scraper.ratecompare.com",
        description="Base URL of the scraping service that extracts channel quotes",
    )
    scraper_api_key: Optional[str] = Field(default=None, description="Bearer token for the scraping service")
    scraper_timeout_s: float = Field(default=10.0, description="HTTP timeout for scraping service calls")
    user_agent: str = Field(default="rate-compare/0.1.0")
    requests_per_minute: int = Field(default=30, description="Per-channel request budget")
    burst_limit: int = Field(default=5, description="Per-channel requests allowed within one second")
    scraper_max_retries: int = Field(default=2, description="Retries after an unreachable or rate-limited answer")
    scraper_retry_delay_s: float = Field(default=0.5, description="Delay before the first retry")
    scraper_retry_backoff: float = Field(default=2.0, description="Multiplier applied to the delay per retry")

    property_file: Optional[Path] = Field(
        default=None, description="TOML file describing the property and its channel listings"
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_COMPARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    @field_validator("log_dir", mode="before")
    def _expand_log_dir(cls, value: str | Path) -> Path:  # noqa: D401
        if isinstance(value, Path):
            return value
        return Path(value).expanduser()

    @field_validator("property_file", mode="before")
    def _expand_property_file(cls, value: str | Path | None) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @field_validator("channel_timeout_s", "cache_ttl_s", "scraper_timeout_s")
    def _validate_positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts and TTLs must be positive")
        return value

    @field_validator("scraper_max_retries")
    def _validate_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("scraper_max_retries must not be negative")
        return value

    @field_validator("scraper_retry_delay_s", "scraper_retry_backoff")
    def _validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("retry delays must not be negative")
        return value

    @field_validator("requests_per_minute", "burst_limit")
    def _validate_positive_budget(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("request budgets must be positive")
        return value

    @field_validator("base_currency")
    def _validate_currency(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in SUPPORTED_CURRENCIES:
            raise ValueError(f"base_currency must be one of {', '.join(SUPPORTED_CURRENCIES)}")
        return value

    @field_validator("scraper_base_url")
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def ensure_directories(self) -> None:
        """Create directories that must exist at runtime."""
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def scraper_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.scraper_api_key:
            headers["Authorization"] = f"Bearer {self.scraper_api_key}"
        else:
            logger.debug("No scraping service API key configured; sending unauthenticated requests")
        return headers
