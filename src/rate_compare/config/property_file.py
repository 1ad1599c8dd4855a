"""TOML property file loader for manual runs."""
from __future__ import annotations

import re
import tomllib
from datetime import date, timedelta
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

from rate_compare.rates.models import PropertyConfig
from rate_compare.rates.validation import create_property_config

if TYPE_CHECKING:  # pragma: no cover
    from rate_compare.config.settings import Settings

_RELATIVE_DATE = re.compile(r"^(?P<count>\d+)\s*(?P<unit>[dDwWmM])$")


class PropertySection(BaseModel):
    """Identity of the compared property."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)

    @field_validator("id", "name", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class SettingsSection(BaseModel):
    """Display preferences handed to the host."""

    display_mode: Optional[str] = None
    theme: Optional[str] = None
    locale: Optional[str] = None


class RuntimeSection(BaseModel):
    """Per-property overrides of the runtime settings."""

    channel_timeout_s: Optional[float] = Field(default=None, gt=0)
    cache_ttl_s: Optional[float] = Field(default=None, gt=0)
    log_level: Optional[str] = None


class StaySection(BaseModel):
    """Default stay used when the CLI is run without explicit dates."""

    check_in: str = Field(default="+14d", description="ISO date or relative offset such as '+14d'")
    nights: int = Field(default=7, ge=1)

    def resolve(self, today: Optional[date] = None) -> tuple[date, date]:
        start = parse_check_in(self.check_in, today=today)
        return start, start + timedelta(days=self.nights)


class PropertyFile(BaseModel):
    """Top-level structure decoded from TOML."""

    property: PropertySection
    channels: dict[str, str] = Field(default_factory=dict)
    settings: SettingsSection = Field(default_factory=SettingsSection)
    runtime: RuntimeSection = Field(default_factory=RuntimeSection)
    stay: StaySection = Field(default_factory=StaySection)

    @field_validator("channels", mode="before")
    @classmethod
    def _drop_blank_listings(cls, value: object) -> object:
        if isinstance(value, dict):
            return {key: ref for key, ref in value.items() if not (isinstance(ref, str) and not ref.strip())}
        return value

    @classmethod
    def load(cls, path: Path) -> "PropertyFile":
        """Load a property file from TOML."""
        data = tomllib.loads(path.read_text())
        return cls.model_validate(data)

    def to_config(self) -> PropertyConfig:
        settings = {key: value for key, value in self.settings.model_dump().items() if value is not None}
        return create_property_config(
            id=self.property.id,
            name=self.property.name,
            channels=self.channels,
            settings=settings,
        )

    def apply_to(self, settings: "Settings") -> None:
        """Apply runtime overrides to an existing Settings instance."""
        runtime = self.runtime
        if runtime.channel_timeout_s is not None:
            settings.channel_timeout_s = runtime.channel_timeout_s
        if runtime.cache_ttl_s is not None:
            settings.cache_ttl_s = runtime.cache_ttl_s
        if runtime.log_level:
            settings.log_level = runtime.log_level


def load_property_config(path: Path) -> PropertyConfig:
    return PropertyFile.load(path).to_config()


def parse_check_in(value: str, *, today: Optional[date] = None) -> date:
    """Parse ``YYYY-MM-DD``, ``today`` or relative offsets like ``+14d``/``+2w``/``+1m``."""
    today = today or date.today()
    text = value.strip()
    lowered = text.lower()
    if lowered == "today":
        return today
    if lowered.startswith("today+"):
        lowered = f"+{lowered.split('+', 1)[1]}"
    if lowered.startswith("+"):
        match = _RELATIVE_DATE.match(lowered[1:])
        if not match:
            raise ValueError(f"Unsupported relative date '{value}'. Use forms like '+14d', '+2w', '+1m'.")
        count = int(match.group("count"))
        unit = match.group("unit").lower()
        if unit == "d":
            delta = timedelta(days=count)
        elif unit == "w":
            delta = timedelta(weeks=count)
        else:
            # Months are 30-day blocks.
            delta = timedelta(days=30 * count)
        return today + delta
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}'. Provide ISO format (YYYY-MM-DD) or a relative offset.") from exc


__all__ = ["PropertyFile", "load_property_config", "parse_check_in"]
