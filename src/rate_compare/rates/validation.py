"""Shape checks and default constructors for rate records and property configs.

The validators are total: any input, including ``None`` and values of the wrong
type, yields ``False`` rather than an exception. The constructors always return
values the matching validator accepts and raise ``ValueError`` for overrides that
would break that guarantee.
"""
from __future__ import annotations

import math
from dataclasses import fields, is_dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional

from rate_compare.utils.dates import default_stay, parse_date, parse_timestamp, utcnow

from .models import (
    BASE_CURRENCY,
    DEFAULT_LOCALE,
    DISPLAY_MODES,
    FEE_COMPONENTS,
    SUPPORTED_CHANNELS,
    SUPPORTED_CURRENCIES,
    THEMES,
    PropertyConfig,
    PropertySettings,
    RateFees,
    RateRecord,
)

PLACEHOLDER_PROPERTY_ID = "unassigned"
PLACEHOLDER_PROPERTY_NAME = "Untitled property"

_RATE_FIELDS = (
    "channel",
    "property_id",
    "check_in",
    "check_out",
    "base_price",
    "fees",
    "total_price",
    "currency",
    "availability",
    "last_updated",
)
_CONFIG_FIELDS = ("id", "name", "channels", "settings")
_SETTINGS_FIELDS = ("display_mode", "theme", "locale")


def _shallow_fields(value: Any) -> dict[str, Any]:
    return {item.name: getattr(value, item.name) for item in fields(value)}


def _as_mapping(candidate: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(candidate, Mapping):
        return candidate
    if is_dataclass(candidate) and not isinstance(candidate, type):
        return _shallow_fields(candidate)
    return None


def _is_amount(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value) and value >= 0
    except OverflowError:
        return False


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _valid_fees(value: Any) -> bool:
    fees = _as_mapping(value)
    if fees is None:
        return False
    return all(_is_amount(fees.get(name)) for name in FEE_COMPONENTS)


def validate_rate_data(candidate: Any) -> bool:
    """Return ``True`` when ``candidate`` is a well-formed rate record."""
    data = _as_mapping(candidate)
    if data is None:
        return False
    if any(name not in data for name in _RATE_FIELDS):
        return False

    if not isinstance(data["channel"], str) or data["channel"] not in SUPPORTED_CHANNELS:
        return False
    if not _is_text(data["property_id"]):
        return False

    check_in = parse_date(data["check_in"])
    check_out = parse_date(data["check_out"])
    if check_in is None or check_out is None or check_out <= check_in:
        return False

    if not _is_amount(data["base_price"]) or not _is_amount(data["total_price"]):
        return False
    if not _valid_fees(data["fees"]):
        return False

    if not isinstance(data["currency"], str) or data["currency"] not in SUPPORTED_CURRENCIES:
        return False
    if not isinstance(data["availability"], bool):
        return False
    return parse_timestamp(data["last_updated"]) is not None


def validate_property_config(candidate: Any) -> bool:
    """Return ``True`` when ``candidate`` is a well-formed property configuration."""
    data = _as_mapping(candidate)
    if data is None:
        return False
    if any(name not in data for name in _CONFIG_FIELDS):
        return False

    if not _is_text(data["id"]) or not _is_text(data["name"]):
        return False

    channels = data["channels"]
    if not isinstance(channels, Mapping):
        return False
    for channel, reference in channels.items():
        if not isinstance(channel, str) or channel not in SUPPORTED_CHANNELS:
            return False
        if not _is_text(reference):
            return False

    settings = _as_mapping(data["settings"])
    if settings is None or any(name not in settings for name in _SETTINGS_FIELDS):
        return False
    if not isinstance(settings["display_mode"], str) or settings["display_mode"] not in DISPLAY_MODES:
        return False
    if not isinstance(settings["theme"], str) or settings["theme"] not in THEMES:
        return False
    return _is_text(settings["locale"])


def _coerce_fees(value: Any) -> Any:
    if value is None:
        return RateFees()
    if isinstance(value, RateFees):
        return value
    if isinstance(value, Mapping):
        unknown = set(value) - set(FEE_COMPONENTS)
        if unknown:
            raise ValueError(f"Unknown fee components: {', '.join(sorted(map(str, unknown)))}")
        return RateFees(**{**RateFees().to_dict(), **value})
    raise ValueError("fees must be a mapping of fee components")


def create_rate_data(**overrides: Any) -> RateRecord:
    """Build a valid :class:`RateRecord` from defaults merged with ``overrides``."""
    unknown = set(overrides) - set(_RATE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown rate fields: {', '.join(sorted(unknown))}")

    check_in, check_out = default_stay()
    values: dict[str, Any] = {
        "channel": SUPPORTED_CHANNELS[0],
        "property_id": PLACEHOLDER_PROPERTY_ID,
        "check_in": check_in,
        "check_out": check_out,
        "base_price": 0.0,
        "fees": RateFees(),
        "total_price": 0.0,
        "currency": BASE_CURRENCY,
        "availability": True,
        "last_updated": utcnow(),
    }
    values.update(overrides)
    values["fees"] = _coerce_fees(values["fees"])
    for name in ("check_in", "check_out"):
        parsed = parse_date(values[name])
        if parsed is None:
            raise ValueError(f"Invalid {name} value: {values[name]!r}")
        values[name] = parsed
    if not isinstance(values["last_updated"], datetime):
        parsed_ts = parse_timestamp(values["last_updated"])
        if parsed_ts is None:
            raise ValueError(f"Invalid last_updated value: {values['last_updated']!r}")
        values["last_updated"] = parsed_ts

    record = RateRecord(**values)
    if not validate_rate_data(record):
        raise ValueError(f"Overrides produce an invalid rate record: {sorted(overrides)}")
    return record


def _coerce_settings(value: Any) -> Any:
    if value is None:
        return PropertySettings()
    if isinstance(value, PropertySettings):
        return value
    if isinstance(value, Mapping):
        unknown = set(value) - set(_SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(map(str, unknown)))}")
        return PropertySettings(**{**PropertySettings().to_dict(), **value})
    raise ValueError("settings must be a mapping")


def create_property_config(**overrides: Any) -> PropertyConfig:
    """Build a valid :class:`PropertyConfig` from defaults merged with ``overrides``."""
    unknown = set(overrides) - set(_CONFIG_FIELDS)
    if unknown:
        raise ValueError(f"Unknown property config fields: {', '.join(sorted(unknown))}")

    values: dict[str, Any] = {
        "id": PLACEHOLDER_PROPERTY_ID,
        "name": PLACEHOLDER_PROPERTY_NAME,
        "channels": {},
        "settings": PropertySettings(locale=DEFAULT_LOCALE),
    }
    values.update(overrides)
    channels = values["channels"]
    if not isinstance(channels, Mapping):
        raise ValueError("channels must be a mapping of channel to listing reference")
    values["channels"] = MappingProxyType(dict(channels))
    values["settings"] = _coerce_settings(values["settings"])

    config = PropertyConfig(**values)
    if not validate_property_config(config):
        raise ValueError(f"Overrides produce an invalid property config: {sorted(overrides)}")
    return config
