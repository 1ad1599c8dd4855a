"""Utilities to transform raw channel payloads into normalised rate records."""
from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from rate_compare.errors import NormalizationError
from rate_compare.utils.dates import parse_date, parse_timestamp, utcnow

from .models import BASE_CURRENCY, FEE_COMPONENTS, RateFees, RateRecord, RawChannelResponse

_AMOUNT_NOISE = re.compile(r"[^\d.\-]")

# Flat payload keys some transports use instead of a nested ``fees`` mapping.
_FLAT_FEE_KEYS: Dict[str, str] = {
    "cleaning_fee": "cleaning",
    "service_fee": "service",
    "taxes": "taxes",
    "other_fees": "other",
}

# Scraped prices often carry a symbol instead of an ISO code.
_CURRENCY_SYMBOLS: Dict[str, str] = {
    "$": "USD",
    "US$": "USD",
    "C$": "CAD",
    "CA$": "CAD",
    "A$": "AUD",
    "AU$": "AUD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
}


def _parse_amount(value: Any, *, field: str, channel: str) -> float:
    if value is None:
        raise NormalizationError(f"Missing {field}", channel=channel, field=field)
    if isinstance(value, bool):
        raise NormalizationError(f"{field} must be numeric, got {value!r}", channel=channel, field=field)
    if isinstance(value, (int, float)):
        try:
            amount = float(value)
        except OverflowError:
            raise NormalizationError(f"{field} is out of range", channel=channel, field=field) from None
    elif isinstance(value, str):
        cleaned = _AMOUNT_NOISE.sub("", value)
        try:
            amount = float(cleaned)
        except ValueError:
            raise NormalizationError(
                f"{field} must be numeric, got {value!r}", channel=channel, field=field
            ) from None
    else:
        raise NormalizationError(f"{field} must be numeric, got {value!r}", channel=channel, field=field)
    if not math.isfinite(amount):
        raise NormalizationError(f"{field} must be finite", channel=channel, field=field)
    if amount < 0:
        raise NormalizationError(f"{field} must not be negative ({amount})", channel=channel, field=field)
    return amount


def _checkout_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise NormalizationError(f"Airbnb checkout {what} must be an object", channel="airbnb", field=what)
    return value


def _checkout_items(value: Any, what: str) -> List[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, Mapping) for item in value):
        raise NormalizationError(f"Airbnb checkout {what} must be a list of objects", channel="airbnb", field=what)
    return value


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _micros_or_formatted(total: Mapping[str, Any]) -> Any:
    micros = total.get("amountMicros")
    if micros not in (None, ""):
        try:
            return int(micros) / 1_000_000
        except (TypeError, ValueError, OverflowError):
            pass
    return total.get("amountFormatted")


def _airbnb_price_breakdown(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    node: Any = payload
    for key in (
        "data",
        "presentation",
        "stayCheckout",
        "temporaryQuickPayData",
        "productPriceBreakdown",
        "priceBreakdown",
    ):
        node = node.get(key) if isinstance(node, Mapping) else None
    if not isinstance(node, Mapping):
        raise NormalizationError("Airbnb checkout payload has no price breakdown", channel="airbnb")
    return node


def flatten_airbnb_checkout(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten an Airbnb ``stayCheckout`` response into the flat payload shape.

    Raises :class:`NormalizationError` when the breakdown is missing or any of its
    blocks has an unexpected type.
    """
    breakdown = _airbnb_price_breakdown(payload)
    items = _checkout_items(breakdown.get("priceItems"), "priceItems")
    if not items:
        raise NormalizationError("No pricing data found in Airbnb checkout payload", channel="airbnb")

    flat: Dict[str, Any] = {"fees": {}}
    fees: Dict[str, Any] = flat["fees"]
    for item in items:
        item_type = _text(item.get("type")).upper()
        if item_type == "ACCOMMODATION":
            for nested in _checkout_items(item.get("nestedPriceItems"), "nestedPriceItems"):
                title = _text(nested.get("localizedTitle")).lower()
                amount = _micros_or_formatted(_checkout_mapping(nested.get("total"), "total"))
                if "service fee" in title:
                    fees["service"] = amount
                elif "cleaning fee" in title:
                    fees["cleaning"] = amount
                elif "night" in title:
                    flat["base_price"] = amount
        elif item_type == "TAXES":
            fees["taxes"] = _micros_or_formatted(_checkout_mapping(item.get("total"), "total"))
        elif item_type == "CLEANING_FEE":
            fees["cleaning"] = _micros_or_formatted(_checkout_mapping(item.get("total"), "total"))

    total_block = _checkout_mapping(_checkout_mapping(breakdown.get("total"), "total").get("total"), "total")
    if total_block:
        flat["total_price"] = _micros_or_formatted(total_block)
        if total_block.get("currency"):
            flat["currency"] = total_block["currency"]
    return flat


def _is_airbnb_checkout(channel: str, payload: Mapping[str, Any]) -> bool:
    return channel == "airbnb" and isinstance(payload.get("data"), Mapping)


def _collect_fees(payload: Mapping[str, Any], channel: str) -> Tuple[RateFees, bool]:
    components: Dict[str, float] = {}
    nested = payload.get("fees")
    if nested is not None:
        if not isinstance(nested, Mapping):
            raise NormalizationError("fees must be a mapping", channel=channel, field="fees")
        for name in FEE_COMPONENTS:
            if nested.get(name) is not None:
                components[name] = _parse_amount(nested[name], field=f"fees.{name}", channel=channel)
    for key, name in _FLAT_FEE_KEYS.items():
        if payload.get(key) is not None:
            components[name] = _parse_amount(payload[key], field=key, channel=channel)
    return RateFees(**components), bool(components)


def _resolve_dates(
    payload: Mapping[str, Any],
    channel: str,
    check_in: Optional[date],
    check_out: Optional[date],
) -> Tuple[date, date]:
    raw_in = payload.get("check_in", check_in)
    raw_out = payload.get("check_out", check_out)
    start = parse_date(raw_in)
    end = parse_date(raw_out)
    if start is None:
        raise NormalizationError(f"Unparseable check-in date {raw_in!r}", channel=channel, field="check_in")
    if end is None:
        raise NormalizationError(f"Unparseable check-out date {raw_out!r}", channel=channel, field="check_out")
    if end <= start:
        raise NormalizationError(
            f"Check-out {end.isoformat()} is not after check-in {start.isoformat()}",
            channel=channel,
            field="check_out",
        )
    return start, end


def _resolve_prices(payload: Mapping[str, Any], channel: str) -> Tuple[float, RateFees, float]:
    fees, has_components = _collect_fees(payload, channel)
    raw_base = payload.get("base_price")
    raw_total = payload.get("total_price")

    if has_components:
        base = _parse_amount(raw_base, field="base_price", channel=channel)
        return base, fees, round(base + fees.total, 2)
    if raw_total is not None:
        total = _parse_amount(raw_total, field="total_price", channel=channel)
        base = _parse_amount(raw_base, field="base_price", channel=channel) if raw_base is not None else total
        return base, fees, total
    base = _parse_amount(raw_base, field="base_price", channel=channel)
    return base, fees, base


def _normalize_currency(currency: str) -> str:
    code = currency.strip().upper()
    return _CURRENCY_SYMBOLS.get(code, code)


def _resolve_timestamp(raw: RawChannelResponse, payload: Mapping[str, Any], now: Optional[datetime]) -> datetime:
    if raw.extracted_at is not None:
        return parse_timestamp(raw.extracted_at) or raw.extracted_at
    reported = parse_timestamp(payload.get("extracted_at"))
    if reported is not None:
        return reported
    return now or utcnow()


def normalize(
    channel: str,
    raw: RawChannelResponse,
    *,
    check_in: Optional[date] = None,
    check_out: Optional[date] = None,
    now: Optional[datetime] = None,
    default_currency: str = BASE_CURRENCY,
    property_id: Optional[str] = None,
) -> RateRecord:
    """Convert ``raw`` into a :class:`RateRecord`.

    ``check_in``/``check_out`` describe the requested stay and are used when the
    payload does not echo the dates back; ``default_currency`` fills in a
    missing currency. ``property_id`` ties the record to the compared property;
    without it the payload (or the listing reference) names the property.

    Raises :class:`NormalizationError` when prices are missing, non-numeric or
    negative, or when dates cannot be parsed.
    """
    payload = raw.payload
    if not isinstance(payload, Mapping):
        raise NormalizationError(f"Payload must be a mapping, got {type(payload).__name__}", channel=channel)
    if _is_airbnb_checkout(channel, payload):
        payload = {**flatten_airbnb_checkout(payload), **{k: v for k, v in payload.items() if k != "data"}}

    property_id = property_id or payload.get("property_id") or raw.property_ref
    if not isinstance(property_id, str) or not property_id.strip():
        raise NormalizationError("Missing property identifier", channel=channel, field="property_id")

    start, end = _resolve_dates(payload, channel, check_in, check_out)
    base, fees, total = _resolve_prices(payload, channel)

    currency = payload.get("currency") or default_currency
    if not isinstance(currency, str):
        raise NormalizationError(f"currency must be a string, got {currency!r}", channel=channel, field="currency")

    availability = payload.get("availability", payload.get("available", True))
    if not isinstance(availability, bool):
        raise NormalizationError(
            f"availability must be a boolean, got {availability!r}", channel=channel, field="availability"
        )

    return RateRecord(
        channel=channel,
        property_id=property_id.strip(),
        check_in=start,
        check_out=end,
        base_price=base,
        fees=fees,
        total_price=total,
        currency=_normalize_currency(currency),
        availability=availability,
        last_updated=_resolve_timestamp(raw, payload, now),
    )
