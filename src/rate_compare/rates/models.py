"""Dataclasses for normalised channel rates and property configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from rate_compare.errors import FailureKind

SUPPORTED_CHANNELS: Tuple[str, ...] = ("airbnb", "vrbo", "booking", "expedia")
SUPPORTED_CURRENCIES: Tuple[str, ...] = ("USD", "EUR", "GBP", "CAD", "AUD")
DISPLAY_MODES: Tuple[str, ...] = ("inline", "floating")
THEMES: Tuple[str, ...] = ("light", "dark")
FEE_COMPONENTS: Tuple[str, ...] = ("cleaning", "service", "taxes", "other")

BASE_CURRENCY = "USD"
DEFAULT_LOCALE = "en-US"


@dataclass(frozen=True, slots=True)
class RateFees:
    """Named fee components charged on top of the nightly base price."""

    cleaning: float = 0.0
    service: float = 0.0
    taxes: float = 0.0
    other: float = 0.0

    @property
    def total(self) -> float:
        return self.cleaning + self.service + self.taxes + self.other

    def to_dict(self) -> dict[str, float]:
        return {
            "cleaning": self.cleaning,
            "service": self.service,
            "taxes": self.taxes,
            "other": self.other,
        }


@dataclass(frozen=True, slots=True)
class RateRecord:
    """One channel's quote for one stay."""

    channel: str
    property_id: str
    check_in: date
    check_out: date
    base_price: float
    fees: RateFees
    total_price: float
    currency: str
    availability: bool
    last_updated: datetime

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    def to_dict(self) -> dict[str, object]:
        return {
            "channel": self.channel,
            "property_id": self.property_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "base_price": self.base_price,
            "fees": self.fees.to_dict(),
            "total_price": self.total_price,
            "currency": self.currency,
            "availability": self.availability,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_iterable(cls, records: Iterable["RateRecord"]) -> List[dict[str, object]]:
        return [record.to_dict() for record in records]


@dataclass(frozen=True, slots=True)
class PropertySettings:
    """Display preferences passed through to the host."""

    display_mode: str = "inline"
    theme: str = "light"
    locale: str = DEFAULT_LOCALE

    def to_dict(self) -> dict[str, str]:
        return {
            "display_mode": self.display_mode,
            "theme": self.theme,
            "locale": self.locale,
        }


@dataclass(frozen=True, slots=True)
class PropertyConfig:
    """Static description of the property and the channels it is listed on."""

    id: str
    name: str
    channels: Mapping[str, str] = field(default_factory=dict)
    settings: PropertySettings = field(default_factory=PropertySettings)

    @property
    def enabled_channels(self) -> Tuple[str, ...]:
        return tuple(self.channels)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "channels": dict(self.channels),
            "settings": self.settings.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class RawChannelResponse:
    """Payload returned by a channel adapter before normalisation."""

    channel: str
    property_ref: str
    payload: Mapping[str, Any]
    extracted_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ChannelFailure:
    """Why a single channel is missing from an aggregation."""

    channel: str
    kind: FailureKind
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"channel": self.channel, "kind": self.kind.value, "message": self.message}


@dataclass(frozen=True, slots=True)
class RateSavings:
    amount: float
    percentage: float


@dataclass(frozen=True, slots=True)
class AggregationResult:
    """Ranked comparison of every accepted channel quote for one stay."""

    property_id: str
    check_in: date
    check_out: date
    records: Tuple[RateRecord, ...]
    failures: Mapping[str, ChannelFailure]
    complete: bool
    generated_at: datetime

    @property
    def best_rate(self) -> Optional[RateRecord]:
        return self.records[0] if self.records else None

    @property
    def partial(self) -> bool:
        return bool(self.records) and bool(self.failures)

    def savings(self) -> Optional[RateSavings]:
        """Amount saved by booking the best rate instead of the most expensive one."""
        if len(self.records) < 2:
            return None
        best = self.records[0].total_price
        worst = self.records[-1].total_price
        amount = round(worst - best, 2)
        percentage = round(amount / worst * 100, 2) if worst else 0.0
        return RateSavings(amount=amount, percentage=percentage)

    def to_dict(self) -> dict[str, object]:
        savings = self.savings()
        best = self.best_rate
        return {
            "property_id": self.property_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "rates": RateRecord.from_iterable(self.records),
            "best_rate": best.to_dict() if best else None,
            "savings": (
                {"amount": savings.amount, "percentage": savings.percentage} if savings else None
            ),
            "failures": {channel: failure.to_dict() for channel, failure in self.failures.items()},
            "complete": self.complete,
            "generated_at": self.generated_at.isoformat(),
        }


def rank_records(records: Iterable[RateRecord]) -> Tuple[RateRecord, ...]:
    """Order records by total price, breaking ties on the channel identifier."""
    return tuple(sorted(records, key=lambda record: (record.total_price, record.channel)))


def failures_by_channel(failures: Iterable[ChannelFailure]) -> Dict[str, ChannelFailure]:
    return {failure.channel: failure for failure in failures}
