"""Exception hierarchy shared by adapters, the normaliser and the aggregator."""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Mapping, Optional

if TYPE_CHECKING:  # pragma: no cover
    from rate_compare.rates.models import ChannelFailure


class FailureKind(str, Enum):
    """Reason a channel did not contribute a record to an aggregation."""

    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    MALFORMED_UPSTREAM = "malformed_upstream"
    NORMALIZATION = "normalization"
    INVALID_RECORD = "invalid_record"
    UNSUPPORTED = "unsupported"


class RateCompareError(RuntimeError):
    """Base class for errors raised by the rate comparison engine."""


class AdapterFailure(RateCompareError):
    """Raised by a channel adapter when it cannot produce a raw response."""

    kind: FailureKind = FailureKind.UNREACHABLE

    def __init__(self, message: str, *, channel: Optional[str] = None) -> None:
        super().__init__(message)
        self.channel = channel


class ListingNotFoundError(AdapterFailure):
    """The channel has no listing for the supplied reference."""

    kind = FailureKind.NOT_FOUND


class RateLimitedError(AdapterFailure):
    """The channel rejected the request because of rate limiting."""

    kind = FailureKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        *,
        channel: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, channel=channel)
        self.retry_after = retry_after


class ChannelTimeoutError(AdapterFailure):
    """The channel did not answer in time."""

    kind = FailureKind.TIMEOUT


class ChannelUnreachableError(AdapterFailure):
    """Transport level failure while contacting the channel."""

    kind = FailureKind.UNREACHABLE


class MalformedUpstreamError(AdapterFailure):
    """The channel answered with a payload that could not be decoded."""

    kind = FailureKind.MALFORMED_UPSTREAM


class NormalizationError(RateCompareError):
    """Raised when a raw channel payload cannot be turned into a rate record."""

    kind = FailureKind.NORMALIZATION

    def __init__(self, message: str, *, channel: Optional[str] = None, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.channel = channel
        self.field = field


class AggregationFailure(RateCompareError):
    """Every configured channel failed for a request."""

    def __init__(self, property_id: str, failures: Mapping[str, "ChannelFailure"]) -> None:
        reasons = ", ".join(f"{channel}={failure.kind.value}" for channel, failure in sorted(failures.items()))
        super().__init__(f"No channel returned rates for property {property_id} ({reasons or 'no channels'})")
        self.property_id = property_id
        self.failures = dict(failures)


class StaleRequestError(RateCompareError):
    """The request was superseded by a newer one or the aggregator was torn down."""

    def __init__(self, generation: int, current: int) -> None:
        super().__init__(f"Request generation {generation} superseded by generation {current}")
        self.generation = generation
        self.current = current
