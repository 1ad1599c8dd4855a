"""Rate domain models, validation and normalization helpers."""

from .models import (
    AggregationResult,
    ChannelFailure,
    PropertyConfig,
    PropertySettings,
    RateFees,
    RateRecord,
    RateSavings,
    RawChannelResponse,
    rank_records,
)
from .normalizer import flatten_airbnb_checkout, normalize
from .validation import (
    create_property_config,
    create_rate_data,
    validate_property_config,
    validate_rate_data,
)

__all__ = [
    "AggregationResult",
    "ChannelFailure",
    "PropertyConfig",
    "PropertySettings",
    "RateFees",
    "RateRecord",
    "RateSavings",
    "RawChannelResponse",
    "create_property_config",
    "create_rate_data",
    "flatten_airbnb_checkout",
    "normalize",
    "rank_records",
    "validate_property_config",
    "validate_rate_data",
]
