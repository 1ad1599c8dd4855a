"""Channel adapter contract."""
from __future__ import annotations

from datetime import date
from typing import Protocol, runtime_checkable

from rate_compare.rates.models import RawChannelResponse


@runtime_checkable
class ChannelAdapter(Protocol):
    """Fetches a raw quote for one listing on one booking channel.

    Implementations raise an :class:`~rate_compare.errors.AdapterFailure` subclass
    when the channel cannot answer. They must not share mutable state between
    concurrent calls so a single instance can serve many requests.
    """

    channel: str

    async def fetch(self, property_ref: str, check_in: date, check_out: date) -> RawChannelResponse:
        ...
