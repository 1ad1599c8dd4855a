"""Short-lived in-memory cache of aggregation results."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from rate_compare.rates.models import AggregationResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class CacheKey:
    """Identifies one aggregation: property, channel set and stay."""

    property_id: str
    channels: Tuple[str, ...]
    check_in: date
    check_out: date

    @classmethod
    def build(
        cls,
        property_id: str,
        channels: Iterable[str],
        check_in: date,
        check_out: date,
    ) -> "CacheKey":
        return cls(
            property_id=property_id,
            channels=tuple(sorted(set(channels))),
            check_in=check_in,
            check_out=check_out,
        )


@dataclass
class _Entry:
    result: AggregationResult
    expires_at: float


class RateCache:
    """Maps :class:`CacheKey` to results until their TTL runs out.

    Only touched from the event loop thread, so there is no locking.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[CacheKey, _Entry] = {}

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, CacheKey) and self.get(key) is not None

    def get(self, key: CacheKey) -> Optional[AggregationResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            logger.debug("Cache entry for %s expired", key.property_id)
            del self._entries[key]
            return None
        return entry.result

    def put(self, key: CacheKey, result: AggregationResult, ttl: Optional[float] = None) -> None:
        lifetime = self.ttl_seconds if ttl is None else ttl
        if lifetime <= 0:
            raise ValueError("ttl must be positive")
        self._entries[key] = _Entry(result=result, expires_at=self._clock() + lifetime)

    def invalidate(self, target: Union[CacheKey, str]) -> int:
        """Drop one key, or every entry of a property when given its id.

        Returns the number of entries removed.
        """
        if isinstance(target, CacheKey):
            return 1 if self._entries.pop(target, None) is not None else 0
        doomed = [key for key in self._entries if key.property_id == target]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("Invalidated %s cached result(s) for property %s", len(doomed), target)
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [key for key, entry in self._entries.items() if now >= entry.expires_at]:
            del self._entries[key]
