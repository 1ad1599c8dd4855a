"""Concurrent multi-channel rate aggregation."""
from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import replace
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

from rate_compare.adapters.base import ChannelAdapter
from rate_compare.config.settings import Settings
from rate_compare.core.events import (
    EVENT_ERROR,
    EVENT_PROGRESS,
    EVENT_RATES_LOADED,
    EVENT_READY,
    EventEmitter,
    EventHandler,
)
from rate_compare.errors import (
    AdapterFailure,
    AggregationFailure,
    FailureKind,
    NormalizationError,
    StaleRequestError,
)
from rate_compare.rates.models import (
    AggregationResult,
    ChannelFailure,
    PropertyConfig,
    RateRecord,
    failures_by_channel,
    rank_records,
)
from rate_compare.rates.normalizer import normalize
from rate_compare.rates.validation import validate_property_config, validate_rate_data
from rate_compare.utils.dates import resolve_stay, utcnow

from .cache import CacheKey, RateCache

logger = logging.getLogger(__name__)

ChannelOutcome = Union[RateRecord, ChannelFailure]


class AggregatorState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    READY = "ready"
    PARTIAL_READY = "partial_ready"
    FAILED = "failed"


class RateAggregator(AbstractAsyncContextManager["RateAggregator"]):
    """Fetches every configured channel concurrently and ranks the quotes.

    Each call to :meth:`fetch_rates` gets a new generation number. Starting a new
    request cancels the channel calls of the previous one; anything the older
    request still produces is dropped without emitting events and its caller gets
    :class:`StaleRequestError`.
    """

    def __init__(
        self,
        config: PropertyConfig,
        adapters: Mapping[str, ChannelAdapter],
        *,
        settings: Optional[Settings] = None,
        cache: Optional[RateCache] = None,
        channel_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not validate_property_config(config):
            raise ValueError("Invalid property configuration")
        self._settings = settings or Settings()
        self._config = config
        self._adapters: Dict[str, ChannelAdapter] = dict(adapters)
        self._cache = cache if cache is not None else RateCache(self._settings.cache_ttl_s)
        self._channel_timeout = channel_timeout or self._settings.channel_timeout_s
        self._clock = clock
        self._events = EventEmitter()
        self._state = AggregatorState.IDLE
        self._generation = 0
        self._inflight: Set[asyncio.Task[ChannelOutcome]] = set()
        self._started = False
        self._last_result: Optional[AggregationResult] = None
        self._last_seen: Dict[Tuple[str, str], datetime] = {}

    @property
    def state(self) -> AggregatorState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def config(self) -> PropertyConfig:
        return self._config

    @property
    def cache(self) -> RateCache:
        return self._cache

    @property
    def last_result(self) -> Optional[AggregationResult]:
        return self._last_result

    def on(self, event: str, handler: EventHandler) -> None:
        self._events.on(event, handler)

    def off(self, event: str, handler: EventHandler) -> None:
        self._events.off(event, handler)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.debug("Rate aggregator ready for property %s", self._config.id)
        self._events.emit(EVENT_READY)

    def configure(self, config: PropertyConfig) -> None:
        """Swap in a new property configuration and drop cached results for it."""
        if not validate_property_config(config):
            raise ValueError("Invalid property configuration")
        self._supersede()
        previous = self._config
        self._cache.invalidate(previous.id)
        if config.id != previous.id:
            self._cache.invalidate(config.id)
        self._config = config
        logger.info("Property %s reconfigured with channels %s", config.id, ", ".join(config.channels) or "none")

    def teardown(self) -> None:
        """Cancel in-flight work and drop subscriptions; safe to call repeatedly."""
        self._supersede()
        self._events.clear()
        self._state = AggregatorState.IDLE
        self._started = False

    async def __aenter__(self) -> "RateAggregator":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, exc_tb) -> None:
        self.teardown()

    async def fetch_rates(self, check_in: Union[date, str], check_out: Union[date, str]) -> AggregationResult:
        """Aggregate every configured channel for the stay.

        Raises :class:`AggregationFailure` when no channel produced a usable quote
        and :class:`StaleRequestError` when a newer request or a teardown
        superseded this one.
        """
        start, end = resolve_stay(check_in, check_out)
        self._supersede()
        generation = self._generation
        config = self._config
        channels = config.enabled_channels
        key = CacheKey.build(config.id, channels, start, end)
        self._state = AggregatorState.FETCHING

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s (%s to %s)", config.id, start, end)
            self._settle(cached)
            return cached

        logger.info(
            "Fetching rates for %s (%s to %s) from %s",
            config.id,
            start,
            end,
            ", ".join(channels) or "no channels",
        )
        tasks: Dict[asyncio.Task[ChannelOutcome], str] = {
            asyncio.create_task(
                self._fetch_channel(channel, config.channels[channel], start, end, config.id),
                name=f"rate-compare:{config.id}:{channel}",
            ): channel
            for channel in channels
        }
        self._inflight.update(tasks)

        records: List[RateRecord] = []
        failures: List[ChannelFailure] = []
        pending = set(tasks)
        try:
            while pending and generation == self._generation:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if generation != self._generation:
                    break
                for task in done:
                    outcome = task.result()
                    if isinstance(outcome, RateRecord):
                        outcome = self._track_freshness(outcome)
                        records.append(outcome)
                    else:
                        logger.warning(
                            "Channel %s failed for %s: %s (%s)",
                            outcome.channel,
                            config.id,
                            outcome.kind.value,
                            outcome.message,
                        )
                        failures.append(outcome)
                    self._events.emit(EVENT_PROGRESS, tasks[task], outcome)
        finally:
            for task in pending:
                task.cancel()
            self._inflight.difference_update(tasks)

        if generation != self._generation:
            logger.debug("Discarding results of superseded request %s", generation)
            raise StaleRequestError(generation, self._generation)

        failure_map = failures_by_channel(failures)
        result = AggregationResult(
            property_id=config.id,
            check_in=start,
            check_out=end,
            records=rank_records(records),
            failures=failure_map,
            complete=bool(channels) and len(records) == len(channels),
            generated_at=self._clock(),
        )
        if not records:
            self._state = AggregatorState.FAILED
            self._last_result = result
            logger.warning("All channels failed for %s", config.id)
            self._events.emit(EVENT_ERROR, dict(failure_map))
            raise AggregationFailure(config.id, failure_map)

        self._cache.put(key, result)
        self._settle(result)
        return result

    async def _fetch_channel(
        self,
        channel: str,
        reference: str,
        check_in: date,
        check_out: date,
        property_id: str,
    ) -> ChannelOutcome:
        adapter = self._adapters.get(channel)
        if adapter is None:
            return ChannelFailure(channel, FailureKind.UNSUPPORTED, f"No adapter registered for {channel}")
        try:
            raw = await asyncio.wait_for(
                adapter.fetch(reference, check_in, check_out),
                timeout=self._channel_timeout,
            )
        except asyncio.TimeoutError:
            return ChannelFailure(channel, FailureKind.TIMEOUT, f"No response within {self._channel_timeout:g}s")
        except AdapterFailure as exc:
            return ChannelFailure(channel, exc.kind, str(exc))
        except Exception as exc:
            logger.exception("Adapter for %s raised an unexpected error", channel)
            return ChannelFailure(channel, FailureKind.UNREACHABLE, str(exc) or type(exc).__name__)

        try:
            record = normalize(
                channel,
                raw,
                check_in=check_in,
                check_out=check_out,
                default_currency=self._settings.base_currency,
                property_id=property_id,
            )
        except NormalizationError as exc:
            return ChannelFailure(channel, FailureKind.NORMALIZATION, str(exc))
        except Exception as exc:
            logger.exception("Normalising the %s payload raised an unexpected error", channel)
            return ChannelFailure(channel, FailureKind.NORMALIZATION, str(exc) or type(exc).__name__)

        if not validate_rate_data(record):
            return ChannelFailure(channel, FailureKind.INVALID_RECORD, "Normalised record failed validation")
        if (record.check_in, record.check_out) != (check_in, check_out):
            return ChannelFailure(
                channel,
                FailureKind.INVALID_RECORD,
                f"Quote is for {record.check_in} to {record.check_out}, not the requested stay",
            )
        return record

    def _track_freshness(self, record: RateRecord) -> RateRecord:
        # lastUpdated never goes backwards for a channel/property pair within a session.
        pair = (record.channel, record.property_id)
        previous = self._last_seen.get(pair)
        if previous is not None and record.last_updated < previous:
            record = replace(record, last_updated=previous)
        self._last_seen[pair] = record.last_updated
        return record

    def _settle(self, result: AggregationResult) -> None:
        self._state = AggregatorState.PARTIAL_READY if result.failures else AggregatorState.READY
        self._last_result = result
        self._events.emit(EVENT_RATES_LOADED, result)

    def _supersede(self) -> None:
        self._generation += 1
        for task in self._inflight:
            task.cancel()
        self._inflight.clear()
