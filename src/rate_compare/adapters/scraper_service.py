"""Channel adapter backed by the rate scraping service."""
from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from rate_compare.config.settings import Settings
from rate_compare.errors import (
    ChannelTimeoutError,
    ChannelUnreachableError,
    ListingNotFoundError,
    MalformedUpstreamError,
    RateLimitedError,
)
from rate_compare.rates.channels import get_channel, resolve_listing_reference
from rate_compare.rates.models import RawChannelResponse
from rate_compare.utils.dates import parse_timestamp
from rate_compare.utils.throttling import RateLimiter

logger = logging.getLogger(__name__)

RATES_PATH = "/v1/rates"

_RETRYABLE = (ChannelUnreachableError, RateLimitedError)


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ScraperServiceAdapter(AbstractAsyncContextManager["ScraperServiceAdapter"]):
    """Asks the scraping service for one channel's quote.

    The service visits the listing page or API and answers with the already
    extracted price fields; this adapter only maps transport outcomes onto the
    adapter failure taxonomy. Unreachable and rate-limited answers are retried
    with exponential backoff; a ``Retry-After`` header overrides the delay.
    """

    def __init__(
        self,
        channel: str,
        *,
        base_url: str = "https://scraper.ratecompare.com",
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        backoff: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.channel = get_channel(channel).key
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        default_headers = {
            "Accept": "application/json",
            "User-Agent": "rate-compare/0.1.0",
        }
        if headers:
            default_headers.update(headers)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=default_headers,
        )
        self._rate_limiter = rate_limiter or RateLimiter()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_settings(cls, channel: str, settings: Settings) -> "ScraperServiceAdapter":
        return cls(
            channel,
            base_url=settings.scraper_base_url,
            timeout=settings.scraper_timeout_s,
            headers=settings.scraper_headers(),
            rate_limiter=RateLimiter(settings.requests_per_minute, settings.burst_limit),
            max_retries=settings.scraper_max_retries,
            retry_delay=settings.scraper_retry_delay_s,
            backoff=settings.scraper_retry_backoff,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aexit__(self, exc_type, exc, exc_tb) -> None:
        await self.aclose()

    async def fetch(self, property_ref: str, check_in: date, check_out: date) -> RawChannelResponse:
        try:
            listing = resolve_listing_reference(self.channel, property_ref)
        except ValueError as exc:
            raise ListingNotFoundError(str(exc), channel=self.channel) from exc

        body = {
            "channel": self.channel,
            "listing": listing,
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
        }
        for attempt in range(self._max_retries + 1):
            try:
                payload = await self._request(body, listing)
                break
            except _RETRYABLE as exc:
                if attempt >= self._max_retries:
                    raise
                delay = self._retry_delay * self._backoff**attempt
                if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
                    delay = exc.retry_after
                logger.warning(
                    "%s request for listing %s failed (%s); retrying in %.1fs (attempt %s/%s)",
                    self.channel,
                    listing,
                    exc,
                    delay,
                    attempt + 1,
                    self._max_retries,
                )
                await self._sleep(delay)
        return RawChannelResponse(
            channel=self.channel,
            property_ref=listing,
            payload=payload,
            extracted_at=parse_timestamp(payload.get("extracted_at")),
        )

    async def _request(self, body: Dict[str, str], listing: str) -> Dict[str, Any]:
        await self._rate_limiter.acquire()
        logger.debug("Requesting %s quote for listing %s", self.channel, listing)
        try:
            response = await self._client.post(RATES_PATH, json=body)
        except httpx.TimeoutException as exc:
            raise ChannelTimeoutError(f"Scraping service timed out for {self.channel}", channel=self.channel) from exc
        except httpx.TransportError as exc:
            raise ChannelUnreachableError(
                f"Scraping service unreachable for {self.channel}: {exc}", channel=self.channel
            ) from exc

        self._raise_for_status(response, listing)
        return self._decode(response)

    def _raise_for_status(self, response: httpx.Response, listing: str) -> None:
        if response.is_success:
            return
        status = response.status_code
        if status == 404:
            raise ListingNotFoundError(f"{self.channel} listing {listing} not found", channel=self.channel)
        if status == 429:
            raise RateLimitedError(
                f"{self.channel} rate limited the scraping service",
                channel=self.channel,
                retry_after=_retry_after(response),
            )
        if status in (408, 504):
            raise ChannelTimeoutError(f"{self.channel} timed out upstream ({status})", channel=self.channel)
        raise ChannelUnreachableError(
            f"Scraping service request failed ({status}): {response.text[:512]}", channel=self.channel
        )

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedUpstreamError(
                f"Scraping service returned invalid JSON for {self.channel}", channel=self.channel
            ) from exc
        if not isinstance(payload, dict):
            raise MalformedUpstreamError(
                f"Scraping service returned {type(payload).__name__} instead of an object", channel=self.channel
            )
        rate = payload.get("rate", payload)
        if not isinstance(rate, dict):
            raise MalformedUpstreamError("Scraping service 'rate' field is not an object", channel=self.channel)
        return rate
