from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Callable

import httpx
import pytest

from rate_compare.adapters import ChannelAdapter, ScraperServiceAdapter
from rate_compare.config.settings import Settings
from rate_compare.errors import (
    ChannelTimeoutError,
    ChannelUnreachableError,
    FailureKind,
    ListingNotFoundError,
    MalformedUpstreamError,
    RateLimitedError,
)

CHECK_IN = date(2025, 9, 15)
CHECK_OUT = date(2025, 9, 22)


class _FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _adapter(
    channel: str,
    handler: Callable[[httpx.Request], httpx.Response],
    **kwargs: Any,
) -> ScraperServiceAdapter:
    client = httpx.AsyncClient(base_url="https://scraper.example.test", transport=httpx.MockTransport(handler))
    kwargs.setdefault("max_retries", 0)
    return ScraperServiceAdapter(channel, client=client, **kwargs)


@pytest.mark.asyncio
async def test_fetch_posts_listing_and_returns_rate_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "rate": {
                    "base_price": 100,
                    "fees": {"cleaning": 15, "service": 12, "taxes": 8},
                    "currency": "USD",
                    "extracted_at": "2025-09-01T12:00:00Z",
                }
            },
        )

    adapter = _adapter("airbnb", handler)
    assert isinstance(adapter, ChannelAdapter)

    raw = await adapter.fetch("https://www.airbnb.com/rooms/12345678", CHECK_IN, CHECK_OUT)

    assert seen[0].url.path == "/v1/rates"
    body = json.loads(seen[0].content)
    assert body == {
        "channel": "airbnb",
        "listing": "12345678",
        "check_in": "2025-09-15",
        "check_out": "2025-09-22",
    }
    assert raw.channel == "airbnb"
    assert raw.property_ref == "12345678"
    assert raw.payload["base_price"] == 100
    assert raw.extracted_at == datetime(2025, 9, 1, 12, tzinfo=timezone.utc)
    await adapter.aclose()


@pytest.mark.parametrize(
    ("response", "error", "kind"),
    [
        (httpx.Response(404), ListingNotFoundError, FailureKind.NOT_FOUND),
        (httpx.Response(429, headers={"Retry-After": "30"}), RateLimitedError, FailureKind.RATE_LIMITED),
        (httpx.Response(504), ChannelTimeoutError, FailureKind.TIMEOUT),
        (httpx.Response(502, text="bad gateway"), ChannelUnreachableError, FailureKind.UNREACHABLE),
        (httpx.Response(200, text="<html>"), MalformedUpstreamError, FailureKind.MALFORMED_UPSTREAM),
        (httpx.Response(200, json=[1, 2]), MalformedUpstreamError, FailureKind.MALFORMED_UPSTREAM),
        (httpx.Response(200, json={"rate": "n/a"}), MalformedUpstreamError, FailureKind.MALFORMED_UPSTREAM),
    ],
)
@pytest.mark.asyncio
async def test_status_codes_map_to_failure_kinds(response: httpx.Response, error: type, kind: FailureKind) -> None:
    adapter = _adapter("vrbo", lambda request: response)

    with pytest.raises(error) as excinfo:
        await adapter.fetch("4455667", CHECK_IN, CHECK_OUT)

    assert excinfo.value.kind is kind
    assert excinfo.value.channel == "vrbo"
    if isinstance(excinfo.value, RateLimitedError):
        assert excinfo.value.retry_after == 30.0


@pytest.mark.asyncio
async def test_transport_errors_are_translated() -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ChannelTimeoutError):
        await _adapter("booking", timeout).fetch("lakeside-cabin", CHECK_IN, CHECK_OUT)
    with pytest.raises(ChannelUnreachableError):
        await _adapter("booking", refused).fetch("lakeside-cabin", CHECK_IN, CHECK_OUT)


@pytest.mark.asyncio
async def test_unreachable_service_is_retried_with_backoff() -> None:
    responses = [httpx.Response(503), httpx.Response(503), httpx.Response(200, json={"rate": {"base_price": 90}})]
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return responses[len(calls) - 1]

    sleep = _FakeSleep()
    adapter = _adapter("vrbo", handler, max_retries=2, retry_delay=0.5, backoff=2.0, sleep=sleep)

    raw = await adapter.fetch("4455667", CHECK_IN, CHECK_OUT)

    assert raw.payload == {"base_price": 90}
    assert len(calls) == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_single_retry_recovers_from_503() -> None:
    responses = iter([httpx.Response(503), httpx.Response(200, json={"rate": {"base_price": 120}})])
    sleep = _FakeSleep()
    adapter = _adapter("booking", lambda request: next(responses), max_retries=2, sleep=sleep)

    raw = await adapter.fetch("lakeside-cabin", CHECK_IN, CHECK_OUT)

    assert raw.payload["base_price"] == 120
    assert sleep.delays == [0.5]


@pytest.mark.asyncio
async def test_rate_limited_retry_honours_retry_after() -> None:
    responses = iter(
        [httpx.Response(429, headers={"Retry-After": "3"}), httpx.Response(200, json={"rate": {"base_price": 75}})]
    )
    sleep = _FakeSleep()
    adapter = _adapter("airbnb", lambda request: next(responses), max_retries=1, sleep=sleep)

    raw = await adapter.fetch("12345678", CHECK_IN, CHECK_OUT)

    assert raw.payload["base_price"] == 75
    assert sleep.delays == [3.0]


@pytest.mark.asyncio
async def test_retries_are_bounded() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    sleep = _FakeSleep()
    adapter = _adapter("expedia", handler, max_retries=2, sleep=sleep)

    with pytest.raises(ChannelUnreachableError):
        await adapter.fetch("h123456", CHECK_IN, CHECK_OUT)
    assert len(calls) == 3
    assert len(sleep.delays) == 2


@pytest.mark.asyncio
async def test_not_found_is_not_retried() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404)

    sleep = _FakeSleep()
    with pytest.raises(ListingNotFoundError):
        await _adapter("vrbo", handler, max_retries=3, sleep=sleep).fetch("4455667", CHECK_IN, CHECK_OUT)
    assert len(calls) == 1
    assert sleep.delays == []


def test_negative_retry_count_is_rejected() -> None:
    with pytest.raises(ValueError):
        ScraperServiceAdapter("vrbo", max_retries=-1)


@pytest.mark.asyncio
async def test_foreign_listing_url_fails_before_any_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(ListingNotFoundError, match="VRBO listing URL"):
        await _adapter("airbnb", handler).fetch("https://www.vrbo.com/4455667", CHECK_IN, CHECK_OUT)
    assert calls == []


@pytest.mark.asyncio
async def test_from_settings_sends_bearer_token() -> None:
    settings = Settings(scraper_api_key="token-123", scraper_base_url="https://scraper.example.test", scraper_max_retries=4)

    async with ScraperServiceAdapter.from_settings("expedia", settings) as adapter:
        assert adapter.channel == "expedia"
        assert adapter._client.headers["Authorization"] == "Bearer token-123"
        assert adapter._client.base_url.host == "scraper.example.test"
        assert adapter._max_retries == 4


def test_unknown_channel_is_rejected() -> None:
    with pytest.raises(KeyError):
        ScraperServiceAdapter("tripadvisor")
