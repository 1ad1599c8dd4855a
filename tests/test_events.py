from __future__ import annotations

import logging

import pytest

from rate_compare.core.events import EVENT_ERROR, EVENT_RATES_LOADED, EventEmitter
from rate_compare.errors import AggregationFailure, FailureKind
from rate_compare.rates.models import ChannelFailure


def test_handlers_receive_arguments_until_removed() -> None:
    emitter = EventEmitter()
    seen: list[object] = []
    handler = seen.append

    emitter.on(EVENT_RATES_LOADED, handler)
    emitter.emit(EVENT_RATES_LOADED, "first")
    emitter.off(EVENT_RATES_LOADED, handler)
    emitter.off(EVENT_RATES_LOADED, handler)
    emitter.emit(EVENT_RATES_LOADED, "second")

    assert seen == ["first"]
    assert emitter.handler_count(EVENT_RATES_LOADED) == 0


def test_failing_handler_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    emitter = EventEmitter()
    seen: list[object] = []

    def broken(_payload: object) -> None:
        raise RuntimeError("handler bug")

    emitter.on(EVENT_ERROR, broken)
    emitter.on(EVENT_ERROR, seen.append)
    with caplog.at_level(logging.ERROR, logger="rate_compare.core.events"):
        emitter.emit(EVENT_ERROR, {"vrbo": "timeout"})

    assert seen == [{"vrbo": "timeout"}]
    assert "handler bug" in caplog.text


def test_unknown_event_names_are_rejected() -> None:
    with pytest.raises(ValueError):
        EventEmitter().on("rates_loaded", print)


def test_aggregation_failure_message_lists_channels() -> None:
    failures = {
        "vrbo": ChannelFailure("vrbo", FailureKind.TIMEOUT),
        "airbnb": ChannelFailure("airbnb", FailureKind.NOT_FOUND),
    }

    error = AggregationFailure("12345678", failures)

    assert "airbnb=not_found, vrbo=timeout" in str(error)
    assert isinstance(error, RuntimeError)
    assert "no channels" in str(AggregationFailure("12345678", {}))
