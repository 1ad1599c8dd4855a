from __future__ import annotations

import pytest

from rate_compare.rates.channels import (
    channel_for_url,
    display_names,
    get_channel,
    resolve_listing_reference,
)


@pytest.mark.parametrize(
    ("channel", "url", "expected"),
    [
        ("airbnb", "https://www.airbnb.com/rooms/12345678?check_in=2025-09-15", "12345678"),
        ("vrbo", "https://www.vrbo.com/4455667ha", "4455667"),
        ("vrbo", "https://www.vrbo.com/en-gb/property/998877", "998877"),
        ("booking", "https://www.booking.com/hotel/us/lakeside-cabin.html", "lakeside-cabin"),
        ("expedia", "https://www.expedia.com/Denver-Hotels-Cabin.h55512.Hotel-Information", "55512"),
    ],
)
def test_listing_urls_reduce_to_channel_ids(channel: str, url: str, expected: str) -> None:
    assert resolve_listing_reference(channel, url) == expected
    assert channel_for_url(url) == channel


def test_plain_references_pass_through() -> None:
    assert resolve_listing_reference("vrbo", " 4455667 ") == "4455667"


def test_foreign_listing_url_is_rejected() -> None:
    with pytest.raises(ValueError, match="is a VRBO listing URL, expected Airbnb"):
        resolve_listing_reference("airbnb", "https://www.vrbo.com/4455667")
    with pytest.raises(ValueError, match="is not a Expedia listing URL"):
        resolve_listing_reference("expedia", "https://example.test/rooms/1")


def test_unrecognised_url_on_channel_domain_is_kept() -> None:
    url = "https://www.airbnb.com/s/homes"
    assert resolve_listing_reference("airbnb", url) == url


def test_unknown_channel_lookup() -> None:
    with pytest.raises(KeyError):
        get_channel("tripadvisor")
    assert channel_for_url("https://example.test/rooms/1") is None
    assert display_names(["booking", "custom"]) == ["Booking.com", "custom"]
