"""Catalog of supported booking channels and listing reference helpers."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional
from urllib.parse import urlparse


@dataclass(frozen=True)
class ChannelInfo:
    """Display and routing metadata for a booking channel."""

    key: str
    name: str
    domain: str
    listing_pattern: re.Pattern[str]

    def matches_host(self, host: str) -> bool:
        host = host.lower()
        return host == self.domain or host.endswith("." + self.domain)

    def listing_id_from_url(self, url: str) -> Optional[str]:
        match = self.listing_pattern.search(urlparse(url).path)
        return match.group(1) if match else None


CHANNELS: Mapping[str, ChannelInfo] = {
    "airbnb": ChannelInfo("airbnb", "Airbnb", "airbnb.com", re.compile(r"/rooms/(\d+)")),
    "vrbo": ChannelInfo("vrbo", "VRBO", "vrbo.com", re.compile(r"/(?:property/)?(\d+)(?:ha)?\b")),
    "booking": ChannelInfo("booking", "Booking.com", "booking.com", re.compile(r"/hotel/[a-z]{2}/([^/.]+)")),
    "expedia": ChannelInfo("expedia", "Expedia", "expedia.com", re.compile(r"\.h(\d+)\.")),
}


def get_channel(key: str) -> ChannelInfo:
    try:
        return CHANNELS[key]
    except KeyError as exc:
        known = ", ".join(CHANNELS)
        raise KeyError(f"Channel '{key}' is not supported. Known channels: {known}") from exc


def channel_for_url(url: str) -> Optional[str]:
    """Return the channel key whose domain serves ``url``, if any."""
    host = urlparse(url).hostname
    if not host:
        return None
    for info in CHANNELS.values():
        if info.matches_host(host):
            return info.key
    return None


def resolve_listing_reference(channel: str, reference: str) -> str:
    """Reduce a listing URL to the channel's listing id; plain ids pass through.

    URLs that belong to the channel but do not carry a recognisable id are returned
    unchanged so the transport can still try them.
    """
    reference = reference.strip()
    if "://" not in reference:
        return reference
    info = get_channel(channel)
    host = urlparse(reference).hostname or ""
    if not info.matches_host(host):
        owner = channel_for_url(reference)
        if owner is not None:
            raise ValueError(f"{reference} is a {CHANNELS[owner].name} listing URL, expected {info.name}")
        raise ValueError(f"{reference} is not a {info.name} listing URL")
    return info.listing_id_from_url(reference) or reference


def display_names(channels: Iterable[str]) -> list[str]:
    return [CHANNELS[channel].name if channel in CHANNELS else channel for channel in channels]
