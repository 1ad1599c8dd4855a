"""Channel adapters that fetch raw quotes."""

from .base import ChannelAdapter
from .scraper_service import ScraperServiceAdapter

__all__ = [
    "ChannelAdapter",
    "ScraperServiceAdapter",
]
