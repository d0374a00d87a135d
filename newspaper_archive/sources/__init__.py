"""Issue page sources."""

from .base import PageDescriptor
from .board_scraper import BoardPageSource, discover_pages

__all__ = ["PageDescriptor", "BoardPageSource", "discover_pages"]
