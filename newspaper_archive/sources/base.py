"""Base data structures for issue page sources."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PageDescriptor:
    """One page image discovered on an issue's board page."""
    remote_url: str
    file_name: str
    page_number: int


@dataclass(frozen=True)
class ScrapeContext:
    """Inputs shared by every page extraction method."""
    base_url: str
    image_host: str
    file_url_template: Optional[str] = None
