"""Page image discovery for newspaper issues published on the church board site."""

import asyncio
import logging
import re
import time
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import unquote, urljoin, urlsplit, urlunsplit

import aiohttp
from bs4 import BeautifulSoup

from .base import PageDescriptor, ScrapeContext
from ..config import Settings, settings as default_settings
from ..core.exceptions import SourceError, SourceUnreachable
from ..core.http_client import AsyncHTTPClient, use_http_client

logger = logging.getLogger(__name__)

# "001.jpg" -> page 1
PAGE_FILE_RE = re.compile(r'(\d{3})\.(jpe?g|png)', re.IGNORECASE)
IMAGE_EXT_RE = re.compile(r'\.(jpe?g|png)', re.IGNORECASE)
BOARD_ID_RE = re.compile(r'/Detail/\d+/(\d+)')


def normalize_url_key(url: str) -> str:
    """Dedup key for an image URL: lower-cased scheme and host, no fragment."""
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ''))


def _absolute(src: str, base_url: str) -> str:
    src = src.strip()
    if src.startswith(('http://', 'https://')):
        return src
    return urljoin(base_url, src)


def _page_number(fallback: int, *texts: Optional[str]) -> int:
    for text in texts:
        if not text:
            continue
        match = PAGE_FILE_RE.search(text)
        if match:
            number = int(match.group(1))
            if number >= 1:
                return number
    return fallback


def _file_name(url: str, alt: str, index: int) -> str:
    match = PAGE_FILE_RE.search(alt or '')
    if match:
        return match.group(0)
    tail = unquote(urlsplit(url).path.rsplit('/', 1)[-1])
    return tail or f"image_{index}.jpg"


def cdn_image_tags(soup: BeautifulSoup, ctx: ScrapeContext) -> List[PageDescriptor]:
    """Images served straight from the board's file CDN."""
    pages = []
    candidates = [img for img in soup.find_all('img', src=True) if ctx.image_host in img['src']]
    for index, img in enumerate(candidates, start=1):
        try:
            src = img['src'].strip()
            alt = img.get('alt') or img.get('title') or ''
            url = _absolute(src, ctx.base_url)
            pages.append(PageDescriptor(
                remote_url=url,
                file_name=_file_name(url, alt, index),
                page_number=_page_number(index, alt),
            ))
        except Exception as e:
            logger.debug(f"Skipping malformed image tag: {e}")
    return pages


def download_link_anchors(soup: BeautifulSoup, ctx: ScrapeContext) -> List[PageDescriptor]:
    """Attachment links (``a.each-file[filename]``) pointing at page images."""
    pages = []
    for index, anchor in enumerate(soup.select('a.each-file[filename]'), start=1):
        try:
            filename = (anchor.get('filename') or '').strip()
            if not IMAGE_EXT_RE.search(filename):
                continue

            url = ''
            img = soup.find('img', attrs={'alt': filename}) or soup.find('img', attrs={'title': filename})
            if img is not None and img.get('src'):
                url = _absolute(img['src'], ctx.base_url)

            data_href = (anchor.get('data-href') or '').strip()
            if not url and data_href:
                url = _absolute(data_href, ctx.base_url)

            if not url and ctx.file_url_template:
                board_match = BOARD_ID_RE.search(ctx.base_url)
                if board_match:
                    url = ctx.file_url_template.format(board_id=board_match.group(1), filename=filename)

            if not url:
                continue

            pages.append(PageDescriptor(
                remote_url=url,
                file_name=filename,
                page_number=_page_number(index, filename),
            ))
        except Exception as e:
            logger.debug(f"Skipping malformed attachment link: {e}")
    return pages


def generic_image_fallback(soup: BeautifulSoup, ctx: ScrapeContext) -> List[PageDescriptor]:
    """Any CDN-hosted image tag with a jpg/png extension."""
    pages = []
    candidates = [
        img for img in soup.find_all('img', src=True)
        if ctx.image_host in img['src'] and IMAGE_EXT_RE.search(img['src'])
    ]
    for index, img in enumerate(candidates, start=1):
        try:
            src = img['src'].strip()
            alt = img.get('alt') or img.get('title') or ''
            url = _absolute(src, ctx.base_url)
            pages.append(PageDescriptor(
                remote_url=url,
                file_name=_file_name(url, alt, index),
                page_number=_page_number(index, alt, url),
            ))
        except Exception as e:
            logger.debug(f"Skipping malformed image tag: {e}")
    return pages


ExtractionMethod = Tuple[str, Callable[[BeautifulSoup, ScrapeContext], List[PageDescriptor]]]

# Applied in priority order; earlier methods win on duplicate URLs
PAGE_EXTRACTION_METHODS: Sequence[ExtractionMethod] = (
    ("cdn_image_tags", cdn_image_tags),
    ("download_link_anchors", download_link_anchors),
    ("generic_image_fallback", generic_image_fallback),
)


def extract_pages(html: str, ctx: ScrapeContext,
                  methods: Sequence[ExtractionMethod] = PAGE_EXTRACTION_METHODS) -> List[PageDescriptor]:
    """Parse board HTML and return deduplicated page descriptors sorted by page number."""
    try:
        soup = BeautifulSoup(html, 'html.parser')
    except Exception as e:
        raise SourceError(f"Failed to parse board page {ctx.base_url}: {e}") from e

    pages: List[PageDescriptor] = []
    seen = set()
    for name, method in methods:
        found = method(soup, ctx)
        added = 0
        for page in found:
            key = normalize_url_key(page.remote_url)
            if key in seen:
                continue
            seen.add(key)
            pages.append(page)
            added += 1
        logger.debug(f"[Scraper] {name}: {len(found)} candidates, {added} new")

    return sorted(pages, key=lambda page: page.page_number)


class BoardPageSource:
    """Discovers page images for an issue from its board page."""

    def __init__(self, http_client: Optional[AsyncHTTPClient] = None,
                 image_host: Optional[str] = None,
                 file_url_template: Optional[str] = None,
                 timeout: Optional[int] = None,
                 config: Settings = default_settings):
        self.http_client = http_client
        self.image_host = image_host or config.board_image_host
        self.file_url_template = file_url_template or config.board_file_url_template
        self.timeout = timeout or config.source_timeout

    async def fetch_html(self, source_url: str) -> str:
        """Fetch the board page, mapping transport failures to SourceUnreachable."""
        try:
            async with use_http_client(self.http_client) as client:
                return await client.fetch_text(source_url, timeout=self.timeout)
        except aiohttp.ClientResponseError as e:
            raise SourceUnreachable(
                f"Board page returned HTTP {e.status}: {source_url}",
                url=source_url,
                status_code=e.status
            ) from e
        except asyncio.TimeoutError as e:
            raise SourceUnreachable(f"Timed out fetching board page: {source_url}", url=source_url) from e
        except aiohttp.ClientError as e:
            raise SourceUnreachable(f"Failed to fetch board page {source_url}: {e}", url=source_url) from e

    async def discover_pages(self, source_url: str) -> List[PageDescriptor]:
        """Return the issue's page images in page order. An empty list is a valid result."""
        logger.info(f"[Scraper] Scraping {source_url}")
        started = time.time()

        html = await self.fetch_html(source_url)
        ctx = ScrapeContext(
            base_url=source_url,
            image_host=self.image_host,
            file_url_template=self.file_url_template,
        )
        pages = extract_pages(html, ctx)

        if not pages:
            logger.warning(f"[Scraper] No page images found at {source_url}")
        else:
            logger.info(f"[Scraper] Found {len(pages)} pages at {source_url} in {time.time() - started:.1f}s")
        return pages


async def discover_pages(source_url: str) -> List[PageDescriptor]:
    """Discover page images with the default board source."""
    return await BoardPageSource().discover_pages(source_url)
