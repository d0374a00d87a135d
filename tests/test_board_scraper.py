"""Tests for board page discovery."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from bs4 import BeautifulSoup

from newspaper_archive.core.exceptions import SourceUnreachable
from newspaper_archive.sources.base import ScrapeContext
from newspaper_archive.sources.board_scraper import (
    PAGE_EXTRACTION_METHODS,
    BoardPageSource,
    extract_pages,
    generic_image_fallback,
    normalize_url_key,
)

BASE_URL = "https://www.anyangjeil.org/Board/Detail/66/41234"
CDN = "https://data.dimode.co.kr/UserData/anyangjeil/files/66/41234"
TEMPLATE = "https://data.dimode.co.kr/UserData/anyangjeil/files/66/{board_id}/{filename}"


def _ctx(template=TEMPLATE) -> ScrapeContext:
    return ScrapeContext(base_url=BASE_URL, image_host="data.dimode.co.kr", file_url_template=template)


class TestExtractPages:
    def test_cdn_images_sorted_by_page_number(self):
        html = f"""
        <div class="content">
          <img src="{CDN}/003.jpg" alt="003.jpg">
          <img src="{CDN}/001.jpg" alt="001.jpg">
          <img src="{CDN}/002.jpg" alt="002.jpg">
          <img src="/images/logo.png" alt="logo">
        </div>
        """
        pages = extract_pages(html, _ctx())

        assert [p.page_number for p in pages] == [1, 2, 3]
        assert [p.file_name for p in pages] == ["001.jpg", "002.jpg", "003.jpg"]
        assert all(p.remote_url.startswith(CDN) for p in pages)

    def test_duplicates_across_methods_are_merged(self):
        html = f"""
        <img src="{CDN}/001.jpg" alt="001.jpg">
        <a class="each-file" filename="001.jpg" href="#">001.jpg</a>
        <a class="each-file" filename="002.jpg" href="#">002.jpg</a>
        """
        pages = extract_pages(html, _ctx())

        assert [p.file_name for p in pages] == ["001.jpg", "002.jpg"]
        assert pages[1].remote_url == f"{CDN}/002.jpg"

    def test_url_key_ignores_host_case_and_fragment(self):
        assert normalize_url_key("HTTPS://Data.Dimode.co.kr/a/001.jpg#top") == \
            normalize_url_key("https://data.dimode.co.kr/a/001.jpg")

    def test_attachment_link_uses_data_href(self):
        html = '<a class="each-file" filename="004.png" data-href="/files/004.png">004.png</a>'
        pages = extract_pages(html, _ctx(template=None))

        assert len(pages) == 1
        assert pages[0].remote_url == "https://www.anyangjeil.org/files/004.png"
        assert pages[0].page_number == 4

    def test_attachment_links_ignore_non_images(self):
        html = '<a class="each-file" filename="bulletin.pdf">bulletin.pdf</a>'
        assert extract_pages(html, _ctx()) == []

    def test_page_number_falls_back_to_position(self):
        html = f"""
        <img src="{CDN}/cover.jpg" alt="표지">
        <img src="{CDN}/inside.jpg" alt="내지">
        """
        pages = extract_pages(html, _ctx())

        assert [p.page_number for p in pages] == [1, 2]
        assert [p.file_name for p in pages] == ["cover.jpg", "inside.jpg"]

    def test_position_counts_only_cdn_images(self):
        html = f"""
        <img src="/logo.png">
        <img src="/banner.gif">
        <img src="https://cdn.example.com/ad.jpg">
        <img src="{CDN}/front.jpg">
        <img src="{CDN}/back.jpg">
        """
        pages = extract_pages(html, _ctx())

        assert [p.page_number for p in pages] == [1, 2]
        assert [p.file_name for p in pages] == ["front.jpg", "back.jpg"]

    def test_generic_fallback_position_ignores_foreign_hosts(self):
        soup = BeautifulSoup(
            f'<img src="https://cdn.example.com/ad.jpg"><img src="{CDN}/scan.png">', 'html.parser'
        )
        pages = generic_image_fallback(soup, _ctx())

        assert [p.page_number for p in pages] == [1]

    def test_no_images_is_empty(self):
        assert extract_pages("<html><body><p>준비중</p></body></html>", _ctx()) == []

    def test_methods_are_pure_functions_in_priority_order(self):
        names = [name for name, _ in PAGE_EXTRACTION_METHODS]
        assert names == ["cdn_image_tags", "download_link_anchors", "generic_image_fallback"]


class TestBoardPageSource:
    @pytest.mark.asyncio
    async def test_discover_pages_fetches_and_parses(self):
        client = MagicMock()
        client.fetch_text = AsyncMock(return_value=f'<img src="{CDN}/001.jpg" alt="001.jpg">')
        source = BoardPageSource(http_client=client, image_host="data.dimode.co.kr",
                                 file_url_template=TEMPLATE, timeout=5)

        pages = await source.discover_pages(BASE_URL)

        client.fetch_text.assert_awaited_once_with(BASE_URL, timeout=5)
        assert [p.file_name for p in pages] == ["001.jpg"]

    @pytest.mark.asyncio
    async def test_http_error_maps_to_source_unreachable(self):
        client = MagicMock()
        client.fetch_text = AsyncMock(side_effect=aiohttp.ClientResponseError(
            request_info=MagicMock(), history=(), status=503, message="Service Unavailable"
        ))
        source = BoardPageSource(http_client=client, image_host="data.dimode.co.kr")

        with pytest.raises(SourceUnreachable) as exc_info:
            await source.discover_pages(BASE_URL)

        assert exc_info.value.status_code == 503
        assert exc_info.value.url == BASE_URL

    @pytest.mark.asyncio
    async def test_timeout_maps_to_source_unreachable(self):
        client = MagicMock()
        client.fetch_text = AsyncMock(side_effect=asyncio.TimeoutError())
        source = BoardPageSource(http_client=client, image_host="data.dimode.co.kr")

        with pytest.raises(SourceUnreachable):
            await source.discover_pages(BASE_URL)

    def test_defaults_come_from_injected_settings(self, test_settings):
        test_settings.board_image_host = "files.example.org"
        test_settings.source_timeout = 7
        source = BoardPageSource(config=test_settings)

        assert source.image_host == "files.example.org"
        assert source.timeout == 7
