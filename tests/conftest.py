"""Test fixtures and fakes."""

from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest
import pytest_asyncio

from newspaper_archive import models  # noqa: F401
from newspaper_archive.config import Settings
from newspaper_archive.core.exceptions import DownloadFailed
from newspaper_archive.database import Base, create_engine_for, create_session_factory
from newspaper_archive.models import NewspaperIssue
from newspaper_archive.services.asset_fetcher import StoredAsset
from newspaper_archive.services.extraction_oracle import ExtractionOracle
from newspaper_archive.services.extraction_types import (
    ArticleExtraction, EventExtraction, OCRResult
)
from newspaper_archive.sources.base import PageDescriptor

BOARD_URL = "https://www.anyangjeil.org/Board/Detail/66/41234"


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'archive.db'}",
        images_dir=str(tmp_path / "images"),
        ai_provider_order="openai,gemini,anthropic",
        openai_api_key=None,
        gemini_api_key=None,
        anthropic_api_key=None,
        stale_job_minutes=10,
        extraction_replace_previous=False,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_engine_for(f"sqlite:///{tmp_path / 'archive.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def make_issue(session_factory):
    async def _make(year: int = 2025, month: int = 3, status: str = "pending",
                    url: str = BOARD_URL) -> int:
        async with session_factory() as db:
            issue = NewspaperIssue(
                year=year,
                month=month,
                board_id=41234,
                url=url,
                title=f"{year}년 {month}월호",
                status=status,
            )
            db.add(issue)
            await db.commit()
            return issue.id
    return _make


def make_pages(count: int) -> List[PageDescriptor]:
    return [
        PageDescriptor(
            remote_url=f"https://data.dimode.co.kr/UserData/anyangjeil/files/66/41234/{n:03d}.jpg",
            file_name=f"{n:03d}.jpg",
            page_number=n,
        )
        for n in range(1, count + 1)
    ]


class FakePageSource:
    """Returns fixed pages or raises a fixed error."""

    def __init__(self, pages: Optional[List[PageDescriptor]] = None, error: Optional[Exception] = None):
        self.pages = pages or []
        self.error = error
        self.calls: List[str] = []

    async def discover_pages(self, source_url: str) -> List[PageDescriptor]:
        self.calls.append(source_url)
        if self.error is not None:
            raise self.error
        return list(self.pages)


class FakeAssetFetcher:
    """Writes a few bytes to the destination; fails for the given page URLs."""

    def __init__(self, failing_urls: Iterable[str] = ()):
        self.failing_urls = set(failing_urls)
        self.fetched: List[str] = []

    async def fetch(self, remote_url: str, destination_path: Path) -> StoredAsset:
        self.fetched.append(remote_url)
        if remote_url in self.failing_urls:
            raise DownloadFailed(f"Download failed: HTTP 404 for {remote_url}", url=remote_url, status_code=404)
        destination_path = Path(destination_path)
        destination_path.parent.mkdir(parents=True, exist_ok=True)
        destination_path.write_bytes(b"\xff\xd8\xff" + remote_url.encode())
        return StoredAsset(
            stored_path=destination_path,
            byte_size=destination_path.stat().st_size,
            mime_type="image/jpeg",
        )


class FakeProvider:
    """Scripted AI backend."""

    def __init__(self, name: str = "fake", events_per_page: Optional[Dict[int, int]] = None,
                 fail: bool = False):
        self.name = name
        self.events_per_page = events_per_page or {}
        self.fail = fail
        self.ocr_calls = 0
        self.structure_calls = 0

    async def recognize_text(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> OCRResult:
        self.ocr_calls += 1
        if self.fail:
            raise RuntimeError(f"{self.name} OCR unavailable")
        return OCRResult(text="교회 소식 본문", confidence=0.9, language="ko", provider=self.name)

    async def structure(self, text: str, page_number: int) -> ArticleExtraction:
        self.structure_calls += 1
        if self.fail:
            raise RuntimeError(f"{self.name} structuring unavailable")
        events = [
            EventExtraction(type="행사", title=f"{page_number}면 행사 {n}", participants=["김목사"])
            for n in range(self.events_per_page.get(page_number, 0))
        ]
        return ArticleExtraction(
            title=f"{page_number}면 기사",
            summary="요약",
            content=text,
            article_type="행사",
            events=events,
            provider=self.name,
        )


def oracle_factory_for(*providers):
    async def _factory() -> ExtractionOracle:
        return ExtractionOracle(list(providers))
    return _factory
