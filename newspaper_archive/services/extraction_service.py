"""Issue extraction orchestration: scrape, download, OCR, structure, persist."""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

import aiofiles
from sqlalchemy import delete, select, update
from sqlalchemy.orm import sessionmaker

from .asset_fetcher import AssetFetcher, StoredAsset
from .credential_store import CredentialStore, DatabaseCredentialStore
from .extraction_oracle import ExtractionOracle, build_extraction_oracle
from .extraction_types import ArticleExtraction, OCRResult
from ..config import Settings, settings as default_settings
from ..core.exceptions import ExtractionAlreadyRunning, IssueNotFound
from ..database import AsyncSessionLocal
from ..models import (
    Article, Event, ExtractionJob, ImageStatus, IssueStatus, JobStatus,
    NewspaperImage, NewspaperIssue
)
from ..sources.base import PageDescriptor
from ..sources.board_scraper import BoardPageSource
from ..utils.logging_config import log_operation

logger = logging.getLogger(__name__)

OracleFactory = Callable[[], Awaitable[ExtractionOracle]]


@dataclass
class ExtractionProgress:
    """Snapshot of the most recent extraction job of an issue."""
    issue_id: int
    job_id: int
    status: str
    progress: int
    total_items: int
    processed_items: int
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DownloadedPage:
    """A page image stored locally and recorded in the database."""
    image_id: int
    page_number: int
    local_path: Path
    mime_type: str


def job_progress_percent(processed: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(100, processed * 100 // total)


def safe_file_name(page: PageDescriptor) -> str:
    """File name usable inside the issue directory."""
    name = Path((page.file_name or '').replace('\\', '/')).name
    if not name or name in ('.', '..'):
        name = f"page_{page.page_number:03d}.jpg"
    return name


class RunRegistry:
    """Detached extraction runs keyed by job id."""

    def __init__(self):
        self._tasks: Dict[int, asyncio.Task] = {}

    def launch(self, job_id: int, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"extraction-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        return task

    def get(self, job_id: int) -> Optional[asyncio.Task]:
        return self._tasks.get(job_id)

    def active_job_ids(self) -> List[int]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def wait(self, job_id: int) -> None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def wait_all(self) -> None:
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class ExtractionService:
    """
    Owns the per-issue extraction state machine.

    ``start_extraction`` validates the issue, opens a job and returns; the
    multi-phase run then continues as a detached task. Every write in the run
    is its own short transaction so completed steps survive a crash.
    """

    def __init__(self,
                 session_factory: sessionmaker = AsyncSessionLocal,
                 page_source: Optional[BoardPageSource] = None,
                 asset_fetcher: Optional[AssetFetcher] = None,
                 credentials: Optional[CredentialStore] = None,
                 oracle_factory: Optional[OracleFactory] = None,
                 images_dir: Optional[Path] = None,
                 registry: Optional[RunRegistry] = None,
                 config: Settings = default_settings):
        self.session_factory = session_factory
        self.page_source = page_source or BoardPageSource(config=config)
        self.asset_fetcher = asset_fetcher or AssetFetcher(config=config)
        self.credentials = credentials or DatabaseCredentialStore(session_factory, config)
        self.oracle_factory = oracle_factory or (lambda: build_extraction_oracle(self.credentials, config))
        self.images_dir = Path(images_dir or config.images_dir)
        self.registry = registry or RunRegistry()
        self.config = config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start_extraction(self, issue_id: int) -> int:
        """
        Open a new extraction job for an issue and launch its run.

        Returns the new job id. Raises IssueNotFound when the issue does not
        exist and ExtractionAlreadyRunning when the issue is already processing.
        """
        async with self.session_factory() as db:
            try:
                issue = await db.get(NewspaperIssue, issue_id)
                if issue is None:
                    raise IssueNotFound(issue_id)

                now = datetime.utcnow()
                result = await db.execute(
                    update(NewspaperIssue)
                    .where(
                        NewspaperIssue.id == issue_id,
                        NewspaperIssue.status != IssueStatus.PROCESSING.value
                    )
                    .values(status=IssueStatus.PROCESSING.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise ExtractionAlreadyRunning(issue_id)

                job = ExtractionJob(
                    issue_id=issue_id,
                    status=JobStatus.SCRAPING.value,
                    started_at=now,
                    created_at=now,
                    updated_at=now,
                )
                db.add(job)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

            job_id = job.id
            source_url = issue.url

        log_operation(logger, 'start_extraction', 'started', issue_id=issue_id, job_id=job_id)
        self.registry.launch(job_id, self._run_extraction(issue_id, job_id, source_url))
        return job_id

    async def get_extraction_progress(self, issue_id: int) -> Optional[ExtractionProgress]:
        """Progress of the most recently created job for the issue, or None."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(ExtractionJob)
                .where(ExtractionJob.issue_id == issue_id)
                .order_by(ExtractionJob.created_at.desc(), ExtractionJob.id.desc())
                .limit(1)
            )
            job = result.scalar_one_or_none()

        if job is None:
            return None

        return ExtractionProgress(
            issue_id=issue_id,
            job_id=job.id,
            status=job.status,
            progress=job.progress or 0,
            total_items=job.total_items or 0,
            processed_items=job.processed_items or 0,
            error_message=job.error_message,
        )

    async def wait_for_job(self, job_id: int) -> None:
        """Block until a detached run has finished."""
        await self.registry.wait(job_id)

    # ------------------------------------------------------------------
    # Detached run
    # ------------------------------------------------------------------

    async def _run_extraction(self, issue_id: int, job_id: int, source_url: str) -> None:
        started = time.time()
        try:
            await self._update_job(job_id, JobStatus.SCRAPING, processed=0, total=0)
            pages = await self.page_source.discover_pages(source_url)
            await self._update_issue(issue_id, image_count=len(pages))

            if self.config.extraction_replace_previous:
                await self._clear_previous_results(issue_id)

            downloaded = await self._download_pages(issue_id, job_id, pages)
            articles_saved = await self._process_pages(issue_id, job_id, downloaded)

            await self._update_job(job_id, JobStatus.COMPLETED, processed=len(downloaded), total=len(downloaded))
            await self._update_issue(issue_id, status=IssueStatus.COMPLETED.value)

            log_operation(
                logger, 'extract_issue', 'completed',
                issue_id=issue_id, job_id=job_id, pages=len(pages), downloaded=len(downloaded),
                articles=articles_saved, duration=f"{time.time() - started:.1f}s"
            )
        except Exception as e:
            logger.exception(f"❌ Extraction failed for issue {issue_id} (job {job_id}): {e}")
            await self._mark_failed(issue_id, job_id, str(e) or e.__class__.__name__)

    async def _download_pages(self, issue_id: int, job_id: int,
                              pages: List[PageDescriptor]) -> List[DownloadedPage]:
        total = len(pages)
        await self._update_job(job_id, JobStatus.DOWNLOADING, processed=0, total=total)

        issue_dir = self.images_dir / f"issue_{issue_id}"
        downloaded: List[DownloadedPage] = []

        for processed, page in enumerate(pages, start=1):
            try:
                asset = await self.asset_fetcher.fetch(page.remote_url, issue_dir / safe_file_name(page))
                image_id = await self._insert_image(issue_id, page, asset)
                downloaded.append(DownloadedPage(
                    image_id=image_id,
                    page_number=page.page_number,
                    local_path=asset.stored_path,
                    mime_type=asset.mime_type,
                ))
            except Exception as e:
                log_operation(logger, 'download_page', 'skipped',
                              issue_id=issue_id, page=page.page_number, url=page.remote_url, error=e)

            await self._update_job(job_id, JobStatus.DOWNLOADING, processed=processed, total=total)

        return downloaded

    async def _process_pages(self, issue_id: int, job_id: int, pages: List[DownloadedPage]) -> int:
        oracle = await self.oracle_factory()
        total = len(pages)
        await self._update_job(job_id, JobStatus.PROCESSING, processed=0, total=total)

        saved = 0
        for processed, page in enumerate(pages, start=1):
            try:
                async with aiofiles.open(page.local_path, 'rb') as f:
                    image_bytes = await f.read()
                ocr = await oracle.recognize_text(image_bytes, page.mime_type)
                extraction = await oracle.structure(ocr.text, page.page_number)
                await self._save_article(issue_id, page, ocr, extraction)
                saved += 1
            except Exception as e:
                log_operation(logger, 'process_page', 'skipped',
                              issue_id=issue_id, page=page.page_number, error=e)

            await self._update_job(job_id, JobStatus.PROCESSING, processed=processed, total=total)

        return saved

    # ------------------------------------------------------------------
    # Store writes, one short transaction each
    # ------------------------------------------------------------------

    async def _update_job(self, job_id: int, status: JobStatus,
                          processed: Optional[int] = None, total: Optional[int] = None,
                          error_message: Optional[str] = None) -> None:
        now = datetime.utcnow()
        values = {'status': status.value, 'updated_at': now}
        if processed is not None and total is not None:
            values.update(
                processed_items=processed,
                total_items=total,
                progress=100 if status == JobStatus.COMPLETED else job_progress_percent(processed, total),
            )
        if error_message is not None:
            values['error_message'] = error_message
        if status.is_terminal:
            values['completed_at'] = now

        async with self.session_factory() as db:
            await db.execute(
                update(ExtractionJob)
                .where(ExtractionJob.id == job_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

    async def _update_issue(self, issue_id: int, **values) -> None:
        values['updated_at'] = datetime.utcnow()
        async with self.session_factory() as db:
            await db.execute(
                update(NewspaperIssue)
                .where(NewspaperIssue.id == issue_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

    async def _mark_failed(self, issue_id: int, job_id: int, message: str) -> None:
        try:
            await self._update_job(job_id, JobStatus.FAILED, error_message=message)
            await self._update_issue(issue_id, status=IssueStatus.FAILED.value)
        except Exception as e:
            logger.error(f"❌ Could not record failure of job {job_id} for issue {issue_id}: {e}")

    async def _insert_image(self, issue_id: int, page: PageDescriptor, asset: StoredAsset) -> int:
        async with self.session_factory() as db:
            image = NewspaperImage(
                issue_id=issue_id,
                image_url=page.remote_url,
                local_path=str(asset.stored_path),
                page_number=page.page_number,
                file_name=asset.stored_path.name,
                file_size=asset.byte_size,
                mime_type=asset.mime_type,
                status=ImageStatus.DOWNLOADED.value,
            )
            db.add(image)
            await db.commit()
            return image.id

    async def _save_article(self, issue_id: int, page: DownloadedPage,
                            ocr: OCRResult, extraction: ArticleExtraction) -> int:
        async with self.session_factory() as db:
            try:
                article = Article(
                    issue_id=issue_id,
                    image_id=page.image_id,
                    page_number=page.page_number,
                    title=extraction.title,
                    content_summary=extraction.summary,
                    full_content=extraction.content,
                    article_type=extraction.article_type,
                    author=extraction.author,
                    article_metadata={
                        'ocr_confidence': ocr.confidence,
                        'language': ocr.language,
                        'ocr_provider': ocr.provider,
                        'structure_provider': extraction.provider,
                    },
                )
                db.add(article)
                await db.flush()

                for event in extraction.events:
                    db.add(Event(
                        article_id=article.id,
                        event_type=event.type,
                        event_date=event.date,
                        event_title=event.title,
                        description=event.description,
                        location=event.location,
                        participants=event.participants or None,
                    ))
                await db.commit()
            except Exception:
                await db.rollback()
                raise

            logger.info(f"📰 Saved article for issue {issue_id} page {page.page_number} "
                        f"with {len(extraction.events)} events")
            return article.id

    async def _clear_previous_results(self, issue_id: int) -> None:
        """Remove articles, events and page rows of earlier runs."""
        async with self.session_factory() as db:
            article_ids = select(Article.id).where(Article.issue_id == issue_id)
            await db.execute(delete(Event).where(Event.article_id.in_(article_ids)))
            await db.execute(delete(Article).where(Article.issue_id == issue_id))
            await db.execute(delete(NewspaperImage).where(NewspaperImage.issue_id == issue_id))
            await db.commit()
        logger.info(f"🧹 Cleared previous extraction results for issue {issue_id}")


_extraction_service: Optional[ExtractionService] = None


def get_extraction_service() -> ExtractionService:
    """Get the process-wide extraction service."""
    global _extraction_service

    if _extraction_service is None:
        _extraction_service = ExtractionService()

    return _extraction_service
