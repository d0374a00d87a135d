"""Issue listing, administration and processing-status reconciliation."""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import sessionmaker

from ..config import Settings, settings as default_settings
from ..core.exceptions import IssueNotFound, SourceError
from ..database import AsyncSessionLocal
from ..models import (
    ACTIVE_JOB_STATUSES, Article, Event, ExtractionJob, IssueStatus, JobStatus,
    NewspaperImage, NewspaperIssue
)
from ..sources.board_scraper import BoardPageSource

logger = logging.getLogger(__name__)


def default_issue_title(year: int, month: int) -> str:
    return f"{year}년 {month}월호"


def reconciled_status(job: Optional[ExtractionJob], now: datetime,
                      stale_after: timedelta) -> Optional[str]:
    """
    Status a ``processing`` issue should have given its latest job.

    Returns None when the issue should stay ``processing``.
    """
    if job is None:
        return IssueStatus.PENDING.value

    if job.status == JobStatus.COMPLETED.value:
        return IssueStatus.COMPLETED.value
    if job.status == JobStatus.FAILED.value:
        return IssueStatus.FAILED.value

    if job.status in ACTIVE_JOB_STATUSES:
        last_update = job.updated_at or job.created_at
        if last_update is None or now - last_update > stale_after:
            return IssueStatus.PENDING.value
        return None

    # Unknown job status
    return IssueStatus.PENDING.value


class IssueService:
    """Read and administer newspaper issues."""

    def __init__(self,
                 session_factory: sessionmaker = AsyncSessionLocal,
                 page_source: Optional[BoardPageSource] = None,
                 config: Settings = default_settings):
        self.session_factory = session_factory
        self.page_source = page_source or BoardPageSource(config=config)
        self.config = config

    async def list_issues(self, year: Optional[int] = None) -> List[Dict[str, Any]]:
        """List issues newest first, healing stale ``processing`` statuses."""
        async with self.session_factory() as db:
            query = select(NewspaperIssue)
            if year is not None:
                query = query.where(NewspaperIssue.year == year)
            query = query.order_by(NewspaperIssue.year.desc(), NewspaperIssue.month.desc())

            result = await db.execute(query)
            issues = result.scalars().all()

            now = datetime.utcnow()
            stale_after = timedelta(minutes=self.config.stale_job_minutes)
            corrections: Dict[int, str] = {}

            for issue in issues:
                if issue.status != IssueStatus.PROCESSING.value:
                    continue
                job = await self._latest_job(db, issue.id)
                corrected = reconciled_status(job, now, stale_after)
                if corrected is not None:
                    corrections[issue.id] = corrected

            items = [issue.to_dict() for issue in issues]

        for item in items:
            if item['id'] in corrections:
                item['status'] = corrections[item['id']]

        if corrections:
            await self._write_corrections(corrections)

        return items

    async def get_issue(self, issue_id: int) -> Dict[str, Any]:
        async with self.session_factory() as db:
            issue = await db.get(NewspaperIssue, issue_id)
            if issue is None:
                raise IssueNotFound(issue_id)
            return issue.to_dict()

    async def get_issue_images(self, issue_id: int) -> List[Dict[str, Any]]:
        async with self.session_factory() as db:
            if await db.get(NewspaperIssue, issue_id) is None:
                raise IssueNotFound(issue_id)

            result = await db.execute(
                select(NewspaperImage)
                .where(NewspaperImage.issue_id == issue_id)
                .order_by(NewspaperImage.page_number, NewspaperImage.id)
            )
            return [image.to_dict() for image in result.scalars().all()]

    async def register_issue(self, year: int, month: int, board_id: int, url: str,
                             title: Optional[str] = None,
                             published_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Create or refresh the issue for a (year, month).

        The page count is taken from a live discovery of the board page; an
        unreachable source records zero pages rather than failing.
        """
        try:
            pages = await self.page_source.discover_pages(url)
            image_count = len(pages)
        except SourceError as e:
            logger.warning(f"⚠️ Could not count pages for {year}-{month:02d} at {url}: {e}")
            image_count = 0

        async with self.session_factory() as db:
            try:
                result = await db.execute(
                    select(NewspaperIssue).where(
                        NewspaperIssue.year == year,
                        NewspaperIssue.month == month
                    )
                )
                issue = result.scalar_one_or_none()

                if issue is None:
                    issue = NewspaperIssue(year=year, month=month)
                    db.add(issue)

                issue.board_id = board_id
                issue.url = url
                issue.title = title or default_issue_title(year, month)
                issue.published_date = published_date
                issue.image_count = image_count
                issue.status = IssueStatus.PENDING.value
                issue.updated_at = datetime.utcnow()

                await db.commit()
            except Exception:
                await db.rollback()
                raise

            logger.info(f"🗞️ Registered issue {issue.id} ({year}-{month:02d}) with {image_count} pages")
            return issue.to_dict()

    async def reset_processing(self, year: Optional[int] = None) -> int:
        """Reset every ``processing`` issue back to ``pending``."""
        async with self.session_factory() as db:
            stmt = (
                update(NewspaperIssue)
                .where(NewspaperIssue.status == IssueStatus.PROCESSING.value)
                .values(status=IssueStatus.PENDING.value, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if year is not None:
                stmt = stmt.where(NewspaperIssue.year == year)

            result = await db.execute(stmt)
            await db.commit()

        count = result.rowcount or 0
        logger.info(f"🔄 Reset {count} processing issues to pending")
        return count

    async def get_dashboard_stats(self) -> Dict[str, Any]:
        async with self.session_factory() as db:
            total_issues = await db.scalar(select(func.count(NewspaperIssue.id)))
            total_articles = await db.scalar(select(func.count(Article.id)))
            total_events = await db.scalar(select(func.count(Event.id)))

            status_rows = await db.execute(
                select(NewspaperIssue.status, func.count(NewspaperIssue.id))
                .group_by(NewspaperIssue.status)
            )

            type_count = func.count(Article.id).label('count')
            type_rows = await db.execute(
                select(Article.article_type, type_count)
                .where(Article.article_type.isnot(None))
                .group_by(Article.article_type)
                .order_by(type_count.desc(), Article.article_type)
                .limit(10)
            )

            return {
                'total_issues': total_issues or 0,
                'total_articles': total_articles or 0,
                'total_events': total_events or 0,
                'issues_by_status': {status: count for status, count in status_rows.all()},
                'article_types': [
                    {'article_type': article_type, 'count': count}
                    for article_type, count in type_rows.all()
                ],
            }

    @staticmethod
    async def _latest_job(db, issue_id: int) -> Optional[ExtractionJob]:
        result = await db.execute(
            select(ExtractionJob)
            .where(ExtractionJob.issue_id == issue_id)
            .order_by(ExtractionJob.created_at.desc(), ExtractionJob.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _write_corrections(self, corrections: Dict[int, str]) -> None:
        try:
            async with self.session_factory() as db:
                for issue_id, status in corrections.items():
                    await db.execute(
                        update(NewspaperIssue)
                        .where(
                            NewspaperIssue.id == issue_id,
                            NewspaperIssue.status == IssueStatus.PROCESSING.value
                        )
                        .values(status=status, updated_at=datetime.utcnow())
                        .execution_options(synchronize_session=False)
                    )
                await db.commit()
            logger.info(f"🩹 Reconciled {len(corrections)} stale processing issues: {corrections}")
        except Exception as e:
            logger.warning(f"⚠️ Could not persist issue status corrections {corrections}: {e}")


_issue_service: Optional[IssueService] = None


def get_issue_service() -> IssueService:
    """Get the process-wide issue service."""
    global _issue_service

    if _issue_service is None:
        _issue_service = IssueService()

    return _issue_service
