"""Tests for issue listing, reconciliation and administration."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from newspaper_archive.core.exceptions import IssueNotFound, SourceUnreachable
from newspaper_archive.models import Article, ExtractionJob, NewspaperImage, NewspaperIssue
from newspaper_archive.services.issue_service import IssueService, reconciled_status
from tests.conftest import BOARD_URL, FakePageSource, make_pages


@pytest.fixture
def issue_service(session_factory, test_settings):
    return IssueService(session_factory, page_source=FakePageSource(make_pages(12)), config=test_settings)


@pytest.fixture
def add_job(session_factory):
    async def _add(issue_id: int, status: str, age: timedelta = timedelta(0)) -> int:
        stamp = datetime.utcnow() - age
        async with session_factory() as db:
            job = ExtractionJob(issue_id=issue_id, status=status, created_at=stamp, updated_at=stamp)
            db.add(job)
            await db.commit()
            return job.id
    return _add


async def _stored_status(session_factory, issue_id) -> str:
    async with session_factory() as db:
        return (await db.get(NewspaperIssue, issue_id)).status


class TestReconciledStatus:
    STALE = timedelta(minutes=10)

    def _job(self, status, minutes_ago):
        stamp = datetime(2025, 3, 1, 12, 0) - timedelta(minutes=minutes_ago)
        return ExtractionJob(status=status, created_at=stamp, updated_at=stamp)

    def test_rules(self):
        now = datetime(2025, 3, 1, 12, 0)
        assert reconciled_status(None, now, self.STALE) == "pending"
        assert reconciled_status(self._job("completed", 1), now, self.STALE) == "completed"
        assert reconciled_status(self._job("failed", 1), now, self.STALE) == "failed"
        assert reconciled_status(self._job("processing", 2), now, self.STALE) is None
        assert reconciled_status(self._job("scraping", 11), now, self.STALE) == "pending"


class TestListIssues:
    @pytest.mark.asyncio
    async def test_newest_first_and_year_filter(self, issue_service, make_issue):
        await make_issue(year=2024, month=12)
        await make_issue(year=2025, month=1)
        await make_issue(year=2025, month=3)

        issues = await issue_service.list_issues()
        assert [(i["year"], i["month"]) for i in issues] == [(2025, 3), (2025, 1), (2024, 12)]

        only_2024 = await issue_service.list_issues(year=2024)
        assert [(i["year"], i["month"]) for i in only_2024] == [(2024, 12)]

    @pytest.mark.asyncio
    async def test_processing_issue_with_completed_job_is_corrected(
            self, issue_service, make_issue, add_job, session_factory):
        issue_id = await make_issue(status="processing")
        await add_job(issue_id, "completed")

        issues = await issue_service.list_issues()

        assert issues[0]["status"] == "completed"
        assert await _stored_status(session_factory, issue_id) == "completed"
        async with session_factory() as db:
            assert await db.scalar(select(func.count(ExtractionJob.id))) == 1

    @pytest.mark.asyncio
    async def test_stale_downloading_job_resets_to_pending(
            self, issue_service, make_issue, add_job, session_factory):
        issue_id = await make_issue(status="processing")
        await add_job(issue_id, "downloading", age=timedelta(minutes=15))

        issues = await issue_service.list_issues()

        assert issues[0]["status"] == "pending"
        assert await _stored_status(session_factory, issue_id) == "pending"

    @pytest.mark.asyncio
    async def test_fresh_active_job_is_left_alone(self, issue_service, make_issue, add_job, session_factory):
        issue_id = await make_issue(status="processing")
        await add_job(issue_id, "processing", age=timedelta(minutes=2))

        issues = await issue_service.list_issues()

        assert issues[0]["status"] == "processing"
        assert await _stored_status(session_factory, issue_id) == "processing"

    @pytest.mark.asyncio
    async def test_processing_issue_without_job_resets_to_pending(
            self, issue_service, make_issue, session_factory):
        issue_id = await make_issue(status="processing")

        issues = await issue_service.list_issues()

        assert issues[0]["status"] == "pending"
        assert await _stored_status(session_factory, issue_id) == "pending"

    @pytest.mark.asyncio
    async def test_latest_job_decides(self, issue_service, make_issue, add_job):
        issue_id = await make_issue(status="processing")
        await add_job(issue_id, "completed", age=timedelta(minutes=30))
        await add_job(issue_id, "failed", age=timedelta(minutes=1))

        issues = await issue_service.list_issues()

        assert issues[0]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_correction_write_failure_does_not_fail_read(
            self, issue_service, make_issue, session_factory):
        issue_id = await make_issue(status="processing")
        opened = []

        def read_only_factory():
            opened.append(True)
            if len(opened) > 1:
                raise RuntimeError("database is read-only")
            return session_factory()

        issue_service.session_factory = read_only_factory

        issues = await issue_service.list_issues()

        assert issues[0]["status"] == "pending"
        assert await _stored_status(session_factory, issue_id) == "processing"


class TestIssueAdministration:
    @pytest.mark.asyncio
    async def test_register_issue_creates_with_default_title(self, issue_service):
        issue = await issue_service.register_issue(2025, 3, 41234, BOARD_URL)

        assert issue["title"] == "2025년 3월호"
        assert issue["image_count"] == 12
        assert issue["status"] == "pending"

    @pytest.mark.asyncio
    async def test_register_issue_upserts_by_year_and_month(self, issue_service, make_issue, session_factory):
        issue_id = await make_issue(year=2025, month=3, status="failed")

        issue = await issue_service.register_issue(2025, 3, 50000, "https://example.org/Board/Detail/66/50000",
                                                   title="3월호 개정판")

        assert issue["id"] == issue_id
        assert issue["board_id"] == 50000
        assert issue["title"] == "3월호 개정판"
        assert issue["status"] == "pending"
        async with session_factory() as db:
            assert await db.scalar(select(func.count(NewspaperIssue.id))) == 1

    @pytest.mark.asyncio
    async def test_register_issue_with_unreachable_source(self, session_factory, test_settings):
        service = IssueService(session_factory, page_source=FakePageSource(error=SourceUnreachable("down")),
                               config=test_settings)

        issue = await service.register_issue(2025, 4, 41235, BOARD_URL)

        assert issue["image_count"] == 0

    @pytest.mark.asyncio
    async def test_get_issue_and_images(self, issue_service, make_issue, session_factory):
        issue_id = await make_issue()
        async with session_factory() as db:
            for page in (2, 1):
                db.add(NewspaperImage(issue_id=issue_id, image_url=f"https://cdn/{page:03d}.jpg",
                                      page_number=page, file_name=f"{page:03d}.jpg", status="downloaded"))
            await db.commit()

        assert (await issue_service.get_issue(issue_id))["id"] == issue_id
        images = await issue_service.get_issue_images(issue_id)
        assert [image["page_number"] for image in images] == [1, 2]

    @pytest.mark.asyncio
    async def test_unknown_issue_raises(self, issue_service):
        with pytest.raises(IssueNotFound):
            await issue_service.get_issue(404)
        with pytest.raises(IssueNotFound):
            await issue_service.get_issue_images(404)

    @pytest.mark.asyncio
    async def test_reset_processing(self, issue_service, make_issue, session_factory):
        stuck_2024 = await make_issue(year=2024, month=11, status="processing")
        stuck_2025 = await make_issue(year=2025, month=2, status="processing")
        done = await make_issue(year=2025, month=3, status="completed")

        assert await issue_service.reset_processing(year=2025) == 1
        assert await _stored_status(session_factory, stuck_2024) == "processing"
        assert await _stored_status(session_factory, stuck_2025) == "pending"

        assert await issue_service.reset_processing() == 1
        assert await _stored_status(session_factory, stuck_2024) == "pending"
        assert await _stored_status(session_factory, done) == "completed"

    @pytest.mark.asyncio
    async def test_dashboard_stats(self, issue_service, make_issue, session_factory):
        issue_id = await make_issue()
        async with session_factory() as db:
            for page, article_type in enumerate(["행사", "행사", "선교", None], start=1):
                db.add(Article(issue_id=issue_id, page_number=page, article_type=article_type))
            await db.commit()

        stats = await issue_service.get_dashboard_stats()

        assert stats["total_issues"] == 1
        assert stats["total_articles"] == 4
        assert stats["total_events"] == 0
        assert stats["issues_by_status"] == {"pending": 1}
        assert stats["article_types"] == [
            {"article_type": "행사", "count": 2},
            {"article_type": "선교", "count": 1},
        ]
