"""Tests for the command line interface."""

from unittest.mock import AsyncMock, MagicMock

from click.testing import CliRunner

from newspaper_archive.cli import cli
from newspaper_archive.core.exceptions import IssueNotFound
from newspaper_archive.services.extraction_service import ExtractionProgress


def _progress(status="completed", processed=3, error=None):
    return ExtractionProgress(issue_id=1, job_id=4, status=status, progress=100,
                              total_items=3, processed_items=processed, error_message=error)


def test_issues_lists_table(mocker):
    service = MagicMock()
    service.list_issues = AsyncMock(return_value=[{
        "id": 1, "year": 2025, "month": 3, "title": "2025년 3월호", "image_count": 12, "status": "completed"
    }])
    mocker.patch("newspaper_archive.cli.get_issue_service", return_value=service)

    result = CliRunner().invoke(cli, ["issues", "--year", "2025"])

    assert result.exit_code == 0, result.output
    assert "2025-03" in result.output
    service.list_issues.assert_awaited_once_with(year=2025)


def test_progress_without_job(mocker):
    service = MagicMock()
    service.get_extraction_progress = AsyncMock(return_value=None)
    mocker.patch("newspaper_archive.cli.get_extraction_service", return_value=service)

    result = CliRunner().invoke(cli, ["progress", "7"])

    assert result.exit_code == 0
    assert "No extraction job" in result.output


def test_extract_waits_and_reports(mocker):
    service = MagicMock()
    service.start_extraction = AsyncMock(return_value=4)
    service.registry.get.return_value = None
    service.get_extraction_progress = AsyncMock(return_value=_progress())
    mocker.patch("newspaper_archive.cli.get_extraction_service", return_value=service)

    result = CliRunner().invoke(cli, ["extract", "1", "--quiet"])

    assert result.exit_code == 0, result.output
    assert "Extraction completed" in result.output
    service.start_extraction.assert_awaited_once_with(1)


def test_extract_failed_run_exits_nonzero(mocker):
    service = MagicMock()
    service.start_extraction = AsyncMock(return_value=4)
    service.registry.get.return_value = None
    service.get_extraction_progress = AsyncMock(return_value=_progress("failed", 0, "HTTP 503"))
    mocker.patch("newspaper_archive.cli.get_extraction_service", return_value=service)

    result = CliRunner().invoke(cli, ["extract", "1"])

    assert result.exit_code == 1
    assert "HTTP 503" in result.output


def test_extract_unknown_issue(mocker):
    service = MagicMock()
    service.start_extraction = AsyncMock(side_effect=IssueNotFound(1))
    mocker.patch("newspaper_archive.cli.get_extraction_service", return_value=service)

    result = CliRunner().invoke(cli, ["extract", "1"])

    assert result.exit_code == 1
    assert "Issue not found" in result.output


def test_reset_processing(mocker):
    service = MagicMock()
    service.reset_processing = AsyncMock(return_value=3)
    mocker.patch("newspaper_archive.cli.get_issue_service", return_value=service)

    result = CliRunner().invoke(cli, ["reset-processing"])

    assert result.exit_code == 0
    assert "Reset 3 issues" in result.output
