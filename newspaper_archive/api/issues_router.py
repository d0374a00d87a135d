"""Issues API router - issue registration, extraction start and progress."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from ..core.exceptions import ExtractionAlreadyRunning, IssueNotFound
from ..services.extraction_service import ExtractionService, get_extraction_service
from ..services.issue_service import IssueService, get_issue_service

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Pydantic Models for Issues
# ============================================================================

class CreateIssueRequest(BaseModel):
    year: int = Field(..., ge=1900, le=2100)
    month: int = Field(..., ge=1, le=12)
    board_id: int
    url: str
    title: Optional[str] = None
    published_date: Optional[date] = None


# ============================================================================
# Issue Endpoints
# ============================================================================

@router.get("")
async def list_issues(
    year: Optional[int] = Query(None),
    issues: IssueService = Depends(get_issue_service)
):
    """List issues, newest first."""
    try:
        return {"issues": await issues.list_issues(year=year)}
    except Exception as e:
        logger.error(f"❌ Failed to list issues: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list issues: {str(e)}")


@router.post("")
async def create_issue(
    payload: CreateIssueRequest,
    issues: IssueService = Depends(get_issue_service)
):
    """Register or refresh the issue for a year and month."""
    try:
        issue = await issues.register_issue(
            year=payload.year,
            month=payload.month,
            board_id=payload.board_id,
            url=payload.url,
            title=payload.title,
            published_date=payload.published_date,
        )
        return {"success": True, "issue": issue}
    except Exception as e:
        logger.error(f"❌ Failed to register issue {payload.year}-{payload.month}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to register issue: {str(e)}")


@router.get("/{issue_id}")
async def get_issue(
    issue_id: int,
    issues: IssueService = Depends(get_issue_service)
):
    try:
        return await issues.get_issue(issue_id)
    except IssueNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{issue_id}/images")
async def get_issue_images(
    issue_id: int,
    issues: IssueService = Depends(get_issue_service)
):
    try:
        return {"images": await issues.get_issue_images(issue_id)}
    except IssueNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{issue_id}/extract")
async def start_extraction(
    issue_id: int,
    extraction: ExtractionService = Depends(get_extraction_service)
):
    """Start extraction for an issue; the run continues in the background."""
    try:
        job_id = await extraction.start_extraction(issue_id)
    except IssueNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ExtractionAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"❌ Failed to start extraction for issue {issue_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to start extraction: {str(e)}")

    return {
        "success": True,
        "message": "Extraction started",
        "issue_id": issue_id,
        "job_id": job_id
    }


@router.get("/{issue_id}/progress")
async def get_issue_progress(
    issue_id: int,
    extraction: ExtractionService = Depends(get_extraction_service)
):
    progress = await extraction.get_extraction_progress(issue_id)
    if progress is None:
        raise HTTPException(status_code=404, detail=f"No extraction job for issue {issue_id}")
    return progress.to_dict()
