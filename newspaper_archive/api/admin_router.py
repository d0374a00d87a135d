"""Admin API router - maintenance operations and dashboard."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..services.issue_service import IssueService, get_issue_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/reset-processing")
async def reset_processing(
    year: Optional[int] = Query(None),
    issues: IssueService = Depends(get_issue_service)
):
    """Put issues stuck in processing back to pending."""
    try:
        count = await issues.reset_processing(year=year)
        return {"success": True, "reset_count": count}
    except Exception as e:
        logger.error(f"❌ Failed to reset processing issues: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to reset processing issues: {str(e)}")


@router.get("/dashboard")
async def get_dashboard(
    issues: IssueService = Depends(get_issue_service)
):
    try:
        return await issues.get_dashboard_stats()
    except Exception as e:
        logger.error(f"❌ Failed to load dashboard stats: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load dashboard: {str(e)}")
