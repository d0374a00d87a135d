"""Extraction API router - job progress polling."""

from fastapi import APIRouter, Depends, HTTPException

from ..services.extraction_service import ExtractionService, get_extraction_service


router = APIRouter()


@router.get("/progress/{issue_id}")
async def get_extraction_progress(
    issue_id: int,
    extraction: ExtractionService = Depends(get_extraction_service)
):
    """Progress of the latest extraction job for an issue."""
    progress = await extraction.get_extraction_progress(issue_id)
    if progress is None:
        raise HTTPException(status_code=404, detail=f"No extraction job for issue {issue_id}")
    return progress.to_dict()


@router.get("/active")
async def get_active_runs(
    extraction: ExtractionService = Depends(get_extraction_service)
):
    """Job ids of runs still executing in this process."""
    return {"job_ids": extraction.registry.active_job_ids()}
