"""Job status API: poll one job, list an owner's jobs."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from imagejobs.api.deps import get_services
from imagejobs.jobs.models import JobPage, JobView
from imagejobs.jobs.status import MAX_PAGE_SIZE
from imagejobs.services import Services

router = APIRouter()


@router.get("/jobs/{job_id}", response_model=JobView)
async def get_job_status(job_id: str, services: Services = Depends(get_services)):
    """Current record state plus the live queue state (`queueInfo`)."""
    return await services.status.get_status(job_id)


@router.get("/users/{owner_id}/jobs", response_model=JobPage)
async def get_user_jobs(
    owner_id: str,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    services: Services = Depends(get_services),
):
    """Newest first. Unknown `status` values are ignored."""
    return await services.status.get_user_jobs(
        owner_id, status_filter=status, page=page, limit=limit
    )
