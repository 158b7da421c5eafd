"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter, Depends

from imagejobs.api.deps import get_services
from imagejobs.services import Services

router = APIRouter()


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Service health, queue depth and worker pool state."""
    return {
        "status": "healthy",
        "queue": {
            "name": services.queue.name,
            "counts": await services.queue.counts(),
        },
        "workers": services.pool.snapshot(),
        "record_store": services.settings.record_store,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
