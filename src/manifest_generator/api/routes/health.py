"""
Health check endpoint.

Reports service version and the state of the deletion scheduler.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from manifest_generator.api.schemas import HealthResponse
from manifest_generator.lifecycle.scheduler import SchedulerStatus
from manifest_generator.version import __version__

router = APIRouter()


@router.get("", response_model=HealthResponse)
@router.get("/", response_model=HealthResponse, include_in_schema=False)
async def health_check(request: Request) -> HealthResponse:
    """
    Return service health.

    The service is degraded once the deletion scheduler has stopped,
    since published buckets would then only expire via the lifecycle rule.
    """
    orchestrator = request.app.state.orchestrator
    scheduler = orchestrator.scheduler
    healthy = scheduler.status is SchedulerStatus.RUNNING

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        scheduler=scheduler.status.value,
        pending_deletions=len(scheduler.pending()),
        expiration=orchestrator.expiration.describe(),
    )
