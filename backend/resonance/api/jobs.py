from fastapi import APIRouter
from resonance.schemas.track import JobStatusResponse
from resonance.tasks.celery_app import celery_app

router = APIRouter()

STATUS_MAP = {
    "PENDING": "pending",
    "RECEIVED": "pending",
    "STARTED": "progress",
    "RETRY": "progress",
    "SUCCESS": "success",
    "FAILURE": "failure",
    "REVOKED": "failure",
}


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str):
    """Status of a queued re-analysis run."""
    result = celery_app.AsyncResult(job_id)
    state = STATUS_MAP.get(result.state, "pending")

    if state == "success":
        return JobStatusResponse(job_id=job_id, status=state, result=result.result)
    if state == "failure":
        return JobStatusResponse(job_id=job_id, status=state, error=str(result.result))
    return JobStatusResponse(job_id=job_id, status=state)
