"""Background job endpoints for sync, validate, repair and reconcile."""

import logging
import threading

from fastapi import APIRouter, HTTPException, status

from beaver_api.dependencies import get_graph_store, get_jobs
from beaver_api.metrics import get_metrics_collector
from beaver_api.schemas.jobs import JobRequest, JobResponse
from beaver_core.container import get_container
from beaver_core.models.types import EntityType
from beaver_core.services.reconcile import execute_job
from beaver_core.storage.job_queue import Job, JobQueue

router = APIRouter()
logger = logging.getLogger(__name__)

# Background threads for running jobs
_job_threads: dict[str, threading.Thread] = {}


def _cleanup_completed_threads() -> None:
    """Drop references to threads that have finished."""
    for job_id, thread in list(_job_threads.items()):
        if not thread.is_alive():
            _job_threads.pop(job_id, None)


def _to_response(job: Job) -> JobResponse:
    return JobResponse(
        job_id=job.job_id,
        mode=job.mode,
        status=job.status,
        progress=job.progress,
        entity=job.entity,
        result=job.result,
        started_at=job.started_at,
        completed_at=job.completed_at,
        error_message=job.error_message,
        created_at=job.created_at,
    )


def _run_job(job_queue: JobQueue, job_id: str) -> None:
    """Run a job in a background thread.

    The job row already records any failure, so the thread only logs it.
    """
    metrics = get_metrics_collector()
    metrics.increment_active_jobs()
    success = False
    try:
        execute_job(
            job_queue,
            job_id,
            job_queue.store,
            get_graph_store(),
            get_container().get_config(),
        )
        success = True
    except Exception as e:
        logger.error(f"Background job {job_id} failed: {e}", extra={"event": "job_failed", "job_id": job_id})
    finally:
        metrics.record_job_completion(success)
        job_queue.store.close()
        _job_threads.pop(job_id, None)


@router.post("/jobs", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED, tags=["jobs"])
def create_job(request: JobRequest) -> JobResponse:
    """Queue a sync or integrity job and start it in the background.

    Only one job runs at a time; while one is running its status is
    returned instead of queueing another.
    """
    if request.entity is not None:
        if request.mode != "sync":
            raise HTTPException(status_code=422, detail="entity is only valid for sync jobs")
        if request.entity not in {e.value for e in EntityType}:
            raise HTTPException(status_code=422, detail=f"Unknown entity type: {request.entity}")

    job_queue = get_jobs()

    running_job = job_queue.get_running_job()
    if running_job:
        return _to_response(running_job)

    job = job_queue.create_job(mode=request.mode, entity=request.entity)

    _cleanup_completed_threads()
    thread = threading.Thread(target=_run_job, args=(job_queue, job.job_id), daemon=True)
    _job_threads[job.job_id] = thread
    thread.start()

    return _to_response(job)


@router.get("/jobs/{job_id}", response_model=JobResponse, tags=["jobs"])
def get_job_status(job_id: str) -> JobResponse:
    """Get the status, progress and result of a job."""
    job = get_jobs().get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _to_response(job)


@router.get("/jobs", tags=["jobs"])
def list_jobs(status: str | None = None, limit: int = 50) -> dict[str, list[JobResponse]]:
    """List jobs, most recent first, optionally filtered by status."""
    jobs = get_jobs().list_jobs(status=status, limit=limit)
    return {"jobs": [_to_response(job) for job in jobs]}


@router.post("/jobs/{job_id}/cancel", response_model=JobResponse, tags=["jobs"])
def cancel_job(job_id: str) -> JobResponse:
    """Cancel a job. A running job stops at its next row boundary."""
    job = get_jobs().cancel_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _to_response(job)
