"""
Jobs API Routes
Job status queries. A status query on a pending job polls the provider
once, so users who return later see the final result even if no
background worker is running.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from studio.api.deps import get_current_user_id, get_db, get_orchestrator
from studio.models import Job, JobState
from studio.schemas.job import JobLaunchResponse, JobResponse
from studio.workers.orchestrator import JobOrchestrator, JobOutcome

router = APIRouter()

_MESSAGES = {
    JobState.SUCCEEDED: "Job completed",
    JobState.FAILED: "Job failed; reserved credits were refunded",
    JobState.TIMED_OUT: "Job is still running; check back with GET /api/v1/jobs/{job_id}",
}


def launch_response(outcome: JobOutcome, response: Response) -> JobLaunchResponse:
    """Translate an outcome into the HTTP answer for a job-starting request."""
    if outcome.state == JobState.SUCCEEDED:
        response.status_code = status.HTTP_200_OK
    elif outcome.state == JobState.FAILED:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    else:
        response.status_code = status.HTTP_202_ACCEPTED

    return JobLaunchResponse(
        job_id=outcome.job_id,
        kind=outcome.kind,
        state=outcome.state,
        credits_reserved=outcome.credits_reserved,
        artifact_ref=outcome.artifact_ref,
        artifact_urls=outcome.artifact_urls,
        error=outcome.error,
        message=_MESSAGES.get(outcome.state, "").replace("{job_id}", outcome.job_id),
    )


@router.get("/{job_id}", response_model=JobResponse)
def get_job_status(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Get job status, checking the provider once if the job is still pending."""
    job = orchestrator.get_job(job_id, user_id=user_id)
    if job.state in JobState.PENDING:
        orchestrator.recheck(job_id)
        job = orchestrator.get_job(job_id, user_id=user_id)
    return job


@router.get("", response_model=List[JobResponse])
def list_jobs(
    kind: Optional[str] = None,
    state: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the caller's jobs with optional filters."""
    query = db.query(Job).filter(Job.user_id == user_id)

    if kind:
        query = query.filter(Job.kind == kind)

    if state:
        query = query.filter(Job.state == state)

    return query.order_by(Job.created_at.desc()).offset(offset).limit(limit).all()
