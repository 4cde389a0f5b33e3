"""
RQ Task Definitions
Background continuation of compute jobs whose request-time wait ran out.
"""

import logging
from typing import Any, Dict

from studio.core.config import settings
from studio.workers.base import BaseWorker

logger = logging.getLogger(__name__)


class JobResumeWorker(BaseWorker):
    """Polls one pending job from its persisted provider handles."""

    TASK_NAME = "job_resume"

    def __init__(self, orchestrator=None):
        super().__init__()
        self._orchestrator = orchestrator

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from studio.workers.orchestrator import build_orchestrator
            self._orchestrator = build_orchestrator()
        return self._orchestrator

    def execute(self, job_id: str) -> Dict[str, Any]:
        self._log_start(self.TASK_NAME, job_id=job_id)
        try:
            outcome = self.orchestrator.resume(job_id, budget=settings.RESUME_BUDGET_SECONDS)
        except Exception as e:
            self._log_error(self.TASK_NAME, e)
            raise

        self._log_complete(self.TASK_NAME, f"Job {job_id} -> {outcome.state}")
        return {"job_id": job_id, "state": outcome.state, "artifact_ref": outcome.artifact_ref}


class JobSweepWorker(BaseWorker):
    """Polls every stale pending job once."""

    TASK_NAME = "job_sweep"

    def __init__(self, orchestrator=None):
        super().__init__()
        self._orchestrator = orchestrator

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from studio.workers.orchestrator import build_orchestrator
            self._orchestrator = build_orchestrator()
        return self._orchestrator

    def execute(self) -> Dict[str, Any]:
        self._log_start(self.TASK_NAME)
        try:
            outcomes = self.orchestrator.sweep(budget=0.0)
        except Exception as e:
            self._log_error(self.TASK_NAME, e)
            raise

        summary: Dict[str, int] = {}
        for outcome in outcomes:
            summary[outcome.state] = summary.get(outcome.state, 0) + 1
        self._log_complete(self.TASK_NAME, f"{len(outcomes)} jobs checked: {summary}")
        return {"checked": len(outcomes), "states": summary}


def resume_job_task(job_id: str) -> Dict[str, Any]:
    """RQ task: resume polling a compute job."""
    return JobResumeWorker().execute(job_id)


def sweep_pending_jobs_task(reschedule: bool = True) -> Dict[str, Any]:
    """
    RQ task: sweep stale pending jobs.

    Re-enqueues itself after SWEEP_INTERVAL_SECONDS so one seeded sweep
    keeps running for as long as workers do.
    """
    try:
        return JobSweepWorker().execute()
    finally:
        if reschedule:
            from studio.workers.queue import get_queue_manager
            get_queue_manager().enqueue_sweep(delay=settings.SWEEP_INTERVAL_SECONDS)
