"""
Background Scheduling
Puts compute-job resumes and stale-job sweeps on RQ queues.

The orchestrator only knows the ``schedule_resume(job_id, delay)`` method;
anything with that method can stand in for this class.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from rq import Queue, Retry
from rq.job import Job

from studio.core.config import settings
from studio.core.redis import Queues, get_redis

logger = logging.getLogger(__name__)


class QueueManager:
    """RQ-backed scheduler for background job polling."""

    def __init__(self, connection=None):
        self._connection = connection
        self._queues: Dict[str, Queue] = {}

    @property
    def connection(self):
        if self._connection is None:
            self._connection = get_redis()
        return self._connection

    def get_queue(self, name: str = Queues.DEFAULT) -> Queue:
        queue = self._queues.get(name)
        if queue is None:
            queue = Queue(name=name, connection=self.connection, default_timeout=settings.JOB_TIMEOUT_RESUME)
            self._queues[name] = queue
        return queue

    def schedule_resume(self, job_id: str, delay: int) -> Job:
        """
        Poll ``job_id`` again in ``delay`` seconds.

        Needs a worker running with the RQ scheduler. The RQ job is retried
        twice on crashes; the orchestrator makes repeated resumes harmless.
        """
        from studio.workers.tasks import resume_job_task

        rq_job = self.get_queue(Queues.JOBS).enqueue_in(
            timedelta(seconds=delay),
            resume_job_task,
            job_id,
            job_timeout=settings.JOB_TIMEOUT_RESUME,
            retry=Retry(max=2, interval=[10, 30]),
            meta={"type": "job_resume", "job_id": job_id, "scheduled_at": datetime.utcnow().isoformat()},
        )
        logger.info(f"Resume of {job_id} scheduled in {delay}s (rq job {rq_job.id})")
        return rq_job

    def enqueue_sweep(self, delay: Optional[int] = None) -> Job:
        """Sweep stale pending jobs, now or after ``delay`` seconds."""
        from studio.workers.tasks import sweep_pending_jobs_task

        queue = self.get_queue(Queues.MAINTENANCE)
        options = {
            "job_timeout": settings.JOB_TIMEOUT_SWEEP,
            "meta": {"type": "sweep", "scheduled_at": datetime.utcnow().isoformat()},
        }
        if delay:
            rq_job = queue.enqueue_in(timedelta(seconds=delay), sweep_pending_jobs_task, **options)
        else:
            rq_job = queue.enqueue(sweep_pending_jobs_task, **options)

        logger.info(f"Job sweep enqueued (delay {delay or 0}s)")
        return rq_job

    def get_queue_stats(self) -> Dict[str, Dict[str, int]]:
        """Queued, running, scheduled and failed counts per queue."""
        stats = {}
        for name in Queues.ALL:
            queue = self.get_queue(name)
            stats[name] = {
                "queued": len(queue),
                "started": queue.started_job_registry.count,
                "scheduled": queue.scheduled_job_registry.count,
                "failed": queue.failed_job_registry.count,
            }
        return stats


_queue_manager: Optional[QueueManager] = None


def get_queue_manager() -> QueueManager:
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = QueueManager()
    return _queue_manager
