# Workers package - job orchestration and background polling with RQ

from studio.workers.base import (
    WorkerStatus,
    with_retry,
    BaseWorker
)
from studio.workers.orchestrator import (
    JobOrchestrator,
    JobOutcome,
    build_orchestrator
)
from studio.workers.queue import (
    QueueManager,
    get_queue_manager
)
from studio.workers.tasks import (
    resume_job_task,
    sweep_pending_jobs_task
)

__all__ = [
    # Base
    "WorkerStatus",
    "with_retry",
    "BaseWorker",
    # Orchestration
    "JobOrchestrator",
    "JobOutcome",
    "build_orchestrator",
    # Queue
    "QueueManager",
    "get_queue_manager",
    # Tasks
    "resume_job_task",
    "sweep_pending_jobs_task"
]
