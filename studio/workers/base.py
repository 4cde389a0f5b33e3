"""
Worker Helpers
Bounded retries for provider calls and the bookkeeping shared by RQ tasks.
"""

import logging
import time
from datetime import datetime
from enum import Enum
from functools import wraps
from typing import Callable, Optional, Tuple, Type, TypeVar

from rq import get_current_job

from studio.core.errors import NonRetryableError, RetryableError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class WorkerStatus(str, Enum):
    """Progress recorded in the RQ job's meta."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    exponential_backoff: bool = True,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (RetryableError, TimeoutError, ConnectionError),
):
    """
    Retry a call on transient errors.

    ``max_retries`` counts retries after the first attempt. Non-retryable
    studio errors and anything outside ``retryable_exceptions`` propagate
    immediately; once retries run out the last transient error is raised.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except NonRetryableError:
                    raise
                except retryable_exceptions as e:
                    if attempt >= max_retries:
                        logger.error(f"{name} still failing after {max_retries} retries: {e}")
                        raise
                    delay = retry_delay * (2 ** attempt if exponential_backoff else 1)
                    attempt += 1
                    logger.warning(f"{name} failed ({e}), retry {attempt}/{max_retries} in {delay:.1f}s")
                    time.sleep(delay)

        return wrapper

    return decorator


class BaseWorker:
    """
    Base for RQ task runners: timing, logging and status in the RQ job meta.

    Works outside RQ too (tests, scripts), where the meta updates are skipped.
    """

    def __init__(self):
        self.start_time: Optional[datetime] = None

    def _set_status(self, status: WorkerStatus, details: Optional[dict] = None):
        rq_job = get_current_job()
        if rq_job is None:
            return
        rq_job.meta.update({
            "worker_status": status.value,
            "status_details": details or {},
            "updated_at": datetime.utcnow().isoformat(),
        })
        rq_job.save_meta()

    def _elapsed(self) -> float:
        return (datetime.utcnow() - self.start_time).total_seconds() if self.start_time else 0.0

    def _log_start(self, task_name: str, **context):
        self.start_time = datetime.utcnow()
        self._set_status(WorkerStatus.RUNNING)
        logger.info(f"[START] {task_name} {context}")

    def _log_complete(self, task_name: str, result_summary: str = ""):
        self._set_status(WorkerStatus.SUCCESS, {"summary": result_summary})
        logger.info(f"[COMPLETE] {task_name} in {self._elapsed():.2f}s: {result_summary}")

    def _log_error(self, task_name: str, error: Exception):
        self._set_status(WorkerStatus.FAILED, {"error": str(error)})
        logger.error(f"[ERROR] {task_name} after {self._elapsed():.2f}s: {error}")
