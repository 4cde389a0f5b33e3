"""
Job Orchestrator
Drives every credit-consuming compute job through one protocol:

    authorize   debit the job's cost and insert the job, in one transaction
    submit      hand the request(s) to the provider, recording the handles
    poll        until the provider reports a terminal status or the wait
                budget runs out
    terminate   failure: mark FAILED and refund, in one transaction
                success: persist the artifact and mark SUCCEEDED, in one
                transaction, then notify

A caller whose budget runs out gets TIMED_OUT back while the job stays
POLLING with its handles persisted; a background resume, the periodic sweep
or the user's next status check picks it up from there. Every path that ends
a job goes through a compare-and-set on the job's state, so however many
pollers race, a job is refunded at most once and its artifact written once.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from studio.core.config import settings
from studio.core.database import SessionLocal
from studio.core.errors import (
    GatewayTransportError,
    JobTimeout,
    MalformedResult,
    NotFound,
    ReconciliationError,
    RemoteFailure,
    SubmissionError,
)
from studio.models import Job, JobKind, JobState, TransactionKind
from studio.services.artifacts import Artifact, get_reconciler
from studio.services.compute_gateway import ComputeGateway, JobSpec, ProviderStatus
from studio.services.job_specs import sample_spec
from studio.services.ledger import Ledger
from studio.services.notifier import Notifier
from studio.workers.base import with_retry

logger = logging.getLogger(__name__)


@dataclass
class JobOutcome:
    """What the caller learns about a job after driving it."""
    job_id: str
    kind: str
    state: str
    credits_reserved: int = 0
    artifact_ref: Optional[str] = None
    artifact_urls: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.state not in JobState.TERMINAL


@dataclass
class _Wait:
    """Progress of a set of provider requests."""
    results: Dict[int, Optional[Dict[str, Any]]] = field(default_factory=dict)
    failure: Optional[str] = None
    done: bool = False


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:12]}"


class JobOrchestrator:
    """Owns Job.state and the debit/refund pairing of every job."""

    def __init__(
        self,
        gateway: ComputeGateway,
        ledger: Optional[Ledger] = None,
        notifier: Optional[Notifier] = None,
        scheduler=None,
        session_factory=SessionLocal,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: Optional[float] = None,
        submit_retries: Optional[int] = None,
        submit_retry_delay: Optional[float] = None,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.ledger = ledger or Ledger(session_factory)
        self.notifier = notifier
        self.scheduler = scheduler
        self.sleep = sleep
        self.clock = clock
        self.poll_interval = settings.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.submit_retries = settings.SUBMIT_RETRIES if submit_retries is None else submit_retries
        self.submit_retry_delay = (
            settings.SUBMIT_RETRY_DELAY if submit_retry_delay is None else submit_retry_delay
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(
        self,
        user_id: str,
        kind: str,
        specs: List[JobSpec],
        cost: int,
        payload: Optional[Dict[str, Any]] = None,
        wait_budget: float = 0.0,
    ) -> JobOutcome:
        """
        Authorize, submit and poll a new job.

        Raises:
            InsufficientCredits: no job was created and nothing was charged.
        """
        if not specs:
            raise ValueError("A job needs at least one provider request")

        job_id = self._authorize(user_id, kind, cost, payload or {})

        try:
            handles = [self._submit(spec) for spec in specs]
        except SubmissionError as e:
            logger.warning(f"Job {job_id} submission failed: {e.message}")
            self.fail(job_id, f"Submission failed: {e.message}")
            return self.outcome(job_id)

        self._mark_submitted(job_id, handles)
        return self._drive(job_id, wait_budget)

    def resume(self, job_id: str, budget: float = 0.0, reschedule: bool = True) -> JobOutcome:
        """Continue polling a job from its persisted handles."""
        job = self._load(job_id)
        if job.state in JobState.TERMINAL:
            return self._outcome_from(job)

        age = (datetime.utcnow() - job.created_at).total_seconds()
        if age > settings.JOB_MAX_AGE_SECONDS:
            if job.state != JobState.CREATED:
                # A finished remote job is still collected
                outcome = self._drive(job_id, 0.0, reschedule=False)
                if not outcome.is_pending:
                    return outcome
            self.fail(job_id, "Timed out waiting for the compute provider")
            return self.outcome(job_id)

        if job.state == JobState.CREATED:
            if age > settings.SUBMIT_GRACE_SECONDS:
                self.fail(job_id, "Submission was never recorded")
            return self.outcome(job_id)

        return self._drive(job_id, budget, reschedule=reschedule)

    def recheck(self, job_id: str) -> JobOutcome:
        """One poll for a pending job, used by status queries."""
        return self.resume(job_id, budget=0.0, reschedule=False)

    def sweep(self, budget: float = 0.0, older_than: Optional[int] = None) -> List[JobOutcome]:
        """Poll every pending job not touched for ``older_than`` seconds."""
        if older_than is None:
            older_than = settings.SWEEP_OLDER_THAN_SECONDS
        cutoff = datetime.utcnow() - timedelta(seconds=older_than)

        db = self.session_factory()
        try:
            job_ids = [
                job_id for (job_id,) in db.query(Job.id).filter(
                    Job.state.in_(JobState.PENDING),
                    Job.updated_at <= cutoff,
                ).order_by(Job.created_at)
            ]
        finally:
            db.close()

        outcomes = []
        for job_id in job_ids:
            try:
                outcomes.append(self.resume(job_id, budget=budget, reschedule=False))
            except ReconciliationError as e:
                logger.error(f"Sweep could not reconcile {job_id}: {e.message}")
        logger.info(f"Sweep checked {len(job_ids)} pending jobs")
        return outcomes

    def fail(self, job_id: str, reason: str) -> bool:
        """
        Mark a job FAILED and refund its reservation, atomically.

        Returns False without side effects if the job was already terminal.
        """
        db = self.session_factory()
        try:
            job = db.query(Job).filter(Job.id == job_id).first()
            if job is None:
                raise NotFound(f"Job {job_id} not found")
            user_id, kind, reserved = job.user_id, job.kind, job.credits_reserved

            now = datetime.utcnow()
            updated = db.query(Job).filter(
                Job.id == job_id,
                Job.state.notin_(JobState.TERMINAL),
            ).update(
                {
                    Job.state: JobState.FAILED,
                    Job.error_message: reason,
                    Job.terminal_at: now,
                    Job.updated_at: now,
                },
                synchronize_session=False,
            )
            if updated == 0:
                db.rollback()
                logger.info(f"Job {job_id} already terminal, not failing again")
                return False

            if reserved > 0:
                self.ledger.credit(
                    user_id,
                    reserved,
                    kind=TransactionKind.REFUND,
                    description=f"Refund: {kind} failed",
                    job_id=job_id,
                    session=db,
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(f"Job {job_id} failed ({reason}); refunded {reserved} credits")
        self._notify(user_id, kind, JobState.FAILED, error=reason)
        return True

    def outcome(self, job_id: str) -> JobOutcome:
        return self._outcome_from(self._load(job_id))

    def get_job(self, job_id: str, user_id: Optional[str] = None) -> Job:
        job = self._load(job_id)
        if user_id is not None and job.user_id != user_id:
            raise NotFound(f"Job {job_id} not found")
        return job

    def run_inline(
        self,
        specs: List[JobSpec],
        budget: float,
        allow_partial: bool = False,
    ) -> List[Optional[Dict[str, Any]]]:
        """
        Submit and poll provider requests without a Job record.

        Results come back in spec order. With ``allow_partial`` a request
        that fails yields None instead of failing the whole call.

        Raises:
            SubmissionError, RemoteFailure, JobTimeout
        """
        handles: List[Optional[str]] = []
        for spec in specs:
            try:
                handles.append(self._submit(spec))
            except SubmissionError:
                if not allow_partial:
                    raise
                logger.warning(f"Inline {spec.kind} submission failed, skipping")
                handles.append(None)

        wait = _Wait(results={i: None for i, h in enumerate(handles) if h is None})
        deadline = self.clock() + budget
        while True:
            self._poll_round(handles, wait, allow_partial)
            if wait.failure:
                raise RemoteFailure(wait.failure)
            if wait.done:
                return [wait.results[i] for i in range(len(handles))]

            remaining = deadline - self.clock()
            if remaining <= 0:
                raise JobTimeout(f"Provider did not finish within {budget:.0f}s")
            self.sleep(min(self.poll_interval, remaining))

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _authorize(self, user_id: str, kind: str, cost: int, payload: Dict[str, Any]) -> str:
        job_id = new_job_id()
        db = self.session_factory()
        try:
            db.add(Job(
                id=job_id,
                user_id=user_id,
                kind=kind,
                state=JobState.CREATED,
                external_handles=[],
                credits_reserved=cost,
                payload=payload,
            ))
            db.flush()
            if cost > 0:
                self.ledger.debit(
                    user_id,
                    cost,
                    kind=TransactionKind.DEBIT,
                    description=f"{kind.replace('_', ' ').capitalize()} ({job_id})",
                    job_id=job_id,
                    session=db,
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(f"Created {kind} job {job_id} for {user_id} ({cost} credits reserved)")
        return job_id

    def _submit(self, spec: JobSpec) -> str:
        submit = with_retry(
            max_retries=self.submit_retries,
            retry_delay=self.submit_retry_delay,
            retryable_exceptions=(GatewayTransportError,),
        )(self.gateway.submit)
        try:
            return submit(spec)
        except GatewayTransportError as e:
            raise SubmissionError(f"Provider unreachable: {e.message}") from e

    def _mark_submitted(self, job_id: str, handles: List[str]):
        db = self.session_factory()
        try:
            db.query(Job).filter(
                Job.id == job_id,
                Job.state == JobState.CREATED,
            ).update(
                {
                    Job.state: JobState.SUBMITTED,
                    Job.external_handles: handles,
                    Job.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
            db.commit()
        finally:
            db.close()

    def _drive(self, job_id: str, budget: float, reschedule: bool = True) -> JobOutcome:
        job = self._load(job_id)
        if job.state in JobState.TERMINAL:
            return self._outcome_from(job)

        handles = list(job.external_handles or [])
        if job.state == JobState.SUBMITTED:
            self._set_polling(job_id)

        wait = _Wait()
        deadline = self.clock() + budget
        while True:
            self._poll_round(handles, wait, allow_partial=False)
            if wait.failure:
                self.fail(job_id, wait.failure)
                return self.outcome(job_id)
            if wait.done:
                return self._complete(job_id, [wait.results[i] for i in range(len(handles))])

            remaining = deadline - self.clock()
            if remaining <= 0:
                break
            self.sleep(min(self.poll_interval, remaining))

        self._touch(job_id)
        if reschedule and self.scheduler is not None:
            try:
                self.scheduler.schedule_resume(job_id, settings.RESUME_DELAY_SECONDS)
            except Exception as e:
                # The periodic sweep still picks the job up
                logger.error(f"Could not schedule resume for {job_id}: {e}")

        logger.info(f"Job {job_id} still running after {budget:.0f}s, continuing in background")
        outcome = self.outcome(job_id)
        if outcome.is_pending:
            outcome.state = JobState.TIMED_OUT
        return outcome

    def _poll_round(self, handles: List[Optional[str]], wait: _Wait, allow_partial: bool):
        for index, handle in enumerate(handles):
            if index in wait.results:
                continue
            try:
                status = self.gateway.poll(handle)
                if status.status == ProviderStatus.SUCCEEDED:
                    wait.results[index] = self.gateway.fetch_result(handle)
                    continue
            except GatewayTransportError as e:
                logger.warning(f"Transient error polling {handle}: {e.message}")
                continue
            except RemoteFailure as e:
                error = e.message
            else:
                if status.status != ProviderStatus.FAILED:
                    continue
                error = status.error or "unknown error"

            if allow_partial:
                wait.results[index] = None
            else:
                wait.failure = f"Remote job failed: {error}"
                return

        wait.done = len(wait.results) == len(handles)

    def _complete(self, job_id: str, results: List[Optional[Dict[str, Any]]]) -> JobOutcome:
        job = self._load(job_id)
        if job.state in JobState.TERMINAL:
            return self._outcome_from(job)

        reconciler = get_reconciler(job.kind)
        try:
            data = reconciler.validate(job, results)
        except MalformedResult as e:
            logger.warning(f"Job {job_id} returned an unusable result: {e.message}")
            self.fail(job_id, f"Malformed result: {e.message}")
            return self.outcome(job_id)

        db = self.session_factory()
        try:
            job = db.query(Job).filter(Job.id == job_id).one()
            user_id, kind, payload = job.user_id, job.kind, dict(job.payload or {})

            artifact: Artifact = reconciler.persist(db, job, data)
            now = datetime.utcnow()
            updated = db.query(Job).filter(
                Job.id == job_id,
                Job.state.notin_(JobState.TERMINAL),
            ).update(
                {
                    Job.state: JobState.SUCCEEDED,
                    Job.artifact_ref: artifact.ref,
                    Job.terminal_at: now,
                    Job.updated_at: now,
                },
                synchronize_session=False,
            )
            if updated == 0:
                # Another poller finished the job first
                db.rollback()
                return self.outcome(job_id)
            db.commit()
        except MalformedResult as e:
            db.rollback()
            self.fail(job_id, f"Malformed result: {e.message}")
            return self.outcome(job_id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not persist artifact for job {job_id}: {e}")
            raise ReconciliationError(
                f"Job {job_id} succeeded but its result could not be saved",
                details={"job_id": job_id},
            ) from e
        finally:
            db.close()

        logger.info(f"Job {job_id} succeeded -> {artifact.ref}")
        self._notify(user_id, kind, JobState.SUCCEEDED, artifact_refs=artifact.urls)

        if kind == JobKind.TRAIN:
            self._launch_sample(user_id, artifact.record_id, payload.get("trigger_word"), artifact.urls[0])

        outcome = self.outcome(job_id)
        outcome.artifact_urls = artifact.urls
        return outcome

    def _launch_sample(self, user_id: str, model_id: int, trigger_word: str, lora_url: str):
        """Free preview image for a new model. Never affects the training job."""
        try:
            self.start(
                user_id,
                JobKind.GENERATE_SAMPLE,
                [sample_spec(lora_url, trigger_word)],
                cost=0,
                payload={"model_id": model_id},
                wait_budget=settings.WAIT_BUDGET_SAMPLE,
            )
        except Exception as e:
            logger.error(f"Could not start preview generation for model {model_id}: {e}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, job_id: str) -> Job:
        db = self.session_factory()
        try:
            job = db.query(Job).filter(Job.id == job_id).first()
            if job is None:
                raise NotFound(f"Job {job_id} not found")
            return job
        finally:
            db.close()

    def _set_polling(self, job_id: str):
        db = self.session_factory()
        try:
            db.query(Job).filter(
                Job.id == job_id,
                Job.state == JobState.SUBMITTED,
            ).update(
                {Job.state: JobState.POLLING, Job.updated_at: datetime.utcnow()},
                synchronize_session=False,
            )
            db.commit()
        finally:
            db.close()

    def _touch(self, job_id: str):
        db = self.session_factory()
        try:
            db.query(Job).filter(
                Job.id == job_id,
                Job.state.in_(JobState.PENDING),
            ).update({Job.updated_at: datetime.utcnow()}, synchronize_session=False)
            db.commit()
        finally:
            db.close()

    def _notify(self, user_id: str, kind: str, state: str, artifact_refs=None, error=None):
        if self.notifier is None:
            return
        try:
            self.notifier.notify_terminal(user_id, kind, state, artifact_refs or [], error=error)
        except Exception as e:
            logger.error(f"Notifier raised for {user_id} ({kind}/{state}): {e}")

    @staticmethod
    def _outcome_from(job: Job) -> JobOutcome:
        return JobOutcome(
            job_id=job.id,
            kind=job.kind,
            state=job.state,
            credits_reserved=job.credits_reserved or 0,
            artifact_ref=job.artifact_ref,
            error=job.error_message,
        )


def build_orchestrator(session_factory=SessionLocal) -> JobOrchestrator:
    """Orchestrator wired to the real provider, Resend and the RQ scheduler."""
    from studio.services.compute_gateway import get_gateway
    from studio.services.notifier import EmailNotifier
    from studio.workers.queue import get_queue_manager

    return JobOrchestrator(
        gateway=get_gateway(),
        ledger=Ledger(session_factory),
        notifier=EmailNotifier(session_factory),
        scheduler=get_queue_manager(),
        session_factory=session_factory,
    )
