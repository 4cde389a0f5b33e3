from __future__ import annotations

import pytest

from studio.core.errors import GatewayTransportError, SubmissionError
from studio.models import JobKind, JobState
from studio.services.job_specs import video_spec
from studio.workers.base import with_retry
from studio.workers.tasks import JobResumeWorker, JobSweepWorker

from _fakes import RUNNING, USER, succeeded

IMAGE = "https://fal.media/files/source.png"


def _flaky(failures, error):
    calls = []

    def call():
        calls.append(1)
        if len(calls) <= failures:
            raise error
        return "ok"

    return call, calls


def test_retry_recovers_from_transient_errors() -> None:
    call, calls = _flaky(2, GatewayTransportError("reset"))

    assert with_retry(max_retries=2, retry_delay=0)(call)() == "ok"
    assert len(calls) == 3


def test_retry_gives_up_with_last_error() -> None:
    call, calls = _flaky(5, GatewayTransportError("reset"))

    with pytest.raises(GatewayTransportError):
        with_retry(max_retries=2, retry_delay=0)(call)()
    assert len(calls) == 3


def test_non_retryable_errors_are_not_retried() -> None:
    call, calls = _flaky(5, SubmissionError("rejected"))

    with pytest.raises(SubmissionError):
        with_retry(max_retries=3, retry_delay=0)(call)()
    assert len(calls) == 1


def _timed_out_video(orchestrator, gateway):
    gateway.plan(RUNNING)
    return orchestrator.start(
        USER,
        JobKind.GENERATE_VIDEO,
        [video_spec(IMAGE, "slow pan", cost=5)],
        cost=5,
        payload={"model_id": None, "source_image_url": IMAGE, "motion_prompt": "slow pan"},
    )


def test_resume_task_finishes_job(orchestrator, gateway, account) -> None:
    outcome = _timed_out_video(orchestrator, gateway)
    gateway.rescript(gateway.polls[0], succeeded({"video": {"url": "https://fal.media/v.mp4"}}))

    result = JobResumeWorker(orchestrator).execute(outcome.job_id)

    assert result["state"] == JobState.SUCCEEDED
    assert result["artifact_ref"].startswith("video:")


def test_sweep_task_summarizes_states(orchestrator, gateway, account, monkeypatch) -> None:
    from studio.core.config import settings

    monkeypatch.setattr(settings, "SWEEP_OLDER_THAN_SECONDS", 0)
    _timed_out_video(orchestrator, gateway)

    result = JobSweepWorker(orchestrator).execute()

    assert result == {"checked": 1, "states": {JobState.TIMED_OUT: 1}}
