from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List

from studio.models import JobKind
from studio.services.compute_gateway import ComputeGateway, JobSpec, PollResult, ProviderStatus
from studio.services.job_specs import REMAKE_KIND, UPSCALE_KIND
from studio.services.notifier import Notifier

USER = "user_1"


def race(calls: int, fn: Callable[[], object]) -> list:
    """Run ``fn`` on ``calls`` threads released together; exceptions are returned."""
    barrier = threading.Barrier(calls)

    def run(_):
        barrier.wait()
        try:
            return fn()
        except Exception as e:
            return e

    with ThreadPoolExecutor(max_workers=calls) as pool:
        return list(pool.map(run, range(calls)))


@dataclass
class Completed:
    result: dict


def succeeded(result: dict) -> Completed:
    return Completed(result)


def failed(error: str = "boom") -> PollResult:
    return PollResult(ProviderStatus.FAILED, error=error)


RUNNING = PollResult(ProviderStatus.RUNNING)


class FakeGateway(ComputeGateway):
    """Scripted provider.

    Each submit takes the next script from ``plan``; without one the request
    succeeds on the first poll with a well-formed result for its kind. The last
    entry of a script repeats. Exceptions in a script are raised by ``poll``;
    ``fetch_errors`` are raised by ``fetch_result`` in order.
    """

    def __init__(self) -> None:
        self.submitted: List[JobSpec] = []
        self.polls: List[str] = []
        self.submit_errors: List[Exception] = []
        self.fetch_errors: List[Exception] = []
        self.fetches: List[str] = []
        self._planned: List[list] = []
        self._scripts: Dict[str, list] = {}
        self._results: Dict[str, dict] = {}

    def plan(self, *steps) -> None:
        self._planned.append(list(steps))

    def rescript(self, handle: str, *steps) -> None:
        self._scripts[handle] = list(steps)

    def submit(self, spec: JobSpec) -> str:
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        self.submitted.append(spec)
        handle = f"https://queue.test/requests/{len(self.submitted)}"
        if self._planned:
            self._scripts[handle] = self._planned.pop(0)
        else:
            self._scripts[handle] = [succeeded(self.result_for(spec, len(self.submitted)))]
        return handle

    def poll(self, handle: str) -> PollResult:
        self.polls.append(handle)
        script = self._scripts[handle]
        step = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(step, Exception):
            raise step
        if isinstance(step, Completed):
            self._results[handle] = step.result
            return PollResult(ProviderStatus.SUCCEEDED)
        return step

    def fetch_result(self, handle: str) -> dict:
        self.fetches.append(handle)
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        return self._results[handle]

    @staticmethod
    def result_for(spec: JobSpec, n: int) -> dict:
        if spec.kind == JobKind.TRAIN:
            return {"diffusers_lora_file": {"url": f"https://fal.media/lora_{n}.safetensors"}}
        if spec.kind == JobKind.GENERATE_VIDEO:
            return {"video": {"url": f"https://fal.media/video_{n}.mp4"}}
        if spec.kind == UPSCALE_KIND:
            return {"image": {"url": f"https://fal.media/up_{n}.png"}}
        if spec.kind in (JobKind.GENERATE_BATCH, JobKind.GENERATE_SAMPLE, REMAKE_KIND):
            count = spec.payload.get("num_images", 4)
            return {"images": [{"url": f"https://fal.media/img_{n}_{i}.png"} for i in range(count)]}
        return {}


class FakeNotifier(Notifier):
    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def notify_terminal(self, user_id, job_kind, outcome, artifact_refs=None, error=None) -> None:
        self.calls.append((user_id, job_kind, outcome))


class FakeScheduler:
    def __init__(self) -> None:
        self.resumes: List[str] = []

    def schedule_resume(self, job_id: str, delay: int) -> None:
        self.resumes.append(job_id)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


