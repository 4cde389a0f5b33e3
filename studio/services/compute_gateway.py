"""
Compute Gateway
Stateless adapter over the remote compute provider's job queue.

The gateway never retries and never sleeps: it performs exactly one HTTP
exchange per call and reports what it saw. Retry and polling policy belong
to the job orchestrator.

Provider protocol (fal.ai queue API):
    POST {queue}/{endpoint}         -> {request_id, response_url, status_url}
    GET  {response_url}/status      -> {status: IN_QUEUE | IN_PROGRESS | COMPLETED | ...}
    GET  {response_url}             -> model output
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from studio.core.config import settings
from studio.core.errors import GatewayTransportError, RemoteFailure, SubmissionError

logger = logging.getLogger(__name__)


class ProviderStatus:
    """Normalized provider statuses."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    TERMINAL = (SUCCEEDED, FAILED)


@dataclass
class JobSpec:
    """One provider request. ``payload`` is forwarded unmodified."""
    kind: str
    endpoint: str
    payload: Dict[str, Any] = field(default_factory=dict)
    cost: int = 0


@dataclass
class PollResult:
    status: str
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ProviderStatus.TERMINAL


class ComputeGateway(ABC):
    """Interface the orchestrator drives. Implementations must be stateless."""

    @abstractmethod
    def submit(self, spec: JobSpec) -> str:
        """
        Start a remote job and return its opaque handle.

        Raises:
            SubmissionError: the provider rejected the request.
            GatewayTransportError: the request may or may not have been received.
        """

    @abstractmethod
    def poll(self, handle: str) -> PollResult:
        """Report the remote job's status. The output is read with ``fetch_result``."""

    @abstractmethod
    def fetch_result(self, handle: str) -> Dict[str, Any]:
        """
        Fetch the output of a completed remote job.

        Raises:
            RemoteFailure: the provider has no usable output for the handle.
            GatewayTransportError: transient, the fetch may be repeated.
        """


_STATUS_MAP = {
    "IN_QUEUE": ProviderStatus.QUEUED,
    "IN_PROGRESS": ProviderStatus.RUNNING,
    "COMPLETED": ProviderStatus.SUCCEEDED,
    "FAILED": ProviderStatus.FAILED,
    "ERROR": ProviderStatus.FAILED,
    "CANCELLED": ProviderStatus.FAILED,
}


class FalGateway(ComputeGateway):
    """fal.ai queue API client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.FAL_KEY
        self.base_url = (base_url or settings.FAL_QUEUE_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=settings.FAL_TIMEOUT_SECONDS)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise GatewayTransportError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 500:
            raise GatewayTransportError(
                f"{method} {url} returned {response.status_code}",
                details={"status_code": response.status_code},
            )
        return response

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500]
        if isinstance(body, dict):
            detail = body.get("detail") or body.get("error") or body
            return str(detail)[:500]
        return str(body)[:500]

    def submit(self, spec: JobSpec) -> str:
        if not self.is_configured:
            raise SubmissionError("FAL_KEY is not configured")

        url = f"{self.base_url}/{spec.endpoint}"
        response = self._request("POST", url, json=spec.payload)
        if response.status_code >= 400:
            raise SubmissionError(
                f"Provider rejected {spec.kind} request: {self._error_text(response)}",
                details={"status_code": response.status_code, "endpoint": spec.endpoint},
            )

        body = response.json()
        handle = body.get("response_url")
        if not handle and body.get("request_id"):
            handle = f"{self.base_url}/{spec.endpoint}/requests/{body['request_id']}"
        if not handle:
            raise SubmissionError(f"Provider returned no request id for {spec.kind}")

        logger.info(f"Submitted {spec.kind} to {spec.endpoint}: {body.get('request_id')}")
        return handle

    def poll(self, handle: str) -> PollResult:
        response = self._request("GET", f"{handle}/status")
        if response.status_code >= 400:
            return PollResult(ProviderStatus.FAILED, error=self._error_text(response))

        raw = str(response.json().get("status", "")).upper()
        status = _STATUS_MAP.get(raw)
        if status is None:
            logger.warning(f"Unknown provider status {raw!r} for {handle}, treating as running")
            status = ProviderStatus.RUNNING

        if status == ProviderStatus.FAILED:
            return PollResult(status, error=f"Provider reported {raw}")

        return PollResult(status)

    def fetch_result(self, handle: str) -> Dict[str, Any]:
        # A completed request can still carry a model error in its output
        response = self._request("GET", handle)
        if response.status_code >= 400:
            raise RemoteFailure(
                f"Result fetch failed: {self._error_text(response)}",
                details={"status_code": response.status_code},
            )
        return response.json()

    def close(self):
        self._client.close()


_gateway: Optional[ComputeGateway] = None


def get_gateway() -> ComputeGateway:
    """Get or create the process-wide gateway."""
    global _gateway
    if _gateway is None:
        _gateway = FalGateway()
    return _gateway
