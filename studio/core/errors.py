"""
Error Taxonomy
Typed failures raised by the ledger, the job orchestrator and batch actions.

Every error carries a ``retryable`` flag: retryable errors are transient
(transport hiccups, local timeouts) and may be retried by the caller or a
background worker, everything else is final for the request.
"""

from typing import Optional


class WorkerException(Exception):
    """Base exception for studio errors."""

    def __init__(self, message: str, retryable: bool = True, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.details = details or {}


class NonRetryableError(WorkerException):
    """Error that should NOT be retried (e.g., invalid input)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=False, details=details)


class RetryableError(WorkerException):
    """Error that SHOULD be retried (e.g., API timeout)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=True, details=details)


# --- Ledger ---

class InsufficientCredits(NonRetryableError):
    """Balance too low for the requested debit. Nothing was mutated."""

    def __init__(self, required: int, balance: int):
        super().__init__(
            f"Insufficient credits: need {required}, have {balance}",
            details={"required": required, "current": balance},
        )
        self.required = required
        self.balance = balance


class AccountNotFound(NonRetryableError):
    """No credit account exists for the user."""


# --- Compute provider ---

class SubmissionError(NonRetryableError):
    """Provider rejected the job before any remote work started."""


class GatewayTransportError(RetryableError):
    """Network or 5xx error talking to the provider."""


class RemoteFailure(NonRetryableError):
    """Provider ran the job and reported failure."""


class MalformedResult(NonRetryableError):
    """Provider reported success but returned no usable artifact."""


class JobTimeout(RetryableError):
    """Local wait budget exhausted. The remote job may still complete."""


class ReconciliationError(RetryableError):
    """Artifact could not be persisted after a provider success."""


# --- Entitlements ---

class EntitlementError(NonRetryableError):
    """Base class for remake/upscale entitlement violations."""


class AlreadyUsed(EntitlementError):
    """The batch's free remake has already been consumed."""

    def __init__(self, batch_id: int):
        super().__init__(
            "Remake has already been used for this batch",
            details={"batch_id": batch_id},
        )


class UpscaleBlocksRemake(EntitlementError):
    """Remake is unavailable once the batch has been upscaled."""

    def __init__(self, batch_id: int):
        super().__init__(
            "Remake is not available after this batch has been upscaled",
            details={"batch_id": batch_id},
        )


# --- Lookups ---

class NotFound(NonRetryableError):
    """Requested record does not exist (or belongs to another user)."""


__all__ = [
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "InsufficientCredits",
    "AccountNotFound",
    "SubmissionError",
    "GatewayTransportError",
    "RemoteFailure",
    "MalformedResult",
    "JobTimeout",
    "ReconciliationError",
    "EntitlementError",
    "AlreadyUsed",
    "UpscaleBlocksRemake",
    "NotFound",
]
