# Services package - business logic and external integrations
from studio.services.ledger import Ledger
from studio.services.compute_gateway import ComputeGateway, FalGateway, JobSpec, PollResult, ProviderStatus
from studio.services.notifier import Notifier, EmailNotifier
from studio.services.entitlements import BatchEntitlementTracker
from studio.services.batch_actions import BatchActions

__all__ = [
    "Ledger",
    "ComputeGateway",
    "FalGateway",
    "JobSpec",
    "PollResult",
    "ProviderStatus",
    "Notifier",
    "EmailNotifier",
    "BatchEntitlementTracker",
    "BatchActions",
]
