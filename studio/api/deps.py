"""
API Dependencies
Common dependencies for FastAPI routes (database sessions, the calling
user, and the services routes drive).
"""

from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status

from studio.core.config import settings
from studio.core.database import SessionLocal
from studio.models import CreditAccount
from studio.services.batch_actions import BatchActions
from studio.services.ledger import Ledger
from studio.workers.orchestrator import JobOrchestrator, build_orchestrator


def get_db() -> Generator:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """The authenticated user, as asserted by the upstream auth layer."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    return x_user_id.strip()


@lru_cache()
def get_ledger() -> Ledger:
    return Ledger()


@lru_cache()
def get_orchestrator() -> JobOrchestrator:
    return build_orchestrator()


def get_batch_actions(
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    ledger: Ledger = Depends(get_ledger),
) -> BatchActions:
    return BatchActions(orchestrator, ledger=ledger, session_factory=ledger.session_factory)


def get_current_account(
    user_id: str = Depends(get_current_user_id),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    ledger: Ledger = Depends(get_ledger),
) -> CreditAccount:
    """The caller's credit account, opened with the signup grant on first use."""
    return ledger.open_account(user_id, email=x_user_email, display_name=x_user_name)


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    if not settings.ADMIN_TOKEN or x_admin_token != settings.ADMIN_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin token required"
        )
