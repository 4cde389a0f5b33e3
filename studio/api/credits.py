"""
Credits API Routes
Balance, transaction history and payment grants.
"""

from typing import List
from fastapi import APIRouter, Depends, Query

from studio.api.deps import get_current_account, get_ledger, require_admin
from studio.models import CreditAccount
from studio.schemas.credits import CreditGrantRequest, CreditsResponse, TransactionResponse
from studio.services.ledger import Ledger

router = APIRouter()


@router.get("", response_model=CreditsResponse)
def get_credits(account: CreditAccount = Depends(get_current_account)):
    """Get the caller's credit balance."""
    return account


@router.get("/transactions", response_model=List[TransactionResponse])
def list_transactions(
    limit: int = Query(50, ge=1, le=200),
    account: CreditAccount = Depends(get_current_account),
    ledger: Ledger = Depends(get_ledger),
):
    """Most recent credit transactions first."""
    return ledger.transactions(account.user_id, limit=limit)


@router.post(
    "/grants",
    response_model=TransactionResponse,
    dependencies=[Depends(require_admin)],
)
def grant_credits(
    request: CreditGrantRequest,
    ledger: Ledger = Depends(get_ledger),
):
    """
    Credit a completed payment.

    Called by the payment webhook (or an operator). Delivering the same
    reference twice credits it once.
    """
    return ledger.purchase(
        request.user_id,
        request.credits,
        reference=request.reference,
        description=request.description,
    )
