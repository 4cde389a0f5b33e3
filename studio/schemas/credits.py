"""
Credit Schemas
Pydantic models for balance and transaction history responses.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class CreditsResponse(BaseModel):
    """Schema for a user's balance."""
    user_id: str
    balance: int
    email: Optional[str] = None
    display_name: Optional[str] = None

    class Config:
        from_attributes = True


class TransactionResponse(BaseModel):
    """Schema for one ledger entry."""
    id: int
    kind: str
    credits_change: int
    balance_after: int
    description: Optional[str]
    job_id: Optional[str]
    reference: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class CreditGrantRequest(BaseModel):
    """Credit a completed payment (or an admin grant). Idempotent on reference."""
    user_id: str = Field(..., min_length=1)
    credits: int = Field(..., gt=0, description="Credits to add")
    reference: str = Field(..., min_length=1, description="Payment id; replays are ignored")
    description: Optional[str] = None
