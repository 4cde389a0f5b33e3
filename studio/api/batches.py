"""
Batch API Routes
Browse generated batches and apply the per-batch remake and upscale.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, selectinload

from studio.api.deps import get_batch_actions, get_current_account, get_current_user_id, get_db
from studio.models import CreditAccount, GenerationBatch
from studio.schemas.generation import BatchResponse, RowActionResponse
from studio.services.batch_actions import BatchActions

router = APIRouter()


@router.get("", response_model=List[BatchResponse])
def list_batches(
    model_id: Optional[int] = None,
    limit: int = 20,
    offset: int = 0,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List the caller's batches, newest first."""
    query = db.query(GenerationBatch).options(
        selectinload(GenerationBatch.rows)
    ).filter(GenerationBatch.user_id == user_id)

    if model_id is not None:
        query = query.filter(GenerationBatch.model_id == model_id)

    return query.order_by(GenerationBatch.created_at.desc()).offset(offset).limit(limit).all()


@router.get("/{batch_id}", response_model=BatchResponse)
def get_batch(
    batch_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    batch = db.query(GenerationBatch).options(
        selectinload(GenerationBatch.rows)
    ).filter(
        GenerationBatch.id == batch_id,
        GenerationBatch.user_id == user_id,
    ).first()

    if not batch:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Batch not found"
        )

    return batch


@router.post("/{batch_id}/rows/{row_index}/remake", response_model=RowActionResponse)
def remake_row(
    batch_id: int,
    row_index: int,
    account: CreditAccount = Depends(get_current_account),
    actions: BatchActions = Depends(get_batch_actions),
):
    """
    Regenerate one row with its original prompt.

    Free, once per batch, and not available after the batch was upscaled.
    """
    return actions.remake(account.user_id, batch_id, row_index)


@router.post("/{batch_id}/rows/{row_index}/upscale", response_model=RowActionResponse)
def upscale_row(
    batch_id: int,
    row_index: int,
    account: CreditAccount = Depends(get_current_account),
    actions: BatchActions = Depends(get_batch_actions),
):
    """
    Upscale one row 2x.

    The first upscale of a batch is free; later ones cost
    PAID_UPSCALE_COST_CREDITS and are refunded if they fail.
    """
    return actions.upscale(account.user_id, batch_id, row_index)
