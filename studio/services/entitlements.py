"""
Batch Entitlement Tracker
The only writer of a batch's ``remake_used`` and ``upscale_used`` flags.

Rules:
    - one free remake per batch
    - the first upscale is free, later ones are paid
    - once a batch has been upscaled it can never be remade
    - remaking does not prevent upscaling

Each rule is a single conditional UPDATE, so two concurrent requests can
never both win the same entitlement.
"""

import logging
from typing import List

from studio.core.database import SessionLocal
from studio.core.errors import AlreadyUsed, NotFound, UpscaleBlocksRemake
from studio.models import BatchRow, GenerationBatch

logger = logging.getLogger(__name__)


class BatchEntitlementTracker:
    """Compare-and-set transitions on batch entitlement flags."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def ensure_remake_available(self, batch: GenerationBatch):
        """Fail fast before doing remote work; the real check is the CAS."""
        if batch.upscale_used:
            raise UpscaleBlocksRemake(batch.id)
        if batch.remake_used:
            raise AlreadyUsed(batch.id)

    def try_consume_remake(self, batch_id: int, row_index: int, images: List[str]):
        """
        Claim the batch's remake and store the row's new images, atomically.

        Raises:
            UpscaleBlocksRemake: the batch has been upscaled.
            AlreadyUsed: the remake was already claimed.
            NotFound: no such batch or row.
        """
        db = self.session_factory()
        try:
            claimed = db.query(GenerationBatch).filter(
                GenerationBatch.id == batch_id,
                GenerationBatch.remake_used.is_(False),
                GenerationBatch.upscale_used.is_(False),
            ).update({GenerationBatch.remake_used: True}, synchronize_session=False)

            if claimed == 0:
                upscaled = db.query(GenerationBatch.upscale_used).filter(
                    GenerationBatch.id == batch_id
                ).scalar()
                db.rollback()
                if upscaled is None:
                    raise NotFound(f"Batch {batch_id} not found")
                if upscaled:
                    raise UpscaleBlocksRemake(batch_id)
                raise AlreadyUsed(batch_id)

            written = db.query(BatchRow).filter(
                BatchRow.batch_id == batch_id,
                BatchRow.row_index == row_index,
            ).update({BatchRow.image_urls: list(images)}, synchronize_session=False)
            if written == 0:
                db.rollback()
                raise NotFound(f"Row {row_index} not found in batch {batch_id}")

            db.commit()
        finally:
            db.close()

        logger.info(f"Remake used on batch {batch_id} row {row_index}")

    def try_consume_free_upscale(self, batch_id: int) -> bool:
        """
        Claim the batch's free upscale.

        Returns True if this call got it free, False if the caller must pay.
        Either way the batch is marked upscaled, which forecloses remake.
        """
        db = self.session_factory()
        try:
            claimed = db.query(GenerationBatch).filter(
                GenerationBatch.id == batch_id,
                GenerationBatch.upscale_used.is_(False),
            ).update({GenerationBatch.upscale_used: True}, synchronize_session=False)

            if claimed == 0:
                exists = db.query(GenerationBatch.id).filter(
                    GenerationBatch.id == batch_id
                ).scalar()
                if exists is None:
                    raise NotFound(f"Batch {batch_id} not found")
            db.commit()
        finally:
            db.close()

        logger.info(f"Upscale on batch {batch_id} ({'free' if claimed else 'paid'})")
        return claimed == 1

    def replace_row_images(self, batch_id: int, row_index: int, images: List[str]):
        db = self.session_factory()
        try:
            written = db.query(BatchRow).filter(
                BatchRow.batch_id == batch_id,
                BatchRow.row_index == row_index,
            ).update({BatchRow.image_urls: list(images)}, synchronize_session=False)
            if written == 0:
                raise NotFound(f"Row {row_index} not found in batch {batch_id}")
            db.commit()
        finally:
            db.close()
