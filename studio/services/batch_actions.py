"""
Batch Actions
User-facing remake and upscale of one row of a generated batch.

Both run their provider requests inline (no Job record) and only touch the
batch once the new images are in hand. A paid upscale is charged before the
remote work and refunded exactly once if it fails.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import joinedload, selectinload

from studio.core.config import settings
from studio.core.database import SessionLocal
from studio.core.errors import MalformedResult, NotFound, RemoteFailure
from studio.models import GenerationBatch, IMAGES_PER_ROW, TransactionKind
from studio.services.artifacts import file_url, image_urls
from studio.services.entitlements import BatchEntitlementTracker
from studio.services.job_specs import REMAKE_KIND, image_row_spec, upscale_spec
from studio.services.ledger import Ledger
from studio.services.planner import resolve_row_prompt

logger = logging.getLogger(__name__)


@dataclass
class RowActionResult:
    batch_id: int
    row_index: int
    image_urls: List[str]
    free: bool = True
    credits_charged: int = 0


class BatchActions:
    """Remake and upscale, built on the orchestrator's inline submit/poll."""

    def __init__(
        self,
        orchestrator,
        tracker: Optional[BatchEntitlementTracker] = None,
        ledger: Optional[Ledger] = None,
        session_factory=SessionLocal,
        budget: Optional[float] = None,
    ):
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.tracker = tracker or BatchEntitlementTracker(session_factory)
        self.ledger = ledger or Ledger(session_factory)
        self.budget = settings.WAIT_BUDGET_INLINE if budget is None else budget

    def load_batch(self, user_id: str, batch_id: int) -> GenerationBatch:
        db = self.session_factory()
        try:
            batch = db.query(GenerationBatch).options(
                selectinload(GenerationBatch.rows),
                joinedload(GenerationBatch.model),
            ).filter(
                GenerationBatch.id == batch_id,
                GenerationBatch.user_id == user_id,
            ).first()
        finally:
            db.close()

        if batch is None:
            raise NotFound(f"Batch {batch_id} not found")
        return batch

    @staticmethod
    def _row(batch: GenerationBatch, row_index: int):
        for row in batch.rows:
            if row.row_index == row_index:
                return row
        raise NotFound(f"Row {row_index} not found in batch {batch.id}")

    def remake(self, user_id: str, batch_id: int, row_index: int) -> RowActionResult:
        """Regenerate one row with the prompt that produced it. Free, once per batch."""
        batch = self.load_batch(user_id, batch_id)
        self._row(batch, row_index)
        self.tracker.ensure_remake_available(batch)

        model = batch.model
        if model is None:
            raise NotFound(f"The model used for batch {batch_id} no longer exists")

        prompt = resolve_row_prompt(batch, row_index)
        logger.info(f"Remaking batch {batch_id} row {row_index} with prompt {prompt[:60]!r}")

        spec = image_row_spec(
            model.lora_url, model.trigger_word, prompt, batch.aspect_ratio, kind=REMAKE_KIND
        )
        result = self.orchestrator.run_inline([spec], self.budget)[0]

        urls = image_urls(result)
        if len(urls) < IMAGES_PER_ROW:
            raise MalformedResult(
                f"Remake returned {len(urls)} usable images, expected {IMAGES_PER_ROW}"
            )
        urls = urls[:IMAGES_PER_ROW]

        self.tracker.try_consume_remake(batch_id, row_index, urls)
        return RowActionResult(batch_id, row_index, urls)

    def upscale(self, user_id: str, batch_id: int, row_index: int) -> RowActionResult:
        """
        Upscale one row 2x. The first upscale of a batch is free.

        Images the provider fails to upscale keep their original URL; if
        none succeed the action fails.
        """
        self._row(self.load_batch(user_id, batch_id), row_index)

        # No remake can change the row once upscale_used is set
        free = self.tracker.try_consume_free_upscale(batch_id)
        row = self._row(self.load_batch(user_id, batch_id), row_index)
        originals = list(row.image_urls or [])
        cost = 0 if free else settings.PAID_UPSCALE_COST_CREDITS
        reference = None
        if cost:
            reference = f"upscale_{uuid.uuid4().hex[:12]}"
            self.ledger.debit(
                user_id,
                cost,
                kind=TransactionKind.DEBIT,
                description=f"Upscale batch {batch_id} row {row_index + 1}",
                reference=reference,
            )

        try:
            results = self.orchestrator.run_inline(
                [upscale_spec(url) for url in originals], self.budget, allow_partial=True
            )
            upscaled = [
                file_url((result or {}).get("image")) for result in results
            ]
            if not any(upscaled):
                raise RemoteFailure("Upscale failed for every image in the row")

            urls = [new or old for new, old in zip(upscaled, originals)]
            self.tracker.replace_row_images(batch_id, row_index, urls)
        except Exception as e:
            if cost:
                logger.warning(f"Paid upscale of batch {batch_id} failed, refunding: {e}")
                self.ledger.credit(
                    user_id,
                    cost,
                    kind=TransactionKind.REFUND,
                    description=f"Refund: upscale batch {batch_id} row {row_index + 1}",
                    reference=f"{reference}_refund",
                )
            raise

        logger.info(
            f"Upscaled batch {batch_id} row {row_index}: "
            f"{sum(1 for u in upscaled if u)}/{len(originals)} images"
        )
        return RowActionResult(batch_id, row_index, urls, free=free, credits_charged=cost)
