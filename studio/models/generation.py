"""
Generation Models
Image batches produced from a subject model, one row of four images per
provider request.
"""

from datetime import datetime
from sqlalchemy import (
    Column, String, Text, DateTime, Integer, Boolean, ForeignKey, JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from studio.core.database import Base

IMAGES_PER_ROW = 4


class GenerationBatch(Base):
    """
    A completed batch of generated images.

    Written once, with every row, when the generation job succeeds.
    ``remake_used`` and ``upscale_used`` are owned by the entitlement tracker.
    """

    __tablename__ = "generation_batches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    model_id = Column(Integer, ForeignKey("subject_models.id"), nullable=True, index=True)

    # Request
    scene_ids = Column(JSON, default=list)
    custom_prompt = Column(Text, nullable=True)
    aspect_ratio = Column(String, default="instagram-feed")
    credits_used = Column(Integer, default=0)

    # Entitlements
    remake_used = Column(Boolean, default=False, nullable=False)
    upscale_used = Column(Boolean, default=False, nullable=False)

    job_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    model = relationship("SubjectModel", back_populates="batches")
    rows = relationship(
        "BatchRow",
        back_populates="batch",
        order_by="BatchRow.row_index",
        cascade="all, delete-orphan",
    )

    @property
    def image_urls(self):
        """All images, flattened in row order."""
        return [url for row in self.rows for url in (row.image_urls or [])]

    def __repr__(self):
        return f"<GenerationBatch {self.id} rows={len(self.rows)}>"


class BatchRow(Base):
    """One row (four images) of a batch, with the prompt that produced it."""

    __tablename__ = "batch_rows"
    __table_args__ = (
        UniqueConstraint("batch_id", "row_index", name="uq_batch_rows_batch_row"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    batch_id = Column(Integer, ForeignKey("generation_batches.id"), nullable=False, index=True)
    row_index = Column(Integer, nullable=False)

    image_urls = Column(JSON, nullable=False)
    prompt = Column(Text, nullable=True)
    scene_id = Column(String, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    batch = relationship("GenerationBatch", back_populates="rows")
