"""
Subject Model
A trained LoRA adapter for a user's subject (pet, product, person).
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from studio.core.database import Base


class SubjectModel(Base):
    """Trained subject model, created when a training job succeeds."""

    __tablename__ = "subject_models"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_subject_models_user_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)

    name = Column(String, nullable=False)
    trigger_word = Column(String, nullable=False)
    lora_url = Column(String, nullable=False)
    training_images_count = Column(Integer, default=0)
    preview_image_url = Column(String, nullable=True)

    job_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    batches = relationship("GenerationBatch", back_populates="model")

    def __repr__(self):
        return f"<SubjectModel {self.id} {self.name!r}>"
