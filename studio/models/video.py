"""
Video Model
Image-to-video generations.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey

from studio.core.database import Base


class VideoGeneration(Base):
    """A generated video clip, created when a video job succeeds."""

    __tablename__ = "video_generations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    model_id = Column(Integer, ForeignKey("subject_models.id"), nullable=True)

    source_image_url = Column(String, nullable=False)
    motion_prompt = Column(Text, nullable=False)
    video_url = Column(String, nullable=False)

    job_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
