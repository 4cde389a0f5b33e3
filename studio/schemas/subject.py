"""
Subject Schemas
Pydantic models for training requests and trained models.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class TrainRequest(BaseModel):
    """Schema for a training request."""
    name: str = Field(..., min_length=1, max_length=50, description="Display name for the model")
    trigger_word: str = Field(
        ..., min_length=2, max_length=20,
        description="Token the model learns for the subject (letters, numbers, _ and -)",
    )
    images_data_url: str = Field(..., description="URL of a zip archive of training photos")
    images_count: int = Field(..., ge=5, le=20, description="Number of photos in the archive")

    @field_validator("trigger_word")
    @classmethod
    def trigger_word_charset(cls, v: str) -> str:
        v = v.strip()
        if not all(c.isalnum() or c in "_-" for c in v):
            raise ValueError("Trigger word may only contain letters, numbers, _ and -")
        return v

    @field_validator("images_data_url")
    @classmethod
    def https_url(cls, v: str) -> str:
        if not v.startswith("https://"):
            raise ValueError("images_data_url must be an https URL")
        return v


class SubjectModelResponse(BaseModel):
    """Schema for a trained model."""
    id: int
    name: str
    trigger_word: str
    lora_url: str
    training_images_count: int
    preview_image_url: Optional[str]
    job_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
