"""
Video Generation Schemas
Pydantic models for image-to-video requests and responses.
"""

from datetime import datetime
from typing import Optional
from urllib.parse import urlparse
from pydantic import BaseModel, Field, field_validator

from studio.core.config import settings


class VideoGenerateRequest(BaseModel):
    """Schema for a video generation request."""
    image_url: str = Field(..., description="Source image; must be hosted on an allowed domain")
    motion_prompt: str = Field(..., min_length=1, description="How the scene should move")
    model_id: Optional[int] = Field(None, description="Model the source image came from")

    @field_validator("image_url")
    @classmethod
    def allowed_source(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme != "https" or not parsed.hostname:
            raise ValueError("image_url must be an https URL")
        host = parsed.hostname.lower()
        if not any(host == d or host.endswith(f".{d}") for d in settings.ALLOWED_IMAGE_DOMAINS):
            raise ValueError("Image URL must be from an allowed domain")
        return v

    @field_validator("motion_prompt")
    @classmethod
    def prompt_length(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("motion_prompt must not be empty")
        if len(v) > settings.MAX_MOTION_PROMPT_LENGTH:
            raise ValueError(
                f"motion_prompt must be at most {settings.MAX_MOTION_PROMPT_LENGTH} characters"
            )
        return v


class VideoResponse(BaseModel):
    """Schema for a generated video."""
    id: int
    model_id: Optional[int]
    source_image_url: str
    motion_prompt: str
    video_url: str
    job_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
