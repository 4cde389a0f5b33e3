"""
Generation Schemas
Pydantic models for batch generation, remake and upscale.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from studio.services.planner import BATCH_PRICING, valid_scene_ids
from studio.services.presets import DEFAULT_ASPECT_RATIO, PLATFORM_PRESETS


class BatchGenerateRequest(BaseModel):
    """Schema for a batch generation request."""
    model_id: int = Field(..., description="Trained subject model to generate with")
    num_images: int = Field(..., description="4, 12 or 20 images")
    scene_ids: List[str] = Field(default_factory=list, description="Scene presets to spread rows across")
    custom_prompt: Optional[str] = Field(None, max_length=500, description="Use one prompt for every row")
    aspect_ratio: str = Field(DEFAULT_ASPECT_RATIO, description="Platform preset id")

    @field_validator("num_images")
    @classmethod
    def supported_size(cls, v: int) -> int:
        if v not in BATCH_PRICING:
            raise ValueError(f"num_images must be one of {sorted(BATCH_PRICING)}")
        return v

    @field_validator("aspect_ratio")
    @classmethod
    def known_aspect_ratio(cls, v: str) -> str:
        if v not in PLATFORM_PRESETS:
            raise ValueError(f"aspect_ratio must be one of {sorted(PLATFORM_PRESETS)}")
        return v

    @model_validator(mode="after")
    def prompt_source(self):
        if not (self.custom_prompt and self.custom_prompt.strip()) and not valid_scene_ids(self.scene_ids):
            raise ValueError("Select at least one valid scene or provide a custom prompt")
        return self


class BatchRowResponse(BaseModel):
    row_index: int
    image_urls: List[str]
    prompt: Optional[str]
    scene_id: Optional[str]

    class Config:
        from_attributes = True


class BatchResponse(BaseModel):
    """Schema for a generated batch."""
    id: int
    model_id: Optional[int]
    scene_ids: List[str] = []
    custom_prompt: Optional[str]
    aspect_ratio: Optional[str]
    credits_used: int
    remake_used: bool
    upscale_used: bool
    job_id: Optional[str]
    created_at: datetime
    rows: List[BatchRowResponse] = []

    class Config:
        from_attributes = True


class RowActionResponse(BaseModel):
    """Schema for the result of a remake or upscale."""
    batch_id: int
    row_index: int
    image_urls: List[str]
    free: bool = True
    credits_charged: int = 0

    class Config:
        from_attributes = True
