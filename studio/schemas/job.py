"""
Job Schemas
Pydantic models for job API requests and responses.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class JobResponse(BaseModel):
    """Schema for a stored job."""
    id: str
    kind: str
    state: str
    credits_reserved: int
    artifact_ref: Optional[str]
    error_message: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]
    terminal_at: Optional[datetime]

    class Config:
        from_attributes = True


class JobLaunchResponse(BaseModel):
    """
    Schema for the answer to a job-starting request.

    ``state`` is ``timed_out`` when the job is still running remotely;
    poll ``GET /jobs/{job_id}`` for the final result.
    """
    job_id: str
    kind: str
    state: str
    credits_reserved: int = 0
    artifact_ref: Optional[str] = None
    artifact_urls: List[str] = []
    error: Optional[str] = None
    message: str = ""
