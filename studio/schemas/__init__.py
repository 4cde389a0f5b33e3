# Pydantic schemas package
from studio.schemas.credits import CreditsResponse, TransactionResponse, CreditGrantRequest
from studio.schemas.job import JobResponse, JobLaunchResponse
from studio.schemas.subject import TrainRequest, SubjectModelResponse
from studio.schemas.generation import (
    BatchGenerateRequest, BatchRowResponse, BatchResponse, RowActionResponse
)
from studio.schemas.video import VideoGenerateRequest, VideoResponse

__all__ = [
    "CreditsResponse", "TransactionResponse", "CreditGrantRequest",
    "JobResponse", "JobLaunchResponse",
    "TrainRequest", "SubjectModelResponse",
    "BatchGenerateRequest", "BatchRowResponse", "BatchResponse", "RowActionResponse",
    "VideoGenerateRequest", "VideoResponse",
]
