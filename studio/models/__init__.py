# Database models package
from studio.models.account import CreditAccount, CreditTransaction, TransactionKind
from studio.models.job import Job, JobKind, JobState
from studio.models.subject import SubjectModel
from studio.models.generation import GenerationBatch, BatchRow, IMAGES_PER_ROW
from studio.models.video import VideoGeneration

__all__ = [
    "CreditAccount",
    "CreditTransaction",
    "TransactionKind",
    "Job",
    "JobKind",
    "JobState",
    "SubjectModel",
    "GenerationBatch",
    "BatchRow",
    "IMAGES_PER_ROW",
    "VideoGeneration",
]
