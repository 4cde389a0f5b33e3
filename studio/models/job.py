"""
Job Model
Database model for long-running compute jobs on the remote provider.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, JSON

from studio.core.database import Base


class JobKind:
    """Job kind constants."""
    TRAIN = "train"
    GENERATE_BATCH = "generate_batch"
    GENERATE_VIDEO = "generate_video"
    GENERATE_SAMPLE = "generate_sample"

    ALL = (TRAIN, GENERATE_BATCH, GENERATE_VIDEO, GENERATE_SAMPLE)


class JobState:
    """
    Job state constants.

    TIMED_OUT is only ever reported to a caller whose wait budget ran out;
    the stored record stays POLLING so a later poll can resume it.
    """
    CREATED = "created"
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    TERMINAL = (SUCCEEDED, FAILED)
    PENDING = (CREATED, SUBMITTED, POLLING)


class Job(Base):
    """Compute job model."""

    __tablename__ = "jobs"

    id = Column(String, primary_key=True)  # job_xxxx format
    user_id = Column(String, nullable=False, index=True)
    kind = Column(String, nullable=False)

    # Lifecycle
    state = Column(String, default=JobState.CREATED, nullable=False, index=True)
    external_handles = Column(JSON, default=list)  # One provider handle per request
    credits_reserved = Column(Integer, default=0, nullable=False)

    # Everything the reconciler needs to persist the artifact
    payload = Column(JSON, default=dict)

    # Result
    artifact_ref = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    terminal_at = Column(DateTime, nullable=True)

    @property
    def external_handle(self):
        """The provider handle for single-request jobs."""
        handles = self.external_handles or []
        return handles[0] if handles else None

    @property
    def is_terminal(self) -> bool:
        return self.state in JobState.TERMINAL

    def __repr__(self):
        return f"<Job {self.id} {self.kind} {self.state}>"
