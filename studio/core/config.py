"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Subject Studio API"
    DEBUG: bool = False
    APP_BASE_URL: str = "http://localhost:3000"  # Used for links in notification emails

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./studio.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # Compute provider (fal.ai queue API)
    FAL_KEY: str = ""
    FAL_QUEUE_URL: str = "https://queue.fal.run"
    FAL_TIMEOUT_SECONDS: float = 30.0
    FAL_TRAINING_ENDPOINT: str = "fal-ai/flux-lora-fast-training"
    FAL_IMAGE_ENDPOINT: str = "fal-ai/flux-lora"
    FAL_VIDEO_ENDPOINT: str = "fal-ai/wan/v2.2-5b/image-to-video"
    FAL_UPSCALE_ENDPOINT: str = "fal-ai/clarity-upscaler"
    TRAINING_STEPS: int = 1000

    # Credit costs
    SIGNUP_CREDITS: int = 10
    TRAINING_COST_CREDITS: int = 10
    VIDEO_COST_CREDITS: int = 5
    PAID_UPSCALE_COST_CREDITS: int = 1

    # Polling
    POLL_INTERVAL_SECONDS: float = 5.0
    # How long a user request waits before handing the job to the background
    WAIT_BUDGET_TRAIN: float = 280.0
    WAIT_BUDGET_GENERATE: float = 120.0
    WAIT_BUDGET_VIDEO: float = 20.0
    WAIT_BUDGET_SAMPLE: float = 0.0
    WAIT_BUDGET_INLINE: float = 120.0  # remake / upscale
    # Background resume
    RESUME_DELAY_SECONDS: int = 30
    RESUME_BUDGET_SECONDS: float = 240.0
    SUBMIT_RETRIES: int = 2
    SUBMIT_RETRY_DELAY: float = 1.0
    # A CREATED job this old never recorded its submission
    SUBMIT_GRACE_SECONDS: int = 120
    # Pending jobs older than this are failed and refunded
    JOB_MAX_AGE_SECONDS: int = 86400
    SWEEP_OLDER_THAN_SECONDS: int = 60
    SWEEP_INTERVAL_SECONDS: int = 300

    # Notifications (Resend)
    RESEND_API_KEY: str = ""
    RESEND_API_URL: str = "https://api.resend.com/emails"
    NOTIFY_FROM_EMAIL: str = "Subject Studio <onboarding@resend.dev>"

    # Admin
    ADMIN_TOKEN: str = ""

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Worker settings
    JOB_TIMEOUT_RESUME: int = 600
    JOB_TIMEOUT_SWEEP: int = 1800

    # Video input validation
    MAX_MOTION_PROMPT_LENGTH: int = 500
    ALLOWED_IMAGE_DOMAINS: List[str] = [
        "fal.media",
        "replicate.delivery",
        "storage.googleapis.com",
        "res.cloudinary.com",
        "v0.blob.vercel-storage.com",
    ]

    @field_validator('FAL_KEY', 'RESEND_API_KEY', 'ADMIN_TOKEN', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
