"""
Video Generation API Routes
Animate a generated image into a short clip.
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from studio.api.deps import get_current_account, get_current_user_id, get_db, get_orchestrator
from studio.api.jobs import launch_response
from studio.core.config import settings
from studio.models import CreditAccount, JobKind, SubjectModel, VideoGeneration
from studio.schemas.job import JobLaunchResponse
from studio.schemas.video import VideoGenerateRequest, VideoResponse
from studio.services.job_specs import video_spec
from studio.workers.orchestrator import JobOrchestrator

router = APIRouter()


@router.post("/generate", response_model=JobLaunchResponse)
def generate_video(
    request: VideoGenerateRequest,
    response: Response,
    account: CreditAccount = Depends(get_current_account),
    db: Session = Depends(get_db),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """
    Generate a video from an image.

    Costs VIDEO_COST_CREDITS, refunded if generation fails. Videos take
    longer than the request's wait budget, so this normally answers 202.
    """
    if request.model_id is not None:
        owned = db.query(SubjectModel.id).filter(
            SubjectModel.id == request.model_id,
            SubjectModel.user_id == account.user_id,
        ).scalar()
        if owned is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Model not found"
            )

    cost = settings.VIDEO_COST_CREDITS
    outcome = orchestrator.start(
        account.user_id,
        JobKind.GENERATE_VIDEO,
        [video_spec(request.image_url, request.motion_prompt, cost=cost)],
        cost=cost,
        payload={
            "model_id": request.model_id,
            "source_image_url": request.image_url,
            "motion_prompt": request.motion_prompt,
        },
        wait_budget=settings.WAIT_BUDGET_VIDEO,
    )
    return launch_response(outcome, response)


@router.get("", response_model=List[VideoResponse])
def list_videos(
    limit: int = 20,
    offset: int = 0,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """The caller's completed videos, newest first."""
    return db.query(VideoGeneration).filter(
        VideoGeneration.user_id == user_id
    ).order_by(VideoGeneration.created_at.desc()).offset(offset).limit(limit).all()
