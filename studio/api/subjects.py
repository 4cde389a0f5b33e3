"""
Subject API Routes
Training subject models and listing them.
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from studio.api.deps import get_current_account, get_current_user_id, get_db, get_orchestrator
from studio.api.jobs import launch_response
from studio.core.config import settings
from studio.models import CreditAccount, Job, JobKind, JobState, SubjectModel
from studio.schemas.job import JobLaunchResponse, JobResponse
from studio.schemas.subject import SubjectModelResponse, TrainRequest
from studio.services.job_specs import training_spec
from studio.workers.orchestrator import JobOrchestrator

router = APIRouter()


@router.post("/train", response_model=JobLaunchResponse)
def train_model(
    request: TrainRequest,
    response: Response,
    account: CreditAccount = Depends(get_current_account),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """
    Train a subject model from a zip of photos.

    Costs TRAINING_COST_CREDITS, refunded if training fails. Training
    usually takes a few minutes; if it is not done within the request's
    wait budget the response is 202 and the job finishes in the background.
    """
    cost = settings.TRAINING_COST_CREDITS
    outcome = orchestrator.start(
        account.user_id,
        JobKind.TRAIN,
        [training_spec(request.images_data_url, request.trigger_word, cost=cost)],
        cost=cost,
        payload={
            "name": request.name.strip(),
            "trigger_word": request.trigger_word,
            "images_count": request.images_count,
        },
        wait_budget=settings.WAIT_BUDGET_TRAIN,
    )
    return launch_response(outcome, response)


@router.get("/train/pending", response_model=List[JobResponse])
def pending_trainings(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Training jobs that have not finished yet."""
    return db.query(Job).filter(
        Job.user_id == user_id,
        Job.kind == JobKind.TRAIN,
        Job.state.in_(JobState.PENDING),
    ).order_by(Job.created_at.desc()).all()


@router.get("/models", response_model=List[SubjectModelResponse])
def list_models(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return db.query(SubjectModel).filter(
        SubjectModel.user_id == user_id
    ).order_by(SubjectModel.created_at.desc()).all()


@router.get("/models/{model_id}", response_model=SubjectModelResponse)
def get_model(
    model_id: int,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    model = db.query(SubjectModel).filter(
        SubjectModel.id == model_id,
        SubjectModel.user_id == user_id,
    ).first()

    if not model:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Model not found"
        )

    return model
