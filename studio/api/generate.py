"""
Batch Generation API Routes
Generate a batch of images from a trained subject model.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from studio.api.deps import get_current_account, get_db, get_orchestrator
from studio.api.jobs import launch_response
from studio.core.config import settings
from studio.models import CreditAccount, JobKind, SubjectModel
from studio.schemas.generation import BatchGenerateRequest
from studio.schemas.job import JobLaunchResponse
from studio.services.job_specs import batch_specs
from studio.services.planner import batch_cost, plan_row_prompts
from studio.workers.orchestrator import JobOrchestrator

router = APIRouter()


@router.post("/batch-generate", response_model=JobLaunchResponse)
def batch_generate(
    request: BatchGenerateRequest,
    response: Response,
    account: CreditAccount = Depends(get_current_account),
    db: Session = Depends(get_db),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """
    Generate 4, 12 or 20 images in rows of four.

    Rows are spread evenly across the selected scenes (or all use the
    custom prompt). The batch is saved only if every row succeeds;
    otherwise the credits are refunded.
    """
    model = db.query(SubjectModel).filter(
        SubjectModel.id == request.model_id,
        SubjectModel.user_id == account.user_id,
    ).first()

    if not model:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Model not found"
        )

    rows = plan_row_prompts(request.num_images, request.scene_ids, request.custom_prompt)
    specs = batch_specs(
        model.lora_url,
        model.trigger_word,
        [row["prompt"] for row in rows],
        request.aspect_ratio,
    )

    outcome = orchestrator.start(
        account.user_id,
        JobKind.GENERATE_BATCH,
        specs,
        cost=batch_cost(request.num_images),
        payload={
            "model_id": model.id,
            "num_images": request.num_images,
            "scene_ids": request.scene_ids,
            "custom_prompt": request.custom_prompt,
            "aspect_ratio": request.aspect_ratio,
            "rows": rows,
        },
        wait_budget=settings.WAIT_BUDGET_GENERATE,
    )
    return launch_response(outcome, response)
