"""
Artifact Reconcilers
Turn a provider's output into database records once a job succeeds.

Each reconciler works in two steps. ``validate`` inspects the raw provider
results and raises MalformedResult if there is nothing usable, without
touching the database. ``persist`` writes the records on the session it is
given and does not commit: the orchestrator commits them together with the
job's SUCCEEDED transition.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from studio.core.errors import MalformedResult
from studio.models import (
    BatchRow, GenerationBatch, IMAGES_PER_ROW, Job, JobKind, SubjectModel, VideoGeneration,
)

logger = logging.getLogger(__name__)


@dataclass
class Artifact:
    """What a succeeded job produced."""
    ref: str
    urls: List[str] = field(default_factory=list)
    record_id: Optional[int] = None


def file_url(value: Any) -> Optional[str]:
    """Pull a usable URL out of a provider file object or string."""
    if isinstance(value, dict):
        value = value.get("url")
    if isinstance(value, str) and value.startswith(("http://", "https://")):
        return value
    return None


def image_urls(result: Optional[Dict[str, Any]]) -> List[str]:
    """All usable image URLs in an image-model result."""
    if not isinstance(result, dict):
        return []
    images = result.get("images") or []
    if not isinstance(images, list):
        return []
    return [url for url in (file_url(image) for image in images) if url]


class Reconciler(ABC):
    kind: str

    @abstractmethod
    def validate(self, job: Job, results: List[Dict[str, Any]]) -> Any:
        """Extract the artifact data or raise MalformedResult."""

    @abstractmethod
    def persist(self, db: Session, job: Job, data: Any) -> Artifact:
        """Write records for the artifact on ``db`` (no commit)."""


class TrainingReconciler(Reconciler):
    """Creates the SubjectModel from the trained LoRA weights."""

    kind = JobKind.TRAIN

    def validate(self, job, results):
        result = results[0] if results else None
        lora_url = file_url(result.get("diffusers_lora_file")) if isinstance(result, dict) else None
        if not lora_url:
            raise MalformedResult("Training finished but returned no LoRA weights file")
        return lora_url

    def persist(self, db, job, lora_url):
        payload = job.payload or {}
        name = unique_model_name(db, job.user_id, payload.get("name") or payload.get("trigger_word"))

        model = SubjectModel(
            user_id=job.user_id,
            name=name,
            trigger_word=payload["trigger_word"],
            lora_url=lora_url,
            training_images_count=payload.get("images_count", 0),
            job_id=job.id,
        )
        db.add(model)
        db.flush()

        logger.info(f"Created subject model {model.id} ({name!r}) for {job.user_id}")
        return Artifact(ref=f"subject_model:{model.id}", urls=[lora_url], record_id=model.id)


class BatchReconciler(Reconciler):
    """Creates the GenerationBatch with every row, or nothing at all."""

    kind = JobKind.GENERATE_BATCH

    def validate(self, job, results):
        planned = (job.payload or {}).get("rows") or []
        if len(results) != len(planned):
            raise MalformedResult(
                f"Expected {len(planned)} row results, got {len(results)}"
            )

        rows = []
        for index, result in enumerate(results):
            urls = image_urls(result)
            if len(urls) < IMAGES_PER_ROW:
                raise MalformedResult(
                    f"Row {index} returned {len(urls)} usable images, expected {IMAGES_PER_ROW}",
                    details={"row_index": index},
                )
            rows.append(urls[:IMAGES_PER_ROW])
        return rows

    def persist(self, db, job, rows):
        payload = job.payload or {}
        planned = payload.get("rows") or []

        batch = GenerationBatch(
            user_id=job.user_id,
            model_id=payload.get("model_id"),
            scene_ids=payload.get("scene_ids") or [],
            custom_prompt=payload.get("custom_prompt"),
            aspect_ratio=payload.get("aspect_ratio"),
            credits_used=job.credits_reserved,
            job_id=job.id,
        )
        batch.rows = [
            BatchRow(
                row_index=index,
                image_urls=urls,
                prompt=planned[index].get("prompt"),
                scene_id=planned[index].get("scene_id"),
            )
            for index, urls in enumerate(rows)
        ]
        db.add(batch)
        db.flush()

        all_urls = [url for urls in rows for url in urls]
        logger.info(f"Created batch {batch.id} with {len(all_urls)} images for {job.user_id}")
        return Artifact(ref=f"batch:{batch.id}", urls=all_urls, record_id=batch.id)


class VideoReconciler(Reconciler):
    kind = JobKind.GENERATE_VIDEO

    def validate(self, job, results):
        result = results[0] if results else None
        video_url = file_url(result.get("video")) if isinstance(result, dict) else None
        if not video_url:
            raise MalformedResult("Video generation finished but returned no video")
        return video_url

    def persist(self, db, job, video_url):
        payload = job.payload or {}
        video = VideoGeneration(
            user_id=job.user_id,
            model_id=payload.get("model_id"),
            source_image_url=payload["source_image_url"],
            motion_prompt=payload["motion_prompt"],
            video_url=video_url,
            job_id=job.id,
        )
        db.add(video)
        db.flush()
        return Artifact(ref=f"video:{video.id}", urls=[video_url], record_id=video.id)


class SampleReconciler(Reconciler):
    """Sets the preview image of a freshly trained model."""

    kind = JobKind.GENERATE_SAMPLE

    def validate(self, job, results):
        urls = image_urls(results[0] if results else None)
        if not urls:
            raise MalformedResult("Sample generation returned no image")
        return urls[0]

    def persist(self, db, job, image_url):
        model_id = (job.payload or {}).get("model_id")
        model = db.query(SubjectModel).filter(SubjectModel.id == model_id).first()
        if model is None:
            raise MalformedResult(f"Subject model {model_id} no longer exists")
        model.preview_image_url = image_url
        return Artifact(ref=f"subject_model:{model.id}", urls=[image_url], record_id=model.id)


def unique_model_name(db: Session, user_id: str, base_name: str) -> str:
    """``base_name``, or ``base_name 2``, ``base_name 3``... if already taken."""
    base_name = (base_name or "My model").strip()
    taken = {
        name for (name,) in db.query(SubjectModel.name).filter(
            SubjectModel.user_id == user_id,
            SubjectModel.name.like(f"{base_name}%"),
        )
    }
    if base_name not in taken:
        return base_name

    suffix = 2
    while f"{base_name} {suffix}" in taken:
        suffix += 1
    return f"{base_name} {suffix}"


RECONCILERS: Dict[str, Reconciler] = {
    reconciler.kind: reconciler
    for reconciler in (
        TrainingReconciler(),
        BatchReconciler(),
        VideoReconciler(),
        SampleReconciler(),
    )
}


def get_reconciler(kind: str) -> Reconciler:
    try:
        return RECONCILERS[kind]
    except KeyError:
        raise ValueError(f"No reconciler for job kind {kind!r}") from None
