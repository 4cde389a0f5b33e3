"""
Job Spec Builders
Provider request payloads for every kind of remote work.
"""

from typing import List, Optional

from studio.core.config import settings
from studio.models import IMAGES_PER_ROW, JobKind
from studio.services.compute_gateway import JobSpec
from studio.services.presets import build_image_prompt, build_sample_prompt, get_image_size

UPSCALE_KIND = "upscale"
REMAKE_KIND = "remake"


def training_spec(images_data_url: str, trigger_word: str, cost: int = 0) -> JobSpec:
    return JobSpec(
        kind=JobKind.TRAIN,
        endpoint=settings.FAL_TRAINING_ENDPOINT,
        payload={
            "images_data_url": images_data_url,
            "trigger_word": trigger_word,
            "steps": settings.TRAINING_STEPS,
            "is_style": False,
            "create_masks": True,
        },
        cost=cost,
    )


def image_row_spec(
    lora_url: str,
    trigger_word: str,
    row_prompt: str,
    aspect_ratio: Optional[str] = None,
    kind: str = JobKind.GENERATE_BATCH,
) -> JobSpec:
    """One row of four images from a trained LoRA."""
    return JobSpec(
        kind=kind,
        endpoint=settings.FAL_IMAGE_ENDPOINT,
        payload={
            "prompt": build_image_prompt(trigger_word, row_prompt),
            "loras": [{"path": lora_url, "scale": 1}],
            "num_images": IMAGES_PER_ROW,
            "image_size": get_image_size(aspect_ratio),
            "num_inference_steps": 40,
            "guidance_scale": 5.5,
            "enable_safety_checker": False,
        },
    )


def batch_specs(
    lora_url: str,
    trigger_word: str,
    row_prompts: List[str],
    aspect_ratio: Optional[str] = None,
) -> List[JobSpec]:
    return [
        image_row_spec(lora_url, trigger_word, prompt, aspect_ratio)
        for prompt in row_prompts
    ]


def sample_spec(lora_url: str, trigger_word: str) -> JobSpec:
    """Single 512x512 preview image for a freshly trained model."""
    return JobSpec(
        kind=JobKind.GENERATE_SAMPLE,
        endpoint=settings.FAL_IMAGE_ENDPOINT,
        payload={
            "prompt": build_sample_prompt(trigger_word),
            "loras": [{"path": lora_url, "scale": 1}],
            "num_images": 1,
            "image_size": {"width": 512, "height": 512},
            "num_inference_steps": 28,
            "guidance_scale": 3.5,
            "enable_safety_checker": False,
        },
    )


def video_spec(image_url: str, motion_prompt: str, cost: int = 0) -> JobSpec:
    return JobSpec(
        kind=JobKind.GENERATE_VIDEO,
        endpoint=settings.FAL_VIDEO_ENDPOINT,
        payload={"prompt": motion_prompt, "image_url": image_url},
        cost=cost,
    )


def upscale_spec(image_url: str) -> JobSpec:
    return JobSpec(
        kind=UPSCALE_KIND,
        endpoint=settings.FAL_UPSCALE_ENDPOINT,
        payload={
            "image_url": image_url,
            "upscale_factor": 2,
            "prompt": "professional photography, high quality, sharp details, studio lighting",
            "negative_prompt": "(worst quality, low quality, blurry, noise, artifacts:2)",
            "creativity": 0.2,
            "resemblance": 0.8,
            "num_inference_steps": 20,
            "enable_safety_checker": False,
        },
    )
