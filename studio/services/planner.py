"""
Row Distribution Planner
Pure functions that decide how a batch's rows are spread across scenes and
which prompt each row uses.

A batch is generated in rows of four images, one provider request per row.
With N rows and S scenes every scene gets ``N // S`` rows and the first
``N % S`` scenes get one extra, laid out in scene order. The same inputs
always give the same plan, so a row's prompt can be recomputed later; a
persisted row prompt still wins over recomputation.
"""

from typing import Dict, List, Optional, Sequence, TypeVar

from studio.models import IMAGES_PER_ROW
from studio.services.presets import DEFAULT_ROW_PROMPT, SCENE_PRESETS

T = TypeVar("T")

# Images per batch -> credits
BATCH_PRICING: Dict[int, int] = {
    4: 1,
    12: 3,
    20: 4,
}


def plan(total_rows: int, scenes: Sequence[T]) -> List[T]:
    """
    Assign each row a scene.

    >>> plan(5, ["A", "B", "C"])
    ['A', 'A', 'B', 'B', 'C']
    """
    if total_rows < 0:
        raise ValueError("total_rows must not be negative")
    if not scenes:
        raise ValueError("At least one scene is required")

    base, remainder = divmod(total_rows, len(scenes))
    rows: List[T] = []
    for index, scene in enumerate(scenes):
        rows.extend([scene] * (base + (1 if index < remainder else 0)))
    return rows


def rows_for_images(num_images: int) -> int:
    if num_images <= 0 or num_images % IMAGES_PER_ROW:
        raise ValueError(f"Batch size must be a positive multiple of {IMAGES_PER_ROW}")
    return num_images // IMAGES_PER_ROW


def batch_cost(num_images: int) -> int:
    """Credits charged for a batch of ``num_images``."""
    try:
        return BATCH_PRICING[num_images]
    except KeyError:
        raise ValueError(
            f"Unsupported batch size {num_images}; choose one of {sorted(BATCH_PRICING)}"
        ) from None


def valid_scene_ids(scene_ids: Sequence[str]) -> List[str]:
    """Known preset ids, in the order given."""
    return [scene_id for scene_id in scene_ids if scene_id in SCENE_PRESETS]


def plan_row_prompts(
    num_images: int,
    scene_ids: Optional[Sequence[str]] = None,
    custom_prompt: Optional[str] = None,
) -> List[Dict[str, Optional[str]]]:
    """
    The scene id and prompt of every row in a new batch.

    A custom prompt is used for every row; otherwise rows are distributed
    across the selected scenes.
    """
    total_rows = rows_for_images(num_images)

    if custom_prompt and custom_prompt.strip():
        return [{"scene_id": None, "prompt": custom_prompt.strip()}] * total_rows

    scenes = valid_scene_ids(scene_ids or [])
    if not scenes:
        raise ValueError("Select at least one valid scene or provide a custom prompt")

    return [
        {"scene_id": scene_id, "prompt": SCENE_PRESETS[scene_id].prompt}
        for scene_id in plan(total_rows, scenes)
    ]


def resolve_row_prompt(batch, row_index: int) -> str:
    """
    The prompt to regenerate one row of an existing batch with.

    Order: the row's stored prompt, then a recomputed plan over the batch's
    scenes, then the batch's custom prompt, then a generic default.
    """
    rows = list(batch.rows or [])
    for row in rows:
        if row.row_index == row_index and row.prompt:
            return row.prompt

    scenes = valid_scene_ids(batch.scene_ids or [])
    if not scenes and batch.custom_prompt:
        # Older batches stored the scene selection as "id-a, id-b"
        scenes = valid_scene_ids([s.strip() for s in batch.custom_prompt.split(",")])
        if not scenes:
            return batch.custom_prompt

    if scenes:
        total_rows = max(len(rows), row_index + 1)
        planned = plan(total_rows, scenes)
        return SCENE_PRESETS[planned[row_index]].prompt

    return DEFAULT_ROW_PROMPT
