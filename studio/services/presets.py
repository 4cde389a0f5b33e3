"""
Scene and Platform Presets
Named scene prompts for batch generation and the image sizes offered for
each social platform.
"""

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ScenePreset:
    id: str
    label: str
    prompt: str


@dataclass(frozen=True)
class PlatformPreset:
    id: str
    label: str
    ratio: str
    width: int
    height: int

    @property
    def image_size(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}


_SCENES = [
    ScenePreset(
        "park-scene", "Park Scene",
        "joyfully bounding through sunlit meadow, pure happiness, golden hour glow, lush green grass",
    ),
    ScenePreset(
        "beach-scene", "Beach Scene",
        "sprinting along pristine shoreline at sunset, water droplets sparkling, dramatic orange sky",
    ),
    ScenePreset(
        "cozy-home", "Cozy Home",
        "curled up on plush velvet sofa, dreamy soft window light, peaceful contentment, warm cozy atmosphere",
    ),
    ScenePreset(
        "studio-white", "Studio Portrait",
        "elegant studio portrait, crisp white backdrop, artistic rim lighting, magazine cover quality",
    ),
    ScenePreset(
        "autumn-leaves", "Autumn Leaves",
        "frolicking through golden autumn leaves, warm fall colors swirling, magical light filtering through trees",
    ),
    ScenePreset(
        "flower-field", "Flower Field",
        "nestled among vibrant wildflowers, soft bokeh background, enchanting spring garden, colorful blooms",
    ),
    ScenePreset(
        "snowy-winter", "Snowy Winter",
        "bounding through pristine powder snow, breath visible in cold air, winter wonderland magic, sparkling ice",
    ),
    ScenePreset(
        "urban-street", "Urban Street",
        "confident stride on city sidewalk, urban bokeh lights behind, street photography style",
    ),
    ScenePreset(
        "forest-trail", "Forest Trail",
        "exploring enchanted forest trail, dappled sunlight through canopy, adventure spirit, lush greenery",
    ),
    ScenePreset(
        "garden-setting", "Garden Setting",
        "exploring beautiful cottage garden, surrounded by roses and greenery, enchanting summer day",
    ),
    ScenePreset(
        "living-room", "Living Room",
        "relaxing in stylish living room, beautiful natural window light, modern interior design",
    ),
    ScenePreset(
        "holiday-theme", "Holiday Theme",
        "surrounded by festive holiday decorations, twinkling lights, cozy fireplace glow, warm celebration",
    ),
    ScenePreset(
        "sunset-golden", "Golden Hour",
        "bathed in warm golden sunset light, silhouette rim lighting, ethereal glow, cinematic mood",
    ),
    ScenePreset(
        "rainy-window", "Rainy Day",
        "gazing thoughtfully out rain-streaked window, soft moody lighting, cozy rainy day vibes",
    ),
]

SCENE_PRESETS: Dict[str, ScenePreset] = {scene.id: scene for scene in _SCENES}

_PLATFORMS = [
    PlatformPreset("instagram-feed", "Instagram Feed", "1:1", 1024, 1024),
    PlatformPreset("instagram-portrait", "Instagram Portrait", "4:5", 1024, 1280),
    PlatformPreset("instagram-stories", "Stories / Reels", "9:16", 720, 1280),
    PlatformPreset("landscape", "Facebook / LinkedIn", "16:9", 1280, 720),
    PlatformPreset("pinterest", "Pinterest", "2:3", 1024, 1536),
]

PLATFORM_PRESETS: Dict[str, PlatformPreset] = {p.id: p for p in _PLATFORMS}

DEFAULT_ASPECT_RATIO = "instagram-feed"
DEFAULT_ROW_PROMPT = "elegant product shot"


def get_scene(scene_id: str) -> Optional[ScenePreset]:
    return SCENE_PRESETS.get(scene_id)


def get_image_size(aspect_ratio: Optional[str]) -> Dict[str, int]:
    """Image dimensions for a platform preset; unknown ids fall back to square."""
    preset = PLATFORM_PRESETS.get(aspect_ratio or DEFAULT_ASPECT_RATIO)
    if preset is None:
        preset = PLATFORM_PRESETS[DEFAULT_ASPECT_RATIO]
    return preset.image_size


def build_image_prompt(trigger_word: str, row_prompt: str) -> str:
    """Full provider prompt for one row of images."""
    return (
        f"Award-winning portrait of {trigger_word}, {row_prompt}, "
        "looking at camera, sharp focus, shallow depth of field, "
        "professional DSLR quality, 8k detail"
    )


def build_sample_prompt(trigger_word: str) -> str:
    """Prompt for the preview image generated after training."""
    return (
        f"Professional photograph of {trigger_word}, "
        f"{SCENE_PRESETS['studio-white'].prompt}, high quality, detailed"
    )
