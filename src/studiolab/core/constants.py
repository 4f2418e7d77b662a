"""Fixed option lists shared by the API, the stores, and the frontend.

These values are served to the browser through ``GET /api/config`` so the
UI never hard-codes its dropdown contents.
"""

from __future__ import annotations

DEFAULT_MODEL = "gemini-2.0-flash-exp-image-generation"
DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_IMAGE_SIZE = "1K"
DEFAULT_TEMPERATURE = 1.0

MODELS: list[dict] = [
    {
        "id": "gemini-2.0-flash-exp-image-generation",
        "name": "Nano Banana (Flash)",
        "description": "Fast image generation",
    },
    {
        "id": "gemini-2.5-flash-image",
        "name": "Gemini 2.5 Flash Image",
        "description": "Improved editing and multi-image composition",
    },
    {
        "id": "gemini-3-pro-image-preview",
        "name": "Gemini 3 Pro Image",
        "description": "High-quality generation with 2K output",
    },
]

# Models that accept an explicit output size in their image config.
IMAGE_SIZE_MODELS = frozenset({"gemini-3-pro-image-preview"})

ASPECT_RATIOS: list[dict] = [
    {"id": "1:1", "name": "Square (1:1)"},
    {"id": "2:3", "name": "Portrait (2:3)"},
    {"id": "3:2", "name": "Landscape (3:2)"},
    {"id": "3:4", "name": "Portrait (3:4)"},
    {"id": "4:3", "name": "Landscape (4:3)"},
    {"id": "9:16", "name": "Vertical (9:16)"},
    {"id": "16:9", "name": "Widescreen (16:9)"},
]
ASPECT_RATIO_IDS = frozenset(ratio["id"] for ratio in ASPECT_RATIOS)

IMAGE_SIZES: list[dict] = [
    {"id": "1K", "name": "1K (1024px)"},
    {"id": "2K", "name": "2K (2048px)"},
]
IMAGE_SIZE_IDS = frozenset(size["id"] for size in IMAGE_SIZES)

RUN_STATUSES = ("pending", "running", "completed", "failed")

COMMON_TAGS = [
    "good-lighting",
    "realistic",
    "wrong-product",
    "wrong-style",
    "keeper",
    "needs-work",
    "good-composition",
    "bad-colors",
    "artifact",
    "perfect",
]

# Category ids used by the UI mapped to the names the catalog API filters on.
PRODUCT_CATEGORIES: list[dict] = [
    {"id": "faucets", "name": "Faucets"},
    {"id": "mirrors", "name": "Mirror"},
    {"id": "shower-systems", "name": "Shower Systems"},
    {"id": "decorative-lighting", "name": "Decorative Lighting"},
    {"id": "vanities", "name": "Vanities"},
    {"id": "tub-doors", "name": "Tub Doors"},
    {"id": "towel-rings", "name": "Towel Rings"},
    {"id": "tub-filler", "name": "Tub Filler"},
]
