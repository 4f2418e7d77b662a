"""Pydantic request models for the Studio Prompt Lab API.

These models define the JSON schema for every API endpoint that accepts a
body.  FastAPI uses them for automatic request validation, serialisation,
and OpenAPI documentation generation.

Models
------
ImageRef / ProductRef
    Images and catalog products attached to an input set.
InputSetCreate / InputSetUpdate
    Payloads for ``POST /api/inputs`` and ``PUT /api/inputs/{id}``.
StepIn
    One prompt step inside a template payload.
TemplateCreate / TemplateUpdate
    Payloads for ``POST /api/prompts`` and ``PUT /api/prompts/{id}``.
RunCreate
    Payload for ``POST /api/runs``.
ResultUpdate
    Payload for ``PATCH /api/results/{id}`` — partial review update.
GenerateRequest / ChainGenerateRequest
    Payloads for the one-off generation endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from studiolab.core.constants import ASPECT_RATIO_IDS, IMAGE_SIZE_IDS


class ImageRef(BaseModel):
    """An uploaded image, as returned by ``POST /api/upload``.

    Attributes:
        filename: Original client filename.
        path: Public path of the stored upload (``/uploads/...``).
        mime_type: Image MIME type.
    """

    filename: str = Field(..., min_length=1)
    path: str = Field(..., pattern=r"^/uploads/")
    mime_type: str = Field(default="image/png")


class ProductRef(BaseModel):
    """A catalog product snapshot attached to an input set."""

    catalog_id: str = Field(..., min_length=1, description="Product id in the catalog.")
    name: str = Field(..., min_length=1)
    category: str = Field(default="")
    image_url: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw catalog fields kept for prompt context.",
    )


class InputSetCreate(BaseModel):
    """Request body for ``POST /api/inputs``."""

    name: str = Field(..., min_length=1, description="Input set name.")
    images: list[ImageRef] = Field(default_factory=list)
    products: list[ProductRef] = Field(default_factory=list)


class InputSetUpdate(BaseModel):
    """Request body for ``PUT /api/inputs/{id}``.

    New ``images`` and ``products`` are appended; ids listed in the
    ``remove_*`` fields are deleted from the set.
    """

    name: str | None = Field(default=None, min_length=1)
    images: list[ImageRef] = Field(default_factory=list)
    products: list[ProductRef] = Field(default_factory=list)
    remove_image_ids: list[str] = Field(default_factory=list)
    remove_product_ids: list[str] = Field(default_factory=list)


class StepIn(BaseModel):
    """One prompt step.

    Attributes:
        order: Position in the chain.  Defaults to the index in the list.
        prompt: Prompt text; may contain ``{{product}}`` / ``{{products}}``.
        model: Image model id.  ``None`` uses the default model.
        aspect_ratio: One of the supported aspect ratios.
        image_size: ``"1K"`` or ``"2K"``.
        temperature: Sampling temperature between 0 and 2.
    """

    order: int | None = Field(default=None, ge=0)
    prompt: str = Field(..., min_length=1)
    model: str | None = None
    aspect_ratio: str | None = None
    image_size: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)

    @field_validator("aspect_ratio")
    @classmethod
    def _check_aspect_ratio(cls, value: str | None) -> str | None:
        if value is not None and value not in ASPECT_RATIO_IDS:
            raise ValueError(f"Unsupported aspect ratio: {value}")
        return value

    @field_validator("image_size")
    @classmethod
    def _check_image_size(cls, value: str | None) -> str | None:
        if value is not None and value not in IMAGE_SIZE_IDS:
            raise ValueError(f"Unsupported image size: {value}")
        return value


class TemplateCreate(BaseModel):
    """Request body for ``POST /api/prompts``."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    steps: list[StepIn] = Field(..., min_length=1, description="At least one step.")


class TemplateUpdate(BaseModel):
    """Request body for ``PUT /api/prompts/{id}``.

    When ``steps`` is given it replaces every existing step.
    """

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    steps: list[StepIn] | None = Field(default=None, min_length=1)


class RunCreate(BaseModel):
    """Request body for ``POST /api/runs``."""

    input_set_id: str = Field(..., min_length=1)
    template_id: str = Field(..., min_length=1)


class ResultUpdate(BaseModel):
    """Request body for ``PATCH /api/results/{id}``.

    Only fields present in the JSON body are applied; an explicit ``null``
    clears ``rating`` or ``notes``.
    """

    rating: int | None = Field(default=None, ge=1, le=5)
    notes: str | None = None
    tags: list[str] | None = None


class ReferenceImageIn(BaseModel):
    """A base64-encoded reference image for the generation endpoints."""

    data: str = Field(..., min_length=1, description="Base64 image bytes.")
    mime_type: str = Field(default="image/png")


class GenerateRequest(BaseModel):
    """Request body for ``POST /api/generate``."""

    prompt: str = Field(..., min_length=1)
    reference_images: list[ReferenceImageIn] = Field(default_factory=list)
    model: str | None = None
    aspect_ratio: str = Field(default="1:1")
    image_size: str = Field(default="1K")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)

    @field_validator("aspect_ratio")
    @classmethod
    def _check_aspect_ratio(cls, value: str) -> str:
        if value not in ASPECT_RATIO_IDS:
            raise ValueError(f"Unsupported aspect ratio: {value}")
        return value


class ChainGenerateRequest(BaseModel):
    """Request body for ``POST /api/generate/chain`` (no persistence)."""

    steps: list[StepIn] = Field(..., min_length=1)
    reference_images: list[ReferenceImageIn] = Field(default_factory=list)
