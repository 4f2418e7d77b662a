"""Tests for studiolab.api.models — Pydantic request models.

Tests cover:
- Required field validation.
- Default values for optional fields.
- Aspect ratio, image size, temperature, and rating constraints.
- Partial-update field tracking on ResultUpdate.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from studiolab.api.models import (
    ChainGenerateRequest,
    GenerateRequest,
    ImageRef,
    InputSetCreate,
    InputSetUpdate,
    ResultUpdate,
    StepIn,
    TemplateCreate,
    TemplateUpdate,
)


class TestStepIn:
    """Test StepIn validation."""

    def test_minimal_step(self):
        step = StepIn(prompt="A bright bathroom")
        assert step.order is None
        assert step.model is None
        assert step.aspect_ratio is None
        assert step.temperature is None

    @pytest.mark.parametrize("ratio", ["1:1", "2:3", "3:2", "3:4", "4:3", "9:16", "16:9"])
    def test_supported_aspect_ratios(self, ratio: str):
        assert StepIn(prompt="x", aspect_ratio=ratio).aspect_ratio == ratio

    def test_unknown_aspect_ratio(self):
        with pytest.raises(ValidationError, match="Unsupported aspect ratio"):
            StepIn(prompt="x", aspect_ratio="5:4")

    def test_unknown_image_size(self):
        with pytest.raises(ValidationError, match="Unsupported image size"):
            StepIn(prompt="x", image_size="4K")

    @pytest.mark.parametrize("temperature", [-0.1, 2.1])
    def test_temperature_range(self, temperature: float):
        with pytest.raises(ValidationError):
            StepIn(prompt="x", temperature=temperature)

    def test_empty_prompt(self):
        with pytest.raises(ValidationError):
            StepIn(prompt="")


class TestTemplatePayloads:
    def test_create_requires_steps(self):
        with pytest.raises(ValidationError):
            TemplateCreate(name="T", steps=[])

    def test_create_requires_name(self):
        with pytest.raises(ValidationError):
            TemplateCreate(steps=[{"prompt": "x"}])

    def test_update_all_optional(self):
        update = TemplateUpdate()
        assert update.name is None
        assert update.steps is None
        assert update.model_fields_set == set()

    def test_update_explicit_null_description_tracked(self):
        update = TemplateUpdate.model_validate({"description": None})
        assert "description" in update.model_fields_set


class TestInputSetPayloads:
    def test_create_defaults(self):
        payload = InputSetCreate(name="Set")
        assert payload.images == []
        assert payload.products == []

    def test_image_path_must_be_upload(self):
        with pytest.raises(ValidationError):
            ImageRef(filename="a.png", path="/etc/passwd")

    def test_product_metadata_default(self):
        payload = InputSetCreate(
            name="Set", products=[{"catalog_id": "1", "name": "Faucet", "category": "Faucets"}]
        )
        assert payload.products[0].metadata == {}
        assert payload.products[0].image_url is None

    def test_update_removals(self):
        payload = InputSetUpdate(remove_image_ids=["a"], remove_product_ids=["b"])
        assert payload.name is None
        assert payload.remove_image_ids == ["a"]


class TestResultUpdate:
    def test_only_sent_fields_tracked(self):
        update = ResultUpdate.model_validate({"rating": 3})
        assert update.model_dump(include=update.model_fields_set) == {"rating": 3}

    def test_null_rating_allowed(self):
        update = ResultUpdate.model_validate({"rating": None})
        assert update.model_dump(include=update.model_fields_set) == {"rating": None}

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_range(self, rating: int):
        with pytest.raises(ValidationError):
            ResultUpdate(rating=rating)


class TestGenerateRequests:
    def test_defaults(self):
        req = GenerateRequest(prompt="x")
        assert req.aspect_ratio == "1:1"
        assert req.image_size == "1K"
        assert req.reference_images == []

    def test_prompt_required(self):
        with pytest.raises(ValidationError):
            GenerateRequest()

    def test_bad_aspect_ratio(self):
        with pytest.raises(ValidationError):
            GenerateRequest(prompt="x", aspect_ratio="7:5")

    def test_chain_needs_steps(self):
        with pytest.raises(ValidationError):
            ChainGenerateRequest(steps=[])
