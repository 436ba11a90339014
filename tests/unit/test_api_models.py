"""Tests for pawcard.api.models -- Pydantic request models.

Tests cover:
- Required field validation on TransformationRequest.
- Default values for optional fields.
- Email validation on EmailCaptureRequest.
- Prompt template and variant bodies for the admin routes.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pawcard.api.models import (
    EmailCaptureRequest,
    PromptTemplateCreate,
    PromptTemplateUpdate,
    PromptVariantCreate,
    TransformationRequest,
)


class TestTransformationRequest:
    """Test TransformationRequest Pydantic model."""

    def test_valid_minimal_request(self):
        req = TransformationRequest(pet_name="Biscuit", theme="baseball")
        assert req.pet_breed is None
        assert req.traits == []
        assert req.original_image_url is None

    def test_empty_pet_name_rejected(self):
        with pytest.raises(ValidationError):
            TransformationRequest(pet_name="", theme="baseball")

    def test_missing_theme_rejected(self):
        with pytest.raises(ValidationError):
            TransformationRequest(pet_name="Biscuit")

    def test_unknown_theme_is_left_to_the_route(self):
        """The route answers 400 for a bad theme, so the model accepts it."""
        assert TransformationRequest(pet_name="Biscuit", theme="pirate").theme == "pirate"


class TestEmailCaptureRequest:
    def test_valid(self):
        req = EmailCaptureRequest(email="owner@example.com", transformation_id="t1")
        assert req.name is None

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            EmailCaptureRequest(email="owner-at-example", transformation_id="t1")

    def test_transformation_id_required(self):
        with pytest.raises(ValidationError):
            EmailCaptureRequest(email="owner@example.com")


class TestPromptModels:
    def test_template_defaults_to_active(self):
        req = PromptTemplateCreate(name="Stadium", category="baseball", base_prompt="{petName}")
        assert req.is_active is True

    def test_template_category_is_a_theme(self):
        with pytest.raises(ValidationError):
            PromptTemplateCreate(name="Deck", category="pirate", base_prompt="{petName}")

    def test_update_dumps_only_given_fields(self):
        update = PromptTemplateUpdate(is_active=False)
        assert update.model_dump(exclude_none=True) == {"is_active": False}

    def test_variant_success_rate_is_a_percentage(self):
        assert PromptVariantCreate(template_id=1, prompt="p").success_rate == 0.0
        with pytest.raises(ValidationError):
            PromptVariantCreate(template_id=1, prompt="p", success_rate=101)
