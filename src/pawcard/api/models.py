"""Pydantic request models for the Pawcard API.

Models
------
TransformationRequest
    Payload for ``POST /api/transformations`` -- the wizard's pet details.
EmailCaptureRequest
    Payload for ``POST /api/email-capture`` -- the email gate in front of
    the high-resolution download.
PromptTemplateCreate, PromptTemplateUpdate, PromptVariantCreate
    Admin payloads for the stored prompt templates and their variants.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, EmailStr, Field

PromptCategory = Literal["baseball", "superhero"]


class TransformationRequest(BaseModel):
    """Request body for the ``POST /api/transformations`` endpoint.

    Attributes:
        pet_name: Name printed on the card.
        pet_breed: Breed slug from the form (``golden-retriever``, ``other``...).
        theme: ``"baseball"`` or ``"superhero"``.  Checked by the route so an
            unknown theme is a 400 rather than a schema error.
        traits: Personality traits; adjust baseball stats and become
            superhero powers.
        original_image_url: Public URL of the uploaded pet photo.
    """

    pet_name: str = Field(..., min_length=1, description="Pet name shown on the card.")
    pet_breed: str | None = Field(default=None, description="Breed slug from the form.")
    theme: str = Field(..., description="Theme: 'baseball' or 'superhero'.")
    traits: list[str] = Field(default_factory=list, description="Personality traits.")
    original_image_url: str | None = Field(
        default=None,
        description="URL of the uploaded pet photo passed to the image model.",
    )


class EmailCaptureRequest(BaseModel):
    """Request body for the ``POST /api/email-capture`` endpoint.

    Attributes:
        email: Visitor email address.
        name: Optional visitor name.
        transformation_id: Transformation being downloaded.
    """

    email: EmailStr = Field(..., description="Visitor email address.")
    name: str | None = Field(default=None, description="Optional visitor name.")
    transformation_id: str = Field(..., description="Transformation being downloaded.")


class PromptTemplateCreate(BaseModel):
    """Request body for ``POST /api/admin/prompt-templates``.

    ``base_prompt`` uses the same ``{petName}``-style placeholders as the
    built-in theme prompts.
    """

    name: str = Field(..., min_length=1)
    category: PromptCategory
    base_prompt: str = Field(..., min_length=1)
    is_active: bool = True


class PromptTemplateUpdate(BaseModel):
    """Partial update for ``PUT /api/admin/prompt-templates/{id}``."""

    name: str | None = Field(default=None, min_length=1)
    category: PromptCategory | None = None
    base_prompt: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None


class PromptVariantCreate(BaseModel):
    template_id: int
    prompt: str = Field(..., min_length=1)
    success_rate: float = Field(default=0.0, ge=0.0, le=100.0)
    is_active: bool = True
