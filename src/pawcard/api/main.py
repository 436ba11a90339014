"""Pawcard -- FastAPI Application.

This module defines the FastAPI ``app`` instance, the REST routes behind the
pet-card wizard, and the ``main()`` CLI function that launches uvicorn.

Architecture
------------
- **Configuration** comes from :data:`pawcard.core.config.config`, loaded
  once at process start.  Watermark settings reach the core as explicit
  :class:`~pawcard.core.watermark.WatermarkOptions`.
- **Image generation** runs on Replicate through
  :class:`~pawcard.core.generation.ImageGenerator`.
- **Publishing** fetches the generated image, watermarks it (falling back
  to the original on failure) and uploads it to R2.
- **Engagement counters, leads and prompt templates** live in JSON files
  under ``data_dir``.  An active stored template replaces the built-in
  prompt for its theme.

Routes that decode images or call external services are plain ``def``
functions so FastAPI runs them in its thread pool.

Endpoints
---------
========  =======================================  ==============================
Method    Path                                     Purpose
========  =======================================  ==============================
GET       ``/api/health``                          Liveness check
GET       ``/api/stats``                           Engagement totals
GET       ``/api/watermark/debug``                 Watermark a URL, serve bytes
POST      ``/api/upload``                          Store a pet photo in R2
POST      ``/api/transformations``                 Generate a themed pet image
GET       ``/api/transformations/{id}``            Single transformation
POST      ``/api/transformations/{id}/share``      Count a share
POST      ``/api/email-capture``                   Capture a lead, count download
GET       ``/api/admin/transformations``           Bearer-protected listing
GET       ``/api/admin/prompt-templates``          List prompt templates
POST      ``/api/admin/prompt-templates``          Add a prompt template
PUT       ``/api/admin/prompt-templates/{id}``     Edit a prompt template
GET       ``/api/admin/prompt-variants/{id}``      Variants of a template
POST      ``/api/admin/prompt-variants``           Add a prompt variant
========  =======================================  ==============================

Usage
-----
CLI (installed entry point)::

    pawcard

Direct invocation::

    python -m pawcard.api.main
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pawcard import __version__
from pawcard.api.models import (
    EmailCaptureRequest,
    PromptTemplateCreate,
    PromptTemplateUpdate,
    PromptVariantCreate,
    TransformationRequest,
)
from pawcard.api.transformation_store import TransformationStore
from pawcard.core.config import config
from pawcard.core.generation import (
    GenerationError,
    ImageGenerator,
    baseball_stats,
    build_prompt,
)
from pawcard.core.object_store import IMMUTABLE_CACHE_CONTROL, ObjectStore, make_generated_key
from pawcard.core.pipeline import fetch_image, publish_generated_image
from pawcard.core.placement import Position
from pawcard.core.watermark import WatermarkError, watermark_and_prefer_jpeg

logger = logging.getLogger(__name__)

THEMES = ("baseball", "superhero")

UPLOAD_KIND = "pet-upload"
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
UPLOAD_EXTENSIONS = {"image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png"}

# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create shared clients on startup and close them on shutdown.

    The image generator and object store are optional: without credentials
    the routes that need them answer 503 instead of failing at startup.
    """
    app.state.config = config
    app.state.store = TransformationStore(config.data_dir)
    app.state.http = httpx.Client(timeout=30.0)

    app.state.generator = None
    if config.replicate_api_token:
        app.state.generator = ImageGenerator.from_token(
            config.replicate_api_token, config.replicate_model
        )
    else:
        logger.warning("REPLICATE_API_TOKEN is not set; image generation disabled.")

    app.state.object_store = None
    if config.storage_configured:
        app.state.object_store = ObjectStore.from_config(config)
    else:
        logger.warning("R2 storage is not configured; generated images are not re-hosted.")

    yield

    app.state.http.close()


app = FastAPI(
    title="Pawcard",
    description="AI pet portrait cards with brand watermarking.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_bearer = HTTPBearer(auto_error=False)


def require_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> None:
    """Check the static admin bearer token.

    Raises:
        HTTPException: 401 when the token is missing, wrong, or no admin
            token is configured.
    """
    expected = request.app.state.config.admin_token
    if (
        not expected
        or credentials is None
        or not secrets.compare_digest(credentials.credentials, expected)
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _get_transformation_or_404(store: TransformationStore, transformation_id: str) -> dict:
    entry = store.get(transformation_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Transformation not found")
    return entry


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/api/health")
async def health() -> dict:
    """Liveness check with the current server time."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/api/stats")
async def get_stats(request: Request) -> dict:
    """Return lead and engagement totals across all transformations."""
    return request.app.state.store.totals()


@app.get("/api/watermark/debug")
def watermark_debug(
    request: Request,
    url: str = Query(..., description="Image URL to fetch and watermark."),
    position: Position | None = Query(default=None, description="Force a corner."),
) -> Response:
    """Fetch an image, watermark it, and return the encoded bytes directly.

    Placement details are exposed as ``X-Watermark-*`` response headers.

    Raises:
        HTTPException: 502 if the image cannot be fetched, 500 if the
            watermark cannot be applied (for example, no logo configured).
    """
    try:
        data, content_type = fetch_image(url, request.app.state.http)
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=502, detail=f"Fetch failed: {exc}") from exc

    overrides = {"force_position": position} if position else {}
    options = request.app.state.config.watermark_options(**overrides)
    try:
        result = watermark_and_prefer_jpeg(data, content_type, options)
    except WatermarkError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    headers = {"X-Watermarked": str(result.watermarked).lower()}
    if result.metadata is not None:
        headers["X-Watermark-Position"] = result.metadata.position
        headers["X-Watermark-Auto"] = str(result.metadata.auto_placement).lower()
        if result.metadata.score is not None:
            headers["X-Watermark-Score"] = f"{result.metadata.score:.4f}"
    return Response(content=result.buffer, media_type=result.content_type, headers=headers)


@app.post("/api/upload")
def upload_pet_photo(
    request: Request,
    pet_photo: UploadFile = File(..., alias="petPhoto"),
) -> dict:
    """Store an uploaded pet photo in R2 and return its public URL.

    Only JPEG and PNG files up to 10 MB are accepted.

    Raises:
        HTTPException: 400 for an empty file or another image type, 413 for
            an oversized file, 503 when storage is not configured, 502 when
            the upload fails.
    """
    extension = UPLOAD_EXTENSIONS.get((pet_photo.content_type or "").lower())
    if extension is None:
        raise HTTPException(status_code=400, detail="Only JPEG and PNG files are allowed")

    data = pet_photo.file.read(MAX_UPLOAD_BYTES + 1)
    if not data:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large (max 10 MB)")

    object_store: ObjectStore | None = request.app.state.object_store
    if object_store is None or not object_store.public_base_url:
        raise HTTPException(status_code=503, detail="Photo storage is not configured")

    key = make_generated_key(UPLOAD_KIND, uuid.uuid4().hex, extension)
    try:
        object_store.upload(
            key,
            data,
            content_type=pet_photo.content_type,
            cache_control=IMMUTABLE_CACHE_CONTROL,
        )
    except (BotoCoreError, ClientError) as exc:
        logger.error("Pet photo upload failed: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to store pet photo") from exc

    return {
        "success": True,
        "file_url": object_store.public_url(key),
        "message": "Pet photo uploaded successfully",
    }


@app.post("/api/transformations")
def create_transformation(req: TransformationRequest, request: Request) -> dict:
    """Generate a themed image of the pet and publish it.

    1. Validate the theme.
    2. Record the transformation.
    3. Build the prompt (from an active stored template when there is one)
       and run the image model.
    4. Watermark and upload the result (original kept if branding fails).
    5. Persist the published URL.

    Raises:
        HTTPException: 400 for an unknown theme, 503 when image generation
            is not configured, 502 when the image model fails.
    """
    if req.theme not in THEMES:
        raise HTTPException(
            status_code=400, detail="Invalid theme. Must be 'baseball' or 'superhero'"
        )

    generator: ImageGenerator | None = request.app.state.generator
    if generator is None:
        raise HTTPException(status_code=503, detail="Image generation is not configured")

    store: TransformationStore = request.app.state.store
    transformation = store.create(
        pet_name=req.pet_name,
        pet_breed=req.pet_breed,
        theme=req.theme,
        traits=req.traits,
        original_image_url=req.original_image_url,
    )

    card_stats = baseball_stats(req.traits) if req.theme == "baseball" else None
    prompt = build_prompt(
        req.theme,
        req.pet_name,
        req.pet_breed,
        req.traits,
        template=store.prompt_for_theme(req.theme),
    )
    image_inputs = [req.original_image_url] if req.original_image_url else []

    try:
        generated_url = generator.run(
            prompt,
            image_inputs,
            output_format=request.app.state.config.generation_output_format,
        )
    except GenerationError as exc:
        logger.error("Generation failed for %s: %s", transformation["id"], exc)
        raise HTTPException(
            status_code=502, detail=f"AI image generation failed: {exc}"
        ) from exc

    transformed_url = generated_url
    watermarked = False
    watermark_meta = None
    object_store: ObjectStore | None = request.app.state.object_store
    if object_store is not None:
        try:
            published = publish_generated_image(
                generated_url,
                transformation["id"],
                object_store,
                request.app.state.http,
                request.app.state.config.watermark_options(),
            )
        except (httpx.HTTPError, BotoCoreError, ClientError) as exc:
            logger.warning(
                "Publishing %s failed, serving the model URL: %s", transformation["id"], exc
            )
        else:
            transformed_url = published.url
            watermarked = published.watermarked
            watermark_meta = published.metadata.as_dict() if published.metadata else None

    updated = store.update(
        transformation["id"],
        transformed_image_url=transformed_url,
        watermarked=watermarked,
        watermark=watermark_meta,
        card_stats=card_stats,
    )
    return {"success": True, "transformation": updated}


@app.get("/api/transformations/{transformation_id}")
async def get_transformation(transformation_id: str, request: Request) -> dict:
    """Return one transformation by id.

    Raises:
        HTTPException: 404 if the transformation is unknown.
    """
    return {
        "transformation": _get_transformation_or_404(request.app.state.store, transformation_id)
    }


@app.post("/api/transformations/{transformation_id}/share")
async def record_share(transformation_id: str, request: Request) -> dict:
    """Increment the share counter of a transformation."""
    store: TransformationStore = request.app.state.store
    _get_transformation_or_404(store, transformation_id)
    entry = store.increment_stat(transformation_id, "shares")
    return {"success": True, "stats": entry["stats"]}


@app.post("/api/email-capture")
async def email_capture(req: EmailCaptureRequest, request: Request) -> dict:
    """Record a lead and count a download for the transformation.

    An unknown transformation id still records the lead; only the download
    counter is skipped.
    """
    store: TransformationStore = request.app.state.store
    lead = store.record_lead(req.email, req.name, req.transformation_id)
    if store.increment_stat(req.transformation_id, "downloads") is None:
        logger.info("Lead captured for unknown transformation %s", req.transformation_id)
    return {
        "success": True,
        "message": "High-resolution image sent to your email",
        "user_id": lead["id"],
    }


@app.get("/api/admin/transformations", dependencies=[Depends(require_admin)])
async def admin_transformations(request: Request) -> dict:
    """List every transformation, newest first."""
    store: TransformationStore = request.app.state.store
    return {"success": True, "transformations": store.entries(), "leads": len(store.leads())}


@app.get("/api/admin/prompt-templates", dependencies=[Depends(require_admin)])
async def list_prompt_templates(request: Request) -> dict:
    """List every prompt template, newest first."""
    return {"success": True, "templates": request.app.state.store.prompt_templates()}


@app.post("/api/admin/prompt-templates", dependencies=[Depends(require_admin)])
async def create_prompt_template(req: PromptTemplateCreate, request: Request) -> dict:
    """Add a prompt template for a theme."""
    template = request.app.state.store.create_prompt_template(**req.model_dump())
    return {"success": True, "template": template}


@app.put("/api/admin/prompt-templates/{template_id}", dependencies=[Depends(require_admin)])
async def update_prompt_template(
    template_id: int, req: PromptTemplateUpdate, request: Request
) -> dict:
    """Change some fields of a prompt template.

    Raises:
        HTTPException: 404 if the template is unknown.
    """
    template = request.app.state.store.update_prompt_template(
        template_id, **req.model_dump(exclude_none=True)
    )
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return {"success": True, "template": template}


@app.get("/api/admin/prompt-variants/{template_id}", dependencies=[Depends(require_admin)])
async def list_prompt_variants(template_id: int, request: Request) -> dict:
    """Active variants of a template, best success rate first."""
    return {"success": True, "variants": request.app.state.store.prompt_variants(template_id)}


@app.post("/api/admin/prompt-variants", dependencies=[Depends(require_admin)])
async def create_prompt_variant(req: PromptVariantCreate, request: Request) -> dict:
    """Add an A/B variant to an existing template.

    Raises:
        HTTPException: 404 if the template is unknown.
    """
    store: TransformationStore = request.app.state.store
    if store.prompt_template(req.template_id) is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return {"success": True, "variant": store.create_prompt_variant(**req.model_dump())}


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server on the configured host and port."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "pawcard.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
