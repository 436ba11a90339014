"""Publish pipeline: fetch a generated image, brand it, and store it.

Watermarking is best effort at this stage.  If
:func:`~pawcard.core.watermark.watermark_and_prefer_jpeg` raises for any
reason (missing logo, broken logo file, encoder failure) the original,
unbranded image is published instead so the visitor still gets a result.

Usage
-----
::

    with httpx.Client(timeout=30) as http:
        published = publish_generated_image(
            url, transformation_id, store, http, config.watermark_options()
        )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from pawcard.core.object_store import (
    IMMUTABLE_CACHE_CONTROL,
    ObjectStore,
    make_generated_key,
)
from pawcard.core.watermark import (
    WatermarkMetadata,
    WatermarkOptions,
    WatermarkResult,
    infer_extension,
    watermark_and_prefer_jpeg,
)

logger = logging.getLogger(__name__)

GENERATED_KIND = "pet-transform"


@dataclass(frozen=True)
class PublishedImage:
    key: str
    url: str
    watermarked: bool
    metadata: WatermarkMetadata | None = None


def fetch_image(url: str, http_client: httpx.Client) -> tuple[bytes, str | None]:
    """Download an image and return its bytes and declared content type.

    Raises:
        httpx.HTTPStatusError: For non-2xx responses.
    """
    response = http_client.get(url, follow_redirects=True)
    response.raise_for_status()
    return response.content, response.headers.get("content-type")


def prepare_for_publish(
    data: bytes,
    content_type: str | None,
    options: WatermarkOptions | None = None,
) -> WatermarkResult:
    """Watermark ``data``, falling back to the untouched original on failure."""
    try:
        return watermark_and_prefer_jpeg(data, content_type, options)
    except Exception as exc:
        logger.warning("Watermarking failed, publishing original image: %s", exc)
        return WatermarkResult(
            buffer=data,
            content_type=content_type or "application/octet-stream",
            extension=infer_extension(content_type),
            watermarked=False,
        )


def publish_generated_image(
    source_url: str,
    resource_id: str,
    store: ObjectStore,
    http_client: httpx.Client,
    options: WatermarkOptions | None = None,
) -> PublishedImage:
    """Fetch ``source_url``, brand it, and upload it under a generated key.

    Returns:
        The stored key and the URL to serve.  When the bucket has no public
        origin the source URL is returned.
    """
    data, content_type = fetch_image(source_url, http_client)
    result = prepare_for_publish(data, content_type, options)

    key = make_generated_key(GENERATED_KIND, resource_id, result.extension)
    store.upload(
        key,
        result.buffer,
        content_type=result.content_type,
        cache_control=IMMUTABLE_CACHE_CONTROL,
    )
    return PublishedImage(
        key=key,
        url=store.public_url(key) or source_url,
        watermarked=result.watermarked,
        metadata=result.metadata,
    )
