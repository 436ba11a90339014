"""Object storage for published images (Cloudflare R2 over the S3 API)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


class StorageNotConfiguredError(RuntimeError):
    """R2 credentials or bucket settings are missing."""


def make_generated_key(
    kind: str,
    resource_id: str,
    extension: str = "jpg",
    now_ms: int | None = None,
) -> str:
    """Key for a generated asset: ``gen/<kind>/<id>/<epoch-ms>.<ext>``."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    ext = (extension or "jpg").lstrip(".")
    return f"gen/{kind}/{resource_id}/{stamp}.{ext}"


def public_url_for_key(base_url: str | None, key: str) -> str | None:
    if not base_url:
        return None
    return f"{base_url.rstrip('/')}/{key}"


@dataclass
class ObjectStore:
    """Thin wrapper over an S3-compatible client bound to one bucket.

    Attributes:
        client: A ``boto3`` S3 client (or compatible double).
        bucket: Bucket that receives generated images.
        public_base_url: Public origin serving ``bucket``, if any.
    """

    client: object
    bucket: str
    public_base_url: str | None = None

    @classmethod
    def from_config(cls, config) -> "ObjectStore":
        """Build an R2 store from :class:`~pawcard.core.config.PawcardConfig`.

        Raises:
            StorageNotConfiguredError: If any R2 setting is missing.
        """
        if not config.storage_configured:
            raise StorageNotConfiguredError(
                "R2 storage requires R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, "
                "R2_SECRET_ACCESS_KEY and R2_GENERATED_BUCKET"
            )

        import boto3
        from botocore.config import Config

        client = boto3.client(
            "s3",
            endpoint_url=f"https://{config.r2_account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=config.r2_access_key_id,
            aws_secret_access_key=config.r2_secret_access_key,
            region_name="auto",
            config=Config(s3={"addressing_style": "path"}),
        )
        return cls(
            client=client,
            bucket=config.r2_generated_bucket,
            public_base_url=config.r2_generated_public_base_url,
        )

    def upload(
        self,
        key: str,
        body: bytes,
        content_type: str | None = None,
        cache_control: str | None = None,
    ) -> None:
        params = {"Bucket": self.bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if cache_control:
            params["CacheControl"] = cache_control
        self.client.put_object(**params)
        logger.info("Uploaded %d bytes to %s/%s", len(body), self.bucket, key)

    def public_url(self, key: str) -> str | None:
        return public_url_for_key(self.public_base_url, key)
