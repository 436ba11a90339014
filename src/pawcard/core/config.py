"""Configuration management for the Pawcard service.

This module provides centralized configuration management using Pydantic Settings.
Configuration is loaded once, at the process boundary, from environment
variables with the PAWCARD_ prefix.  A handful of settings keep the names the
deployment platform already exports (``WATERMARK_LOGO_PATH``,
``REPLICATE_API_TOKEN``, ``R2_*``, ``ADMIN_TOKEN``) and are read un-prefixed.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PAWCARD_* prefix, or the explicit aliases below)
2. .env file in the project root
3. Default values defined in PawcardConfig

Example .env file:
    PAWCARD_SERVER_PORT=8000
    PAWCARD_DATA_DIR=data
    PAWCARD_WATERMARK_LOGO_WIDTH_RATIO=0.22
    WATERMARK_LOGO_PATH=/srv/assets/logo-white.png
    REPLICATE_API_TOKEN=r8_...
    R2_ACCOUNT_ID=...

Watermark Options
-----------------
The watermark core never reads the environment.  Request handlers and the
debug CLI call :meth:`PawcardConfig.watermark_options` to turn the loaded
settings into an explicit :class:`~pawcard.core.watermark.WatermarkOptions`
value and pass it down.

Usage Example
-------------
    from pawcard.core.config import config

    options = config.watermark_options()
    result = watermark_and_prefer_jpeg(data, "image/png", options)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pawcard.core.placement import Position
from pawcard.core.watermark import DEFAULT_LOGO_SEARCH_PATHS, WatermarkOptions


class PawcardConfig(BaseSettings):
    """Main configuration for the Pawcard service.

    Attributes
    ----------
    Server Settings:
        server_host : str
            Bind address for uvicorn.
        server_port : int
            Bind port (1024-65535).
        data_dir : Path
            Directory holding the JSON engagement store.

    Watermark Settings:
        watermark_logo_path : Path | None
            Explicit logo override (``WATERMARK_LOGO_PATH``).
        watermark_logo_search_paths : list[Path]
            Ordered conventional logo locations, tried when no override is set.
        watermark_margin_px, watermark_logo_width_ratio,
        watermark_min_logo_width_px, watermark_jpeg_quality,
        watermark_force_position, watermark_fallback_position,
        watermark_auto_placement:
            Defaults for every watermark call.

    External Services:
        replicate_api_token, replicate_model:
            Image-generation API credentials and model slug.
        r2_account_id, r2_access_key_id, r2_secret_access_key,
        r2_generated_bucket, r2_generated_public_base_url:
            Cloudflare R2 object storage for published images.
        admin_token:
            Static bearer token guarding the admin listing.

    Notes
    -----
    - ``data_dir`` is created automatically on initialisation.
    - Missing external-service credentials are not an error at load time;
      the features that need them report unavailability when called.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PAWCARD_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Server
    server_host: str = Field(default="0.0.0.0", description="Server bind address")
    server_port: int = Field(default=8000, description="Server port", ge=1024, le=65535)
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for the transformation and lead JSON files",
    )

    # Watermark
    watermark_logo_path: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("WATERMARK_LOGO_PATH", "watermark_logo_path"),
        description="Explicit watermark logo PNG, overrides the search list",
    )
    watermark_logo_search_paths: list[Path] = Field(
        default_factory=lambda: list(DEFAULT_LOGO_SEARCH_PATHS),
        description="Conventional logo locations, first existing path wins",
    )
    watermark_margin_px: int = Field(default=24, ge=0)
    watermark_logo_width_ratio: float = Field(default=0.22, gt=0.0, le=1.0)
    watermark_min_logo_width_px: int = Field(default=64, ge=1)
    watermark_jpeg_quality: int = Field(default=90, ge=1, le=100)
    watermark_force_position: Position | None = Field(default=None)
    watermark_fallback_position: Position = Field(default="bottom-right")
    watermark_auto_placement: bool = Field(default=True)

    # Image generation
    replicate_api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REPLICATE_API_TOKEN", "replicate_api_token"),
    )
    replicate_model: str = Field(default="google/nano-banana")
    generation_output_format: Literal["png", "jpg", "webp"] = Field(default="png")

    # Object storage
    r2_account_id: str | None = Field(
        default=None, validation_alias=AliasChoices("R2_ACCOUNT_ID", "r2_account_id")
    )
    r2_access_key_id: str | None = Field(
        default=None, validation_alias=AliasChoices("R2_ACCESS_KEY_ID", "r2_access_key_id")
    )
    r2_secret_access_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("R2_SECRET_ACCESS_KEY", "r2_secret_access_key"),
    )
    r2_generated_bucket: str | None = Field(
        default=None,
        validation_alias=AliasChoices("R2_GENERATED_BUCKET", "r2_generated_bucket"),
    )
    r2_generated_public_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "R2_GENERATED_PUBLIC_BASE_URL", "r2_generated_public_base_url"
        ),
    )

    # Admin
    admin_token: str | None = Field(
        default=None, validation_alias=AliasChoices("ADMIN_TOKEN", "admin_token")
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory."""
        super().__init__(**kwargs)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def storage_configured(self) -> bool:
        """Whether every setting needed to upload to R2 is present."""
        return all(
            (
                self.r2_account_id,
                self.r2_access_key_id,
                self.r2_secret_access_key,
                self.r2_generated_bucket,
            )
        )

    def watermark_options(self, **overrides) -> WatermarkOptions:
        """Build per-call watermark options from the loaded settings.

        Args:
            **overrides: Field values that replace the configured defaults
                for this call (e.g. ``force_position="top-left"``).

        Returns:
            A fully populated :class:`WatermarkOptions`.
        """
        values = {
            "logo_path": self.watermark_logo_path,
            "logo_search_paths": tuple(self.watermark_logo_search_paths),
            "margin_px": self.watermark_margin_px,
            "logo_width_ratio": self.watermark_logo_width_ratio,
            "min_logo_width_px": self.watermark_min_logo_width_px,
            "jpeg_quality": self.watermark_jpeg_quality,
            "force_position": self.watermark_force_position,
            "fallback_position": self.watermark_fallback_position,
            "auto_placement": self.watermark_auto_placement,
        }
        values.update(overrides)
        return WatermarkOptions(**values)


# Global configuration instance, loaded once at import.
config = PawcardConfig()
