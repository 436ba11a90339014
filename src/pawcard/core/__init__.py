"""Core functionality for the Pawcard service.

- **config**: Pydantic Settings configuration, loaded once from the environment
- **imaging**: Pillow-backed image capability with an availability check
- **placement**: corner coordinates, busyness scoring, and corner selection
- **watermark**: logo resolution, compositing, and the JPEG-preferring entry point
- **generation**: prompts and Replicate output normalisation
- **object_store**: R2 uploads and generated-asset keys
- **pipeline**: fetch, watermark-with-fallback, and publish

Usage Example
-------------
    from pawcard.core import config, watermark_and_prefer_jpeg

    result = watermark_and_prefer_jpeg(data, "image/png", config.watermark_options())
"""

from pawcard.core.config import PawcardConfig, config
from pawcard.core.watermark import (
    LogoNotFoundError,
    WatermarkOptions,
    WatermarkResult,
    watermark_and_prefer_jpeg,
)

__all__ = [
    "LogoNotFoundError",
    "PawcardConfig",
    "WatermarkOptions",
    "WatermarkResult",
    "config",
    "watermark_and_prefer_jpeg",
]
