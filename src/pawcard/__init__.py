"""Pawcard - AI pet portrait cards with brand watermarking."""

__version__ = "0.3.0"

from pawcard.core.config import PawcardConfig, config
from pawcard.core.watermark import WatermarkOptions, WatermarkResult, watermark_and_prefer_jpeg

__all__ = [
    "PawcardConfig",
    "WatermarkOptions",
    "WatermarkResult",
    "config",
    "watermark_and_prefer_jpeg",
]
