"""Raster image capability used by the watermark pipeline.

The watermark code never touches Pillow directly.  It asks
:func:`load_image_capability` for an :class:`ImageCapability` once per call
and gates every image operation behind that value.  When Pillow cannot be
imported (for example a slim container without its native wheels) the loader
returns ``None`` and the caller degrades to passing the original bytes
through.

Operations
----------
load_metadata
    Best-effort width/height read; unreadable input yields ``None`` dimensions.
is_decodable
    Whether the pixel data behind a readable header loads in full.
extract_region
    Crop a rectangle (clipped to the image bounds) for statistics.
region_stats
    Greyscale entropy (bits) and standard deviation of a region.
resize
    Shrink to a target width keeping aspect ratio, never enlarging by default.
composite
    Straight alpha ("over") overlay of one or more layers.
encode_jpeg
    Quality-controlled baseline JPEG with selectable chroma subsampling.
"""

from __future__ import annotations

from importlib import import_module
import io
import logging
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Pillow's ``subsampling`` save argument, keyed by the conventional names.
_SUBSAMPLING = {"4:4:4": 0, "4:2:2": 1, "4:2:0": 2}


@dataclass(frozen=True)
class ImageMetadata:
    width: int | None
    height: int | None

    @property
    def readable(self) -> bool:
        return bool(self.width) and bool(self.height)


@dataclass(frozen=True)
class Rect:
    left: int
    top: int
    width: int
    height: int


@dataclass(frozen=True)
class RegionStats:
    entropy: float
    std_dev: float


@dataclass(frozen=True)
class ResizedImage:
    data: bytes
    width: int
    height: int


@dataclass(frozen=True)
class Overlay:
    data: bytes
    left: int
    top: int
    blend: str = "over"


class ImageCapability(Protocol):
    """What the watermark pipeline needs from an image library."""

    decode_errors: tuple[type[BaseException], ...]

    def load_metadata(self, data: bytes) -> ImageMetadata: ...

    def is_decodable(self, data: bytes) -> bool: ...

    def extract_region(self, data: bytes, rect: Rect) -> Any: ...

    def region_stats(self, region: Any) -> RegionStats: ...

    def resize(
        self, data: bytes, width: int, without_enlargement: bool = True
    ) -> ResizedImage: ...

    def composite(self, base: bytes, overlays: list[Overlay]) -> Any: ...

    def encode_jpeg(self, image: Any, quality: int, subsampling: str = "4:4:4") -> bytes: ...


class PillowImageCapability:
    """:class:`ImageCapability` backed by Pillow.

    Args:
        image_module: The imported ``PIL.Image`` module.
        stat_module: The imported ``PIL.ImageStat`` module.
    """

    def __init__(self, image_module, stat_module) -> None:
        self._image = image_module
        self._stat = stat_module
        # Pillow raises UnidentifiedImageError (an OSError) for unknown formats,
        # SyntaxError from a few plugin header parsers, and
        # DecompressionBombError (a bare Exception) for oversized images.
        self.decode_errors: tuple[type[BaseException], ...] = (
            OSError,
            ValueError,
            SyntaxError,
            image_module.DecompressionBombError,
        )

    def _open(self, data: bytes):
        return self._image.open(io.BytesIO(data))

    def load_metadata(self, data: bytes) -> ImageMetadata:
        """Read dimensions without decoding pixels.

        Any decoder failure is reported as unknown dimensions rather than
        raised, so callers can decide how to degrade.
        """
        try:
            with self._open(data) as image:
                width, height = image.size
        except self.decode_errors as exc:
            logger.debug("Could not read image metadata: %s", exc)
            return ImageMetadata(width=None, height=None)
        return ImageMetadata(width=width or None, height=height or None)

    def is_decodable(self, data: bytes) -> bool:
        """Whether the pixel data decodes in full.

        A readable header says nothing about the pixels behind it; a
        truncated file only fails once the data is actually loaded.
        """
        try:
            with self._open(data) as image:
                image.load()
        except self.decode_errors as exc:
            logger.debug("Image pixels could not be decoded: %s", exc)
            return False
        return True

    def extract_region(self, data: bytes, rect: Rect):
        """Crop ``rect`` out of the image, clipped to its bounds.

        Raises:
            ValueError: If the clipped rectangle is empty.
        """
        with self._open(data) as image:
            image.load()
            right = min(image.width, rect.left + rect.width)
            bottom = min(image.height, rect.top + rect.height)
            left = max(0, min(rect.left, image.width))
            top = max(0, min(rect.top, image.height))
            if right <= left or bottom <= top:
                raise ValueError(f"Empty sample region {rect!r} for {image.size} image")
            return image.crop((left, top, right, bottom))

    def region_stats(self, region) -> RegionStats:
        """Greyscale entropy and standard deviation of a region.

        The alpha channel is dropped, not flattened, so the colour data under
        transparent pixels still counts.
        """
        grey = region if region.mode == "L" else region.convert("RGB").convert("L")
        std_dev = self._stat.Stat(grey).stddev[0]
        return RegionStats(entropy=float(grey.entropy()), std_dev=float(std_dev))

    def resize(self, data: bytes, width: int, without_enlargement: bool = True) -> ResizedImage:
        """Resize to ``width`` keeping aspect ratio; output is PNG bytes."""
        with self._open(data) as image:
            image.load()
            source = image if image.mode in ("RGBA", "RGB", "L", "LA") else image.convert("RGBA")
            if without_enlargement and width >= source.width:
                resized = source.copy()
            else:
                height = max(1, round(source.height * width / source.width))
                resized = source.resize((width, height), self._image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        resized.save(buffer, format="PNG")
        return ResizedImage(data=buffer.getvalue(), width=resized.width, height=resized.height)

    def composite(self, base: bytes, overlays: list[Overlay]):
        """Overlay each layer onto ``base`` and return the composited image."""
        with self._open(base) as image:
            canvas = image.convert("RGBA")
        for overlay in overlays:
            if overlay.blend != "over":
                raise ValueError(f"Unsupported blend mode: {overlay.blend}")
            with self._open(overlay.data) as layer_image:
                layer = layer_image.convert("RGBA")
            canvas.alpha_composite(layer, dest=(overlay.left, overlay.top))
        return canvas

    def encode_jpeg(self, image, quality: int, subsampling: str = "4:4:4") -> bytes:
        """Encode an image (or raw image bytes) as JPEG.

        Transparent areas are flattened onto white, since JPEG has no alpha.
        """
        if isinstance(image, (bytes, bytearray)):
            with self._open(bytes(image)) as opened:
                opened.load()
                image = opened.copy()
        if image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info:
            rgba = image.convert("RGBA")
            flattened = self._image.new("RGB", rgba.size, (255, 255, 255))
            flattened.paste(rgba, mask=rgba.getchannel("A"))
            image = flattened
        elif image.mode != "RGB":
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(
            buffer,
            format="JPEG",
            quality=quality,
            subsampling=_SUBSAMPLING[subsampling],
        )
        return buffer.getvalue()


def load_image_capability() -> ImageCapability | None:
    """Load the image library, returning ``None`` if it is unavailable."""
    try:
        image_module = import_module("PIL.Image")
        stat_module = import_module("PIL.ImageStat")
    except ImportError as exc:
        logger.warning("Pillow is not available (%s); image processing disabled.", exc)
        return None
    return PillowImageCapability(image_module, stat_module)
