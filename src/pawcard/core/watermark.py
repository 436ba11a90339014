"""Brand watermarking for generated pet images.

:func:`watermark_and_prefer_jpeg` is the entry point.  It stamps the brand
logo onto an image in the least busy corner and re-encodes the result as a
JPEG with full chroma resolution, so the logo edges stay crisp.

Outcomes
--------
- **Image library unavailable** -- the input bytes come back untouched,
  ``watermarked=False``, with the content type the caller declared.
- **Dimensions unreadable or pixels undecodable** -- the input is converted
  to JPEG without a logo, ``watermarked=False``.  If even that conversion
  fails the input comes back untouched under its declared content type.
- **Happy path** -- logo resized to ``max(min_logo_width_px,
  round(width * logo_width_ratio))``, placed (see
  :mod:`pawcard.core.placement`), composited, JPEG-encoded,
  ``watermarked=True``.

A missing logo raises :class:`LogoNotFoundError`.  Any other unexpected
failure propagates too; the publish pipeline decides whether to ship the
unbranded original instead (see :func:`pawcard.core.pipeline.prepare_for_publish`).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from pawcard.core.imaging import ImageCapability, Overlay, load_image_capability
from pawcard.core.placement import ALL_POSITIONS, PlacementDecision, Position, select_placement

logger = logging.getLogger(__name__)

LOGO_PATH_ENV_VAR = "WATERMARK_LOGO_PATH"

# Deployment asset paths first, then the same assets relative to the working
# directory.  The white logo is preferred over the colour one.
DEFAULT_LOGO_SEARCH_PATHS: tuple[Path, ...] = (
    Path("/home/runner/workspace/client/public/images/the-pet-pantry-logo-white.png"),
    Path("/home/runner/workspace/client/public/images/the-pet-pantry-logo.png"),
    Path("client/public/images/the-pet-pantry-logo-white.png"),
    Path("client/public/images/the-pet-pantry-logo.png"),
)


class WatermarkError(Exception):
    """Base class for watermarking failures."""


class LogoNotFoundError(WatermarkError, FileNotFoundError):
    """No watermark logo exists at the override or any conventional path."""

    def __init__(self, searched: Sequence[Path]) -> None:
        self.searched = list(searched)
        locations = ", ".join(str(p) for p in self.searched) or "(none)"
        super().__init__(
            f"Watermark logo not found. Set {LOGO_PATH_ENV_VAR} or place a logo PNG "
            f"at one of: {locations}"
        )


@dataclass(frozen=True)
class WatermarkOptions:
    """Per-call watermark settings.

    Build these with :meth:`pawcard.core.config.PawcardConfig.watermark_options`
    in application code; the bare defaults suit tests and library use.
    """

    logo_path: Path | None = None
    logo_search_paths: tuple[Path, ...] = DEFAULT_LOGO_SEARCH_PATHS
    margin_px: int = 24
    logo_width_ratio: float = 0.22
    min_logo_width_px: int = 64
    jpeg_quality: int = 90
    force_position: Position | None = None
    fallback_position: Position = "bottom-right"
    candidate_positions: tuple[Position, ...] = ALL_POSITIONS
    auto_placement: bool = True


@dataclass(frozen=True)
class WatermarkMetadata:
    position: Position
    left: int
    top: int
    logo_width: int
    logo_height: int
    auto_placement: bool
    score: float | None = None

    def as_dict(self) -> dict:
        data = {
            "position": self.position,
            "left": self.left,
            "top": self.top,
            "logo_width": self.logo_width,
            "logo_height": self.logo_height,
            "auto_placement": self.auto_placement,
        }
        if self.score is not None:
            data["score"] = self.score
        return data


@dataclass(frozen=True)
class WatermarkResult:
    """Encoded output of :func:`watermark_and_prefer_jpeg`.

    Attributes:
        buffer: Final image bytes.
        content_type: MIME type of ``buffer``.
        extension: File extension without the leading dot.
        watermarked: Whether a logo was actually composited.
        metadata: Placement details when ``watermarked`` is true.
    """

    buffer: bytes
    content_type: str
    extension: str
    watermarked: bool
    metadata: WatermarkMetadata | None = field(default=None)


def infer_extension(content_type: str | None) -> str:
    """Map a MIME type to a file extension, defaulting to ``jpg``."""
    if not content_type:
        return "jpg"
    lowered = content_type.lower()
    for name in ("png", "webp", "gif"):
        if name in lowered:
            return name
    return "jpg"


def resolve_logo_path(
    override: Path | str | None = None,
    search_paths: Sequence[Path | str] = (),
) -> Path:
    """Locate the logo file.

    An explicit ``override`` must exist.  Otherwise the first existing entry
    of ``search_paths`` wins; relative entries resolve against the current
    working directory.

    Raises:
        LogoNotFoundError: If nothing exists.
    """
    if override:
        path = Path(override)
        if path.is_file():
            return path
        raise LogoNotFoundError([path])

    candidates = [Path(p) for p in search_paths]
    for candidate in candidates:
        resolved = candidate if candidate.is_absolute() else Path.cwd() / candidate
        if resolved.is_file():
            return resolved
    raise LogoNotFoundError(candidates)


def target_logo_width(base_width: int, ratio: float, min_width: int) -> int:
    return max(min_width, round(base_width * ratio))


def apply_logo(
    capability: ImageCapability,
    data: bytes,
    base_width: int,
    base_height: int,
    logo: bytes,
    options: WatermarkOptions,
) -> tuple[bytes, WatermarkMetadata]:
    """Resize the logo, choose a corner, composite, and JPEG-encode."""
    margin = max(0, options.margin_px)
    resized = capability.resize(
        logo,
        target_logo_width(base_width, options.logo_width_ratio, options.min_logo_width_px),
        without_enlargement=True,
    )

    decision: PlacementDecision = select_placement(
        capability,
        data,
        base_width,
        base_height,
        resized.width,
        resized.height,
        margin,
        force_position=options.force_position,
        fallback_position=options.fallback_position,
        candidate_positions=options.candidate_positions,
        auto_placement=options.auto_placement,
    )
    logger.info(
        "Watermark placed %s at (%d, %d)%s",
        decision.position,
        decision.left,
        decision.top,
        f" score={decision.score:.4f}" if decision.score is not None else "",
    )

    composited = capability.composite(
        data, [Overlay(data=resized.data, left=decision.left, top=decision.top, blend="over")]
    )
    encoded = capability.encode_jpeg(composited, options.jpeg_quality, subsampling="4:4:4")

    return encoded, WatermarkMetadata(
        position=decision.position,
        left=decision.left,
        top=decision.top,
        logo_width=resized.width,
        logo_height=resized.height,
        auto_placement=decision.auto_placement,
        score=decision.score,
    )


def _convert_without_logo(
    capability: ImageCapability,
    data: bytes,
    source_content_type: str | None,
    options: WatermarkOptions,
) -> WatermarkResult:
    """JPEG-encode an image that cannot be branded, or pass it through as is.

    Passed-through bytes keep the label of the source, so a failed conversion
    is never published under a JPEG content type.
    """
    try:
        buffer = capability.encode_jpeg(data, options.jpeg_quality, subsampling="4:4:4")
    except capability.decode_errors as exc:
        logger.warning("JPEG conversion failed (%s); passing original bytes through.", exc)
        return WatermarkResult(
            buffer=data,
            content_type=source_content_type or "application/octet-stream",
            extension=infer_extension(source_content_type),
            watermarked=False,
        )
    return WatermarkResult(
        buffer=buffer, content_type="image/jpeg", extension="jpg", watermarked=False
    )


def watermark_and_prefer_jpeg(
    data: bytes,
    source_content_type: str | None = None,
    options: WatermarkOptions | None = None,
    *,
    capability: ImageCapability | None = None,
) -> WatermarkResult:
    """Stamp the brand logo onto ``data`` and return a JPEG.

    Args:
        data: Source image bytes.
        source_content_type: MIME type declared by whoever supplied ``data``.
        options: Watermark settings; defaults to :class:`WatermarkOptions`.
        capability: Image capability to use instead of loading Pillow.

    Returns:
        The :class:`WatermarkResult`.

    Raises:
        LogoNotFoundError: If the logo cannot be located.
    """
    options = options or WatermarkOptions()
    capability = capability or load_image_capability()

    if capability is None:
        logger.warning("Image processing unavailable; skipping watermark and JPEG conversion.")
        return WatermarkResult(
            buffer=data,
            content_type=source_content_type or "application/octet-stream",
            extension=infer_extension(source_content_type),
            watermarked=False,
        )

    meta = capability.load_metadata(data)
    if not meta.readable or not capability.is_decodable(data):
        logger.warning("Unable to decode base image; converting to JPEG without watermark.")
        return _convert_without_logo(capability, data, source_content_type, options)

    logo_path = resolve_logo_path(options.logo_path, options.logo_search_paths)
    logger.info("Using watermark logo %s", logo_path)
    logo = logo_path.read_bytes()

    buffer, metadata = apply_logo(capability, data, meta.width, meta.height, logo, options)
    return WatermarkResult(
        buffer=buffer,
        content_type="image/jpeg",
        extension="jpg",
        watermarked=True,
        metadata=metadata,
    )
