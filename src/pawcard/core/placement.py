"""Watermark placement: corner coordinates, busyness scoring, and selection.

A logo is easier to read on a calm part of the picture.  For each candidate
corner the scorer samples the area the logo would cover (plus the margin),
converts it to greyscale and combines its entropy with its normalised
standard deviation.  The selector picks the calmest corner, unless a
position is forced or scoring is switched off.

Score
-----
``entropy + std_dev / 255``

Entropy is measured in bits (0-8 for 8-bit greyscale) and the standard
deviation is scaled into 0-1 so it acts as a tie-breaker between regions of
similar entropy.  Only the ordering of scores matters.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Literal, get_args

from pawcard.core.imaging import ImageCapability, Rect

logger = logging.getLogger(__name__)

Position = Literal["top-left", "top-right", "bottom-left", "bottom-right"]

ALL_POSITIONS: tuple[Position, ...] = get_args(Position)


@dataclass(frozen=True)
class PlacementScore:
    position: Position
    left: int
    top: int
    score: float


@dataclass(frozen=True)
class PlacementDecision:
    """The chosen corner and where it lands on the base image.

    Attributes:
        position: Chosen corner.
        left: Overlay x offset in pixels.
        top: Overlay y offset in pixels.
        score: Busyness score when the corner won a scoring pass, else ``None``.
        auto_placement: ``True`` when the position came from scoring.
    """

    position: Position
    left: int
    top: int
    score: float | None = None
    auto_placement: bool = False


def position_coordinates(
    position: Position,
    base_width: int,
    base_height: int,
    overlay_width: int,
    overlay_height: int,
    margin: int,
) -> tuple[int, int]:
    """Return the ``(left, top)`` pixel offset for a corner.

    Offsets are clamped so they are never negative and, when the overlay
    fits inside the base, never push the overlay past the far edge.
    """
    if position not in ALL_POSITIONS:
        raise ValueError(f"Unknown watermark position: {position!r}")

    if position.endswith("right"):
        left = max(0, base_width - overlay_width - margin)
    else:
        left = min(margin, max(0, base_width - overlay_width))

    if position.startswith("bottom"):
        top = max(0, base_height - overlay_height - margin)
    else:
        top = min(margin, max(0, base_height - overlay_height))

    return left, top


def unique_positions(positions: Iterable[Position]) -> list[Position]:
    """Drop repeated positions, keeping first occurrences in order."""
    seen: list[Position] = []
    for position in positions:
        if position not in ALL_POSITIONS:
            raise ValueError(f"Unknown watermark position: {position!r}")
        if position not in seen:
            seen.append(position)
    return seen


def score_position(
    capability: ImageCapability,
    data: bytes,
    base_width: int,
    base_height: int,
    overlay_width: int,
    overlay_height: int,
    margin: int,
    position: Position,
) -> PlacementScore | None:
    """Score how busy the area under a candidate corner is.

    Returns:
        The score, or ``None`` if the region could not be sampled.  A failed
        candidate is dropped from the pass rather than failing it.
    """
    left, top = position_coordinates(
        position, base_width, base_height, overlay_width, overlay_height, margin
    )
    rect = Rect(
        left=left,
        top=top,
        width=max(0, min(overlay_width + margin, base_width - left)),
        height=max(0, min(overlay_height + margin, base_height - top)),
    )
    try:
        region = capability.extract_region(data, rect)
        stats = capability.region_stats(region)
    except Exception as exc:
        logger.warning("Skipping watermark candidate %s: %s", position, exc)
        return None

    score = stats.entropy + stats.std_dev / 255
    logger.debug(
        "Candidate %s at (%d, %d): entropy=%.4f std_dev=%.4f score=%.4f",
        position,
        left,
        top,
        stats.entropy,
        stats.std_dev,
        score,
    )
    return PlacementScore(position=position, left=left, top=top, score=score)


def pick_lowest(scores: Sequence[PlacementScore]) -> PlacementScore | None:
    """Lowest score wins; on a tie the earlier candidate is kept."""
    best: PlacementScore | None = None
    for candidate in scores:
        if best is None or candidate.score < best.score:
            best = candidate
    return best


def select_placement(
    capability: ImageCapability,
    data: bytes,
    base_width: int,
    base_height: int,
    overlay_width: int,
    overlay_height: int,
    margin: int,
    *,
    force_position: Position | None = None,
    fallback_position: Position = "bottom-right",
    candidate_positions: Sequence[Position] | None = None,
    auto_placement: bool = True,
) -> PlacementDecision:
    """Decide where the logo goes.

    Priority:
        1. ``force_position`` when given, with no scoring.
        2. The lowest-scoring corner of ``candidate_positions`` when
           ``auto_placement`` is on.
        3. ``fallback_position`` when scoring is off or every candidate failed.
    """
    dims = (base_width, base_height, overlay_width, overlay_height, margin)

    if force_position is not None:
        left, top = position_coordinates(force_position, *dims)
        return PlacementDecision(position=force_position, left=left, top=top)

    if auto_placement:
        candidates = unique_positions(
            candidate_positions if candidate_positions else ALL_POSITIONS
        )
        scores = [
            scored
            for scored in (
                score_position(capability, data, *dims, position) for position in candidates
            )
            if scored is not None
        ]
        best = pick_lowest(scores)
        if best is not None:
            return PlacementDecision(
                position=best.position,
                left=best.left,
                top=best.top,
                score=best.score,
                auto_placement=True,
            )
        logger.warning(
            "No watermark candidate could be scored; using fallback %s.", fallback_position
        )

    left, top = position_coordinates(fallback_position, *dims)
    return PlacementDecision(position=fallback_position, left=left, top=top)
