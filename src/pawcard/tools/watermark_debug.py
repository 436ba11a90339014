"""Fetch an image URL, watermark it, and write the result to disk.

Usage examples:
  # Defaults from the environment / .env
  pawcard-watermark-debug https://example.com/pet.png

  # Force a corner and a bigger logo
  pawcard-watermark-debug https://example.com/pet.png --position top-left --ratio 0.3

Settings are read once from :data:`pawcard.core.config.config`; command-line
flags override them for this run only.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import httpx

from pawcard.core.config import config
from pawcard.core.pipeline import fetch_image
from pawcard.core.placement import ALL_POSITIONS
from pawcard.core.watermark import watermark_and_prefer_jpeg

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pawcard-watermark-debug",
        description="Watermark a remote image and save it locally.",
    )
    parser.add_argument("url", help="Image URL to fetch")
    parser.add_argument(
        "-o", "--output", type=Path, default=Path("tmp-watermark-debug.jpg"),
        help="Output file (default: tmp-watermark-debug.jpg)",
    )
    parser.add_argument("--position", choices=ALL_POSITIONS, help="Force a corner")
    parser.add_argument("--margin", type=int, help="Margin in pixels")
    parser.add_argument("--ratio", type=float, help="Logo width as a fraction of image width")
    parser.add_argument("--min-width", type=int, help="Minimum logo width in pixels")
    parser.add_argument("--quality", type=int, help="JPEG quality (1-100)")
    parser.add_argument("--no-auto", action="store_true", help="Disable auto-placement")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log candidate scores")
    return parser


def options_from_args(args: argparse.Namespace):
    overrides = {}
    if args.position:
        overrides["force_position"] = args.position
    if args.margin is not None:
        overrides["margin_px"] = args.margin
    if args.ratio is not None:
        overrides["logo_width_ratio"] = args.ratio
    if args.min_width is not None:
        overrides["min_logo_width_px"] = args.min_width
    if args.quality is not None:
        overrides["jpeg_quality"] = args.quality
    if args.no_auto:
        overrides["auto_placement"] = False
    return config.watermark_options(**overrides)


def run(args: argparse.Namespace, http_client: httpx.Client) -> int:
    logger.info("Fetching %s", args.url)
    data, content_type = fetch_image(args.url, http_client)
    result = watermark_and_prefer_jpeg(data, content_type, options_from_args(args))

    args.output.write_bytes(result.buffer)
    summary = {
        "content_type": result.content_type,
        "extension": result.extension,
        "watermarked": result.watermarked,
        "bytes": len(result.buffer),
    }
    if result.metadata is not None:
        summary.update(result.metadata.as_dict())
    print("Watermark result", summary)
    print("Saved to", args.output)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[watermark] %(levelname)s %(message)s",
    )
    try:
        with httpx.Client(timeout=30.0) as http_client:
            return run(args, http_client)
    except Exception as exc:
        logger.error("Watermark debug failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
