"""Tests for pawcard.core.watermark.

Tests cover:
- The happy path on an opaque PNG (JPEG out, logo sized by ratio).
- Forced positions and the metadata they produce.
- Degrading on unreadable input and on a missing image library.
- Logo lookup: override, search order, relative paths, and the missing-logo error.
"""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from pawcard.core import watermark
from pawcard.core.imaging import ImageMetadata
from pawcard.core.watermark import (
    LogoNotFoundError,
    WatermarkError,
    WatermarkMetadata,
    WatermarkOptions,
    infer_extension,
    resolve_logo_path,
    target_logo_width,
    watermark_and_prefer_jpeg,
)


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


class _HeaderlessCapability:
    """Capability double that cannot size its input but can still encode it."""

    decode_errors = (OSError, ValueError)

    def __init__(self):
        self.encoded = []

    def load_metadata(self, data):
        return ImageMetadata(width=None, height=None)

    def is_decodable(self, data):
        return False

    def encode_jpeg(self, image, quality, subsampling="4:4:4"):
        self.encoded.append(image)
        return b"\xff\xd8converted"


class TestHappyPath:
    def test_opaque_png_becomes_watermarked_jpeg(self, opaque_png, watermark_options):
        result = watermark_and_prefer_jpeg(opaque_png, "image/png", watermark_options)

        assert result.watermarked is True
        assert result.content_type == "image/jpeg"
        assert result.extension == "jpg"
        assert result.buffer[:2] == b"\xff\xd8"
        assert result.metadata.logo_width == 220
        assert result.metadata.logo_height == 55
        assert result.metadata.auto_placement is True
        assert result.metadata.score is not None
        assert _open(result.buffer).size == (1000, 1000)

    def test_logo_is_visible_where_placed(self, opaque_png, watermark_options):
        """The white logo brightens the area it covers."""
        result = watermark_and_prefer_jpeg(
            opaque_png, "image/png", watermark_options, capability=None
        )
        meta = result.metadata
        before = Image.open(io.BytesIO(opaque_png)).convert("L")
        after = _open(result.buffer).convert("L")
        centre = (meta.left + meta.logo_width // 2, meta.top + meta.logo_height // 2)
        assert after.getpixel(centre) > before.getpixel(centre)

    def test_explicit_capability_is_used(self, opaque_png, watermark_options, capability):
        result = watermark_and_prefer_jpeg(
            opaque_png, "image/png", watermark_options, capability=capability
        )
        assert result.watermarked is True

    def test_small_image_uses_minimum_logo_width(self, logo_path):
        small = io.BytesIO()
        Image.new("RGB", (200, 200), color=(20, 20, 20)).save(small, format="PNG")
        result = watermark_and_prefer_jpeg(
            small.getvalue(), "image/png", WatermarkOptions(logo_path=logo_path)
        )
        assert result.metadata.logo_width == 64
        assert result.metadata.logo_height == 16

    def test_noisy_quadrant_is_avoided(self, make_noisy_png, watermark_options):
        result = watermark_and_prefer_jpeg(make_noisy_png(400), "image/png", watermark_options)
        assert result.metadata.position != "top-left"


class TestForcedPosition:
    def test_forced_top_right(self, opaque_png, logo_path):
        options = WatermarkOptions(logo_path=logo_path, force_position="top-right")
        result = watermark_and_prefer_jpeg(opaque_png, "image/png", options)

        assert result.metadata.position == "top-right"
        assert (result.metadata.left, result.metadata.top) == (1000 - 220 - 24, 24)
        assert result.metadata.auto_placement is False
        assert result.metadata.score is None
        assert "score" not in result.metadata.as_dict()

    def test_auto_placement_off_uses_fallback(self, opaque_png, logo_path):
        options = WatermarkOptions(
            logo_path=logo_path, auto_placement=False, fallback_position="bottom-left"
        )
        result = watermark_and_prefer_jpeg(opaque_png, "image/png", options)
        assert result.metadata.position == "bottom-left"
        assert (result.metadata.left, result.metadata.top) == (24, 1000 - 55 - 24)


class TestDegradedPaths:
    def test_unreadable_header_is_converted_to_jpeg(self, watermark_options):
        """Unknown dimensions still get a JPEG conversion attempt."""
        capability = _HeaderlessCapability()
        result = watermark_and_prefer_jpeg(
            b"mystery", "image/png", watermark_options, capability=capability
        )

        assert result.watermarked is False
        assert result.content_type == "image/jpeg"
        assert result.extension == "jpg"
        assert result.buffer == b"\xff\xd8converted"
        assert capability.encoded == [b"mystery"]

    def test_unreadable_bytes_pass_through_with_source_label(
        self, corrupt_png, watermark_options
    ):
        result = watermark_and_prefer_jpeg(corrupt_png, "image/png", watermark_options)

        assert result.watermarked is False
        assert result.metadata is None
        # JPEG conversion fails too, so the bytes pass through unrelabelled.
        assert result.buffer == corrupt_png
        assert result.content_type == "image/png"
        assert result.extension == "png"

    def test_unreadable_bytes_without_declared_type(self, corrupt_png, watermark_options):
        result = watermark_and_prefer_jpeg(corrupt_png, None, watermark_options)
        assert result.content_type == "application/octet-stream"
        assert result.extension == "jpg"

    def test_truncated_pixels_are_not_watermarked(
        self, capability, truncated_png, watermark_options
    ):
        """A readable header over cut-off pixel data degrades instead of raising."""
        assert capability.load_metadata(truncated_png).readable

        result = watermark_and_prefer_jpeg(truncated_png, "image/png", watermark_options)

        assert result.watermarked is False
        assert result.metadata is None
        assert result.buffer == truncated_png
        assert result.content_type == "image/png"

    def test_truncated_pixels_do_not_need_a_logo(self, truncated_png, temp_dir):
        options = WatermarkOptions(logo_path=temp_dir / "missing.png")
        assert watermark_and_prefer_jpeg(truncated_png, None, options).watermarked is False

    def test_unreadable_bytes_do_not_need_a_logo(self, corrupt_png, temp_dir):
        options = WatermarkOptions(logo_path=temp_dir / "missing.png")
        result = watermark_and_prefer_jpeg(corrupt_png, None, options)
        assert result.watermarked is False

    def test_capability_unavailable_passes_bytes_through(
        self, monkeypatch, opaque_png, watermark_options
    ):
        monkeypatch.setattr(watermark, "load_image_capability", lambda: None)
        result = watermark_and_prefer_jpeg(opaque_png, "image/png", watermark_options)

        assert result.buffer == opaque_png
        assert result.content_type == "image/png"
        assert result.extension == "png"
        assert result.watermarked is False

    def test_capability_unavailable_without_content_type(self, monkeypatch, opaque_png):
        monkeypatch.setattr(watermark, "load_image_capability", lambda: None)
        result = watermark_and_prefer_jpeg(opaque_png)

        assert result.content_type == "application/octet-stream"
        assert result.extension == "jpg"

    def test_broken_logo_propagates(self, opaque_png, temp_dir):
        broken = temp_dir / "broken.png"
        broken.write_bytes(b"not an image")
        with pytest.raises(OSError):
            watermark_and_prefer_jpeg(opaque_png, "image/png", WatermarkOptions(logo_path=broken))


class TestMissingLogo:
    def test_missing_logo_raises(self, opaque_png, temp_dir):
        options = WatermarkOptions(logo_search_paths=(temp_dir / "nope.png",))
        with pytest.raises(LogoNotFoundError, match="WATERMARK_LOGO_PATH"):
            watermark_and_prefer_jpeg(opaque_png, "image/png", options)

    def test_error_hierarchy(self, temp_dir):
        error = LogoNotFoundError([temp_dir / "a.png"])
        assert isinstance(error, WatermarkError)
        assert isinstance(error, FileNotFoundError)
        assert str(temp_dir / "a.png") in str(error)


class TestResolveLogoPath:
    def test_override_wins(self, logo_path, temp_dir):
        other = temp_dir / "other.png"
        other.write_bytes(logo_path.read_bytes())
        assert resolve_logo_path(other, [logo_path]) == other

    def test_missing_override_is_an_error(self, logo_path, temp_dir):
        """A configured path that does not exist is not silently replaced."""
        with pytest.raises(LogoNotFoundError) as excinfo:
            resolve_logo_path(temp_dir / "gone.png", [logo_path])
        assert excinfo.value.searched == [temp_dir / "gone.png"]

    def test_first_existing_search_path(self, logo_path, temp_dir):
        second = temp_dir / "second.png"
        second.write_bytes(b"x")
        assert resolve_logo_path(None, [temp_dir / "absent.png", second, logo_path]) == second

    def test_relative_paths_use_working_directory(self, monkeypatch, temp_dir):
        monkeypatch.chdir(temp_dir)
        relative = Path("client/public/images/the-pet-pantry-logo.png")
        (temp_dir / relative).parent.mkdir(parents=True)
        (temp_dir / relative).write_bytes(b"x")
        assert resolve_logo_path(None, [relative]) == temp_dir / relative

    def test_string_override(self, logo_path):
        assert resolve_logo_path(str(logo_path)) == logo_path

    def test_nothing_found(self, temp_dir):
        with pytest.raises(LogoNotFoundError):
            resolve_logo_path(None, [temp_dir / "a.png", temp_dir / "b.png"])


class TestHelpers:
    @pytest.mark.parametrize(
        "content_type,expected",
        [
            ("image/png", "png"),
            ("IMAGE/PNG", "png"),
            ("image/webp", "webp"),
            ("image/gif", "gif"),
            ("image/jpeg", "jpg"),
            ("application/octet-stream", "jpg"),
            (None, "jpg"),
            ("", "jpg"),
        ],
    )
    def test_infer_extension(self, content_type, expected):
        assert infer_extension(content_type) == expected

    def test_target_logo_width(self):
        assert target_logo_width(1000, 0.22, 64) == 220
        assert target_logo_width(100, 0.22, 64) == 64

    def test_metadata_as_dict_includes_score(self):
        meta = WatermarkMetadata("top-left", 24, 24, 220, 55, True, score=0.5)
        assert meta.as_dict() == {
            "position": "top-left",
            "left": 24,
            "top": 24,
            "logo_width": 220,
            "logo_height": 55,
            "auto_placement": True,
            "score": 0.5,
        }
