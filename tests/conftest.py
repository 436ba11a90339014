"""Shared pytest fixtures for Pawcard tests."""

import io
import random
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from PIL import Image

from pawcard.core.config import PawcardConfig
from pawcard.core.imaging import PillowImageCapability, load_image_capability
from pawcard.core.watermark import WatermarkOptions


def encode_png(image: Image.Image) -> bytes:
    """Encode a Pillow image as PNG bytes."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def noisy_quadrant_png(size: int = 400, seed: int = 1234) -> bytes:
    """Flat grey square with random noise in the top-left quadrant.

    Args:
        size: Side length of the square image.
        seed: Seed for the noise so the image is reproducible.

    Returns:
        PNG bytes.
    """
    half = size // 2
    rng = random.Random(seed)
    noise = Image.frombytes("L", (half, half), bytes(rng.getrandbits(8) for _ in range(half * half)))
    base = Image.new("RGB", (size, size), color=(128, 128, 128))
    base.paste(noise.convert("RGB"), (0, 0))
    return encode_png(base)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def logo_path(temp_dir: Path) -> Path:
    """Write a 400x100 semi-transparent white logo PNG.

    Returns:
        Path to the logo file
    """
    logo = Image.new("RGBA", (400, 100), color=(255, 255, 255, 200))
    path = temp_dir / "logo.png"
    path.write_bytes(encode_png(logo))
    return path


@pytest.fixture
def test_config(temp_dir: Path, logo_path: Path) -> PawcardConfig:
    """Create a test configuration with temporary directories.

    Args:
        temp_dir: Temporary directory from fixture
        logo_path: Logo PNG from fixture

    Returns:
        PawcardConfig instance for testing
    """
    return PawcardConfig(
        _env_file=None,
        data_dir=temp_dir / "data",
        watermark_logo_path=logo_path,
        watermark_logo_search_paths=[],
        admin_token="s3cret",
        replicate_api_token=None,
        r2_account_id=None,
    )


@pytest.fixture
def watermark_options(logo_path: Path) -> WatermarkOptions:
    """Default watermark options pointing at the fixture logo."""
    return WatermarkOptions(logo_path=logo_path)


@pytest.fixture
def capability() -> PillowImageCapability:
    """The real Pillow image capability."""
    cap = load_image_capability()
    assert cap is not None
    return cap


@pytest.fixture
def opaque_png() -> bytes:
    """A 1000x1000 opaque PNG with a soft gradient."""
    image = Image.linear_gradient("L").resize((1000, 1000)).convert("RGB")
    return encode_png(image)


@pytest.fixture
def corrupt_png() -> bytes:
    """PNG signature followed by garbage, so no decoder can read it."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\x0d" + b"\xff\xfe\xfd\xfc" + b"\x00" * 40


@pytest.fixture
def make_noisy_png():
    """Factory for :func:`noisy_quadrant_png` images."""
    return noisy_quadrant_png


@pytest.fixture
def truncated_png() -> bytes:
    """A valid PNG header whose pixel data is cut off halfway."""
    data = noisy_quadrant_png(600)
    return data[: len(data) // 2]
