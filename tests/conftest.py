"""Shared fixtures and fakes for the photo ingestion tests.

Everything here runs without model downloads, RAW samples or an ExifTool
binary: images are generated with Pillow and the heavy collaborators are
replaced by small fakes.
"""

from __future__ import annotations

import os
import sys
import tempfile
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
from PIL import ExifTags, Image

os.environ.setdefault("PHOTO_INGEST_LOG_DIR", tempfile.mkdtemp(prefix="photo_ingest_test_logs_"))
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from photo_ingest.config import Settings  # noqa: E402
from photo_ingest.raw import EmbeddedPreview  # noqa: E402


def gradient_pixels(width: int, height: int, seed: int = 0) -> np.ndarray:
    """Deterministic RGB array with a spread of intensities in every channel."""

    rng = np.random.default_rng(seed)
    x = np.linspace(0, 255, width, dtype=np.float64)[None, :]
    y = np.linspace(0, 255, height, dtype=np.float64)[:, None]
    base = np.stack([(x + y) / 2.0, np.broadcast_to(x, (height, width)), np.broadcast_to(y, (height, width))], axis=-1)
    noise = rng.integers(-8, 9, size=base.shape)
    return np.clip(base + noise, 0, 255).astype(np.uint8)


def encode_jpeg(width: int, height: int, seed: int = 0) -> bytes:
    buffer = BytesIO()
    Image.fromarray(gradient_pixels(width, height, seed)).save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


def write_image(
    path: Path,
    size: tuple[int, int] = (64, 48),
    fmt: str | None = None,
    orientation: int | None = None,
    color: tuple[int, int, int] = (200, 80, 40),
) -> Path:
    """Write a solid-ish test image, optionally tagged with an EXIF orientation."""

    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, color=color)
    image.putpixel((0, 0), (255, 255, 255))
    kwargs = {}
    if orientation is not None:
        exif = Image.Exif()
        exif[ExifTags.Base.Orientation] = orientation
        kwargs["exif"] = exif
    image.save(path, format=fmt, **kwargs)
    return path


class FakeEmbedder:
    """Embedding provider returning a fixed-length unit vector per input."""

    def __init__(self, dim: int = 512) -> None:
        self.dim = dim
        self.calls: list[list[object]] = []

    def embed_images(self, items):
        self.calls.append(list(items))
        value = 1.0 / np.sqrt(self.dim)
        return [[float(value)] * self.dim for _ in items]


class FakeRawCodec:
    """RAW codec that serves canned previews and a canned demosaic result."""

    def __init__(
        self,
        pixels: np.ndarray | None = None,
        previews: list[EmbeddedPreview] | None = None,
        tool_previews: list[EmbeddedPreview] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.pixels = pixels if pixels is not None else gradient_pixels(120, 80, seed=3)
        self.previews = previews or []
        self.tool_previews = tool_previews or []
        self.error = error
        self.tool_calls: list[list[str]] = []
        self.demosaic_calls = 0

    def extract_embedded_previews(self, data: bytes) -> list[EmbeddedPreview]:
        return list(self.previews)

    def extract_tool_previews(self, path: Path, tags: list[str]) -> list[EmbeddedPreview]:
        self.tool_calls.append(list(tags))
        return list(self.tool_previews)

    def unpack_and_demosaic(self, data: bytes, use_camera_wb: bool = True) -> np.ndarray:
        self.demosaic_calls += 1
        if self.error is not None:
            raise self.error
        return self.pixels.copy()


class FakeMetadataExtractor:
    """Metadata extractor returning a fixed value (or raising) for every file."""

    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error

    def extract(self, path, category):
        if self.error is not None:
            raise self.error
        return self.result


def make_preview(width: int, height: int, seed: int = 1, source: str = "libraw") -> EmbeddedPreview:
    return EmbeddedPreview(width=width, height=height, data=encode_jpeg(width, height, seed), source=source)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
