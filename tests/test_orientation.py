"""Tests for EXIF orientation handling."""

from __future__ import annotations

import pytest
from PIL import Image

from conftest import gradient_pixels
from photo_ingest.orientation import apply_orientation


def _raster(width: int = 40, height: int = 20) -> Image.Image:
    return Image.fromarray(gradient_pixels(width, height, seed=2))


@pytest.mark.parametrize("code", [1, None, 0, 9, 42])
def test_identity_codes_return_the_same_raster(code: int | None) -> None:
    raster = _raster()

    assert apply_orientation(raster, code) is raster


def test_code_six_then_eight_restores_original() -> None:
    raster = _raster(40, 20)

    rotated = apply_orientation(raster, 6)
    restored = apply_orientation(rotated, 8)

    assert rotated.size == (20, 40)
    assert restored.size == (40, 20)
    assert restored.tobytes() == raster.tobytes()


def test_code_six_turns_clockwise() -> None:
    raster = Image.new("RGB", (3, 2), (0, 0, 0))
    raster.putpixel((0, 0), (255, 0, 0))

    rotated = apply_orientation(raster, 6)

    # A clockwise quarter turn moves the top-left pixel to the top-right.
    assert rotated.getpixel((1, 0)) == (255, 0, 0)


@pytest.mark.parametrize("code", [5, 6, 7, 8])
def test_transposing_codes_swap_dimensions(code: int) -> None:
    assert apply_orientation(_raster(40, 20), code).size == (20, 40)


@pytest.mark.parametrize("code", [2, 3, 4])
def test_non_transposing_codes_are_involutions(code: int) -> None:
    raster = _raster(40, 20)

    twice = apply_orientation(apply_orientation(raster, code), code)

    assert twice.size == (40, 20)
    assert twice.tobytes() == raster.tobytes()


def test_horizontal_flip_mirrors_columns() -> None:
    raster = Image.new("RGB", (3, 1), (0, 0, 0))
    raster.putpixel((0, 0), (0, 255, 0))

    flipped = apply_orientation(raster, 2)

    assert flipped.getpixel((2, 0)) == (0, 255, 0)
