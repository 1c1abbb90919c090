"""Tests for the DCT perceptual hash."""

from __future__ import annotations

from pathlib import Path

from PIL import Image

from conftest import gradient_pixels
from photo_ingest.hasher import compute_perceptual_hash


def _differing_bits(a_hex: str, b_hex: str) -> int:
    return (int(a_hex, 16) ^ int(b_hex, 16)).bit_count()


def test_phash_is_sixteen_lowercase_hex_chars() -> None:
    value = compute_perceptual_hash(Image.fromarray(gradient_pixels(64, 64)))

    assert len(value) == 16
    assert value == value.lower()
    int(value, 16)


def test_phash_is_stable_across_lossless_round_trip(tmp_path: Path) -> None:
    raster = Image.fromarray(gradient_pixels(120, 90, seed=7))
    path = tmp_path / "round_trip.png"
    raster.save(path)

    with Image.open(path) as reloaded:
        reloaded_hash = compute_perceptual_hash(reloaded.convert("RGB"))

    assert reloaded_hash == compute_perceptual_hash(raster)


def test_similar_images_are_close_and_different_images_are_far() -> None:
    base = Image.fromarray(gradient_pixels(128, 96, seed=1))
    resized = base.resize((64, 48))
    inverted = Image.fromarray(255 - gradient_pixels(128, 96, seed=1))

    base_hash = compute_perceptual_hash(base)

    assert _differing_bits(base_hash, compute_perceptual_hash(resized)) <= 8
    assert _differing_bits(base_hash, compute_perceptual_hash(inverted)) > 16
