"""Tests for histogram matching: histograms, CDFs, tone curves and LUT application."""

from __future__ import annotations

import numpy as np

from conftest import gradient_pixels
from photo_ingest.tone_curve import (
    apply_tone_curves_inplace,
    build_tone_curve,
    compute_histograms,
    compute_tone_curves,
    histogram_to_cdf,
    sample_stride,
)


def test_identical_rasters_yield_identity_curves() -> None:
    pixels = gradient_pixels(97, 61, seed=11)

    curves = compute_tone_curves(pixels, pixels.copy())

    for curve in curves:
        assert curve.dtype == np.uint8
        assert np.array_equal(curve, np.arange(256, dtype=np.uint8))


def test_identity_holds_for_sparse_histograms() -> None:
    # Only three distinct levels; most buckets are empty and the CDF is flat.
    pixels = np.zeros((10, 10, 3), dtype=np.uint8)
    pixels[:3] = 40
    pixels[3:6] = 128
    pixels[6:] = 250

    curves = compute_tone_curves(pixels, pixels.copy())

    for curve in curves:
        assert np.array_equal(curve, np.arange(256, dtype=np.uint8))


def test_ties_favour_the_higher_index() -> None:
    target = np.ones(256, dtype=np.float64)
    target[0] = 0.25
    target[1] = 0.75
    source = np.ones(256, dtype=np.float64)
    source[0] = 0.5  # equidistant from target[0] and target[1]
    source[1] = 0.3  # strictly closer to target[0]

    curve = build_tone_curve(source, target)

    assert curve[0] == 1
    assert curve[1] == 0


def test_lower_bound_is_clamped_to_last_level() -> None:
    target = np.linspace(0.0, 0.9, 256)
    source = np.full(256, 1.0)

    curve = build_tone_curve(source, target)

    assert curve.max() == 255
    assert curve[-1] == 255


def test_empty_histogram_gives_zero_cdf() -> None:
    cdf = histogram_to_cdf(np.zeros(256, dtype=np.int64))

    assert cdf.dtype == np.float64
    assert not cdf.any()


def test_cdf_is_monotonic_and_normalised() -> None:
    histograms = compute_histograms(gradient_pixels(50, 40))
    cdf = histogram_to_cdf(histograms[0])

    assert np.all(np.diff(cdf) >= 0)
    assert cdf[-1] == 1.0


def test_histograms_use_fixed_stride_sampling() -> None:
    assert sample_stride(100, 500_000) == 1
    assert sample_stride(2_000_000, 500_000) == 4

    pixels = np.zeros((100, 100, 3), dtype=np.uint8)
    histograms = compute_histograms(pixels, sample_limit=1000)

    assert histograms.shape == (3, 256)
    assert histograms.dtype == np.int64
    # 10_000 pixels with stride 10 leaves 1_000 samples per channel.
    assert histograms[0, 0] == 1000


def test_alpha_channel_is_ignored() -> None:
    pixels = np.zeros((4, 4, 4), dtype=np.uint8)
    pixels[..., 3] = 255

    histograms = compute_histograms(pixels)

    assert histograms.shape == (3, 256)
    assert histograms[:, 0].tolist() == [16, 16, 16]


def test_curves_are_applied_in_place() -> None:
    pixels = gradient_pixels(30, 20)
    original = pixels.copy()
    inverted = (255 - np.arange(256)).astype(np.uint8)
    buffer_address = pixels.__array_interface__["data"][0]

    apply_tone_curves_inplace(pixels, [inverted, inverted, inverted])

    assert pixels.__array_interface__["data"][0] == buffer_address
    assert np.array_equal(pixels, 255 - original)


def test_matching_moves_source_towards_reference() -> None:
    reference = gradient_pixels(80, 60, seed=5)
    source = (reference // 2).astype(np.uint8)

    curves = compute_tone_curves(source, reference)
    apply_tone_curves_inplace(source, curves)

    assert abs(float(source.mean()) - float(reference.mean())) < 5.0
