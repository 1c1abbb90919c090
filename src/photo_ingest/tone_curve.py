"""Histogram matching between a demosaiced RAW raster and its camera preview.

The camera's embedded JPEG carries the manufacturer's tone and white-balance
rendering; a generic demosaic does not. Per-channel CDF matching transfers
the preview's tonal distribution onto the full-resolution raster.
"""

from __future__ import annotations

from typing import Final

import numpy as np

LEVELS: Final[int] = 256
CHANNELS: Final[int] = 3


def sample_stride(total_pixels: int, sample_limit: int) -> int:
    """Fixed stride that keeps at most roughly ``sample_limit`` samples."""

    return max(1, total_pixels // max(1, sample_limit))


def compute_histograms(pixels: np.ndarray, sample_limit: int = 500_000) -> np.ndarray:
    """Return a ``(3, 256)`` int64 histogram of the RGB channels of ``pixels``.

    ``pixels`` is an ``(H, W, C)`` uint8 array with ``C >= 3``; any alpha
    channel is ignored. Pixels are subsampled with a fixed stride.
    """

    flat = pixels.reshape(-1, pixels.shape[-1])
    stride = sample_stride(flat.shape[0], sample_limit)
    sampled = flat[::stride]

    histograms = np.zeros((CHANNELS, LEVELS), dtype=np.int64)
    for channel in range(CHANNELS):
        histograms[channel] = np.bincount(sampled[:, channel], minlength=LEVELS)[:LEVELS]
    return histograms


def histogram_to_cdf(histogram: np.ndarray) -> np.ndarray:
    """Normalised cumulative distribution; an empty histogram yields zeros."""

    cumulative = np.cumsum(histogram, dtype=np.float64)
    total = cumulative[-1]
    if total <= 0:
        return np.zeros(LEVELS, dtype=np.float64)
    return cumulative / total


def build_tone_curve(source_cdf: np.ndarray, target_cdf: np.ndarray) -> np.ndarray:
    """Build a 256-entry LUT mapping source levels onto target levels.

    For each level the lower bound of ``source_cdf[i]`` in ``target_cdf`` is
    found by binary search (clamped to 255). The level just below is taken
    only when it is strictly closer, so ties go to the higher index. A level
    whose target CDF equals the source CDF exactly maps to itself.
    """

    source = np.asarray(source_cdf, dtype=np.float64)
    target = np.asarray(target_cdf, dtype=np.float64)

    lower = np.minimum(np.searchsorted(target, source, side="left"), LEVELS - 1)
    below = np.maximum(lower - 1, 0)
    prefer_below = (lower > 0) & (np.abs(source - target[below]) < np.abs(source - target[lower]))
    curve = np.where(prefer_below, below, lower)

    levels = np.arange(LEVELS)
    curve = np.where(target == source, levels, curve)
    return curve.astype(np.uint8)


def compute_tone_curves(source: np.ndarray, reference: np.ndarray, sample_limit: int = 500_000) -> list[np.ndarray]:
    """Per-channel curves that move ``source`` towards ``reference``."""

    source_hist = compute_histograms(source, sample_limit)
    reference_hist = compute_histograms(reference, sample_limit)
    return [
        build_tone_curve(histogram_to_cdf(source_hist[channel]), histogram_to_cdf(reference_hist[channel]))
        for channel in range(CHANNELS)
    ]


def apply_tone_curves_inplace(pixels: np.ndarray, curves: list[np.ndarray]) -> None:
    """Remap each RGB channel of ``pixels`` through its LUT without reallocating."""

    for channel, curve in enumerate(curves[:CHANNELS]):
        plane = pixels[..., channel]
        np.take(curve, plane, out=plane, mode="clip")


__all__ = [
    "LEVELS",
    "sample_stride",
    "compute_histograms",
    "histogram_to_cdf",
    "build_tone_curve",
    "compute_tone_curves",
    "apply_tone_curves_inplace",
]
