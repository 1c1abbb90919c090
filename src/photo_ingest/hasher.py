"""Perceptual hashing of decoded rasters."""

from __future__ import annotations

from typing import Final

import numpy as np
from PIL import Image
from PIL.Image import Resampling

_PHASH_SIZE: Final[int] = 32
_PHASH_REDUCED_SIZE: Final[int] = 8
_DCT_MATRICES: dict[int, np.ndarray] = {}


def _get_dct_matrix(size: int) -> np.ndarray:
    """Return a cached orthonormal DCT-II matrix of the given size."""

    cached = _DCT_MATRICES.get(size)
    if cached is not None:
        return cached

    n = np.arange(size, dtype=np.float64)
    k = n[:, None]
    mat = np.cos((2.0 * n + 1.0) * k * (np.pi / size))
    mat[0, :] *= np.sqrt(1.0 / size)
    mat[1:, :] *= np.sqrt(2.0 / size)

    _DCT_MATRICES[size] = mat
    return mat


def compute_perceptual_hash(image: Image.Image) -> str:
    """Compute a 64-bit DCT perceptual hash as 16 lowercase hex characters.

    The raster is reduced to 32x32 grayscale, transformed with a 2D DCT, and
    the top-left 8x8 low-frequency block is thresholded at its median. The
    result depends only on pixel content, so the same raster always hashes
    the same way however it was decoded.
    """

    gray = image.convert("L").resize((_PHASH_SIZE, _PHASH_SIZE), resample=Resampling.LANCZOS)
    pixels = np.asarray(gray, dtype=np.float64)

    dct_mat = _get_dct_matrix(_PHASH_SIZE)
    dct = dct_mat @ pixels @ dct_mat.T

    low_freq = dct[:_PHASH_REDUCED_SIZE, :_PHASH_REDUCED_SIZE]
    median = np.median(low_freq)

    value = 0
    for bit in (low_freq > median).flatten():
        value = (value << 1) | int(bit)
    return f"{value:016x}"


__all__ = ["compute_perceptual_hash"]
