"""Canonical model identifiers and presets used by the embedding stack.

These constants centralize the Hugging Face model names and provide
named presets so that configuration files do not need to repeat raw
checkpoint identifiers everywhere.
"""

from __future__ import annotations

CLIP_VIT_BASE_PATCH32 = "openai/clip-vit-base-patch32"
CLIP_VIT_BASE_PATCH16 = "openai/clip-vit-base-patch16"
CLIP_VIT_LARGE_PATCH14 = "openai/clip-vit-large-patch14"

CLIP_PRESETS: dict[str, str] = {
    # Default embedding model; 512-dimensional image features.
    "clip_b32": CLIP_VIT_BASE_PATCH32,
    # Same dimensionality, finer patches, roughly 4x the compute.
    "clip_b16": CLIP_VIT_BASE_PATCH16,
    # 768-dimensional features.
    "clip_l14": CLIP_VIT_LARGE_PATCH14,
}

DEFAULT_EMBEDDING_DIM = 512

# Image-feature width per checkpoint; used when ``expected_dim`` is not configured.
EMBEDDING_DIMS: dict[str, int] = {
    CLIP_VIT_BASE_PATCH32: 512,
    CLIP_VIT_BASE_PATCH16: 512,
    CLIP_VIT_LARGE_PATCH14: 768,
}

__all__ = [
    "CLIP_VIT_BASE_PATCH32",
    "CLIP_VIT_BASE_PATCH16",
    "CLIP_VIT_LARGE_PATCH14",
    "CLIP_PRESETS",
    "DEFAULT_EMBEDDING_DIM",
    "EMBEDDING_DIMS",
]
