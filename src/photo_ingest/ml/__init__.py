"""Embedding model helpers for photo ingestion."""

from .model_presets import CLIP_PRESETS, EMBEDDING_DIMS

__all__ = ["CLIP_PRESETS", "EMBEDDING_DIMS"]
