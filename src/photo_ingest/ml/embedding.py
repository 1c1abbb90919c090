"""Shared image-embedding service.

One :class:`EmbeddingService` is built at startup and handed to every
worker. The model is loaded in the constructor; inference calls are
serialised through a lock while decode, hashing and thumbnailing keep
running in parallel on the other workers.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Union

import torch
from PIL import Image
from torch import Tensor

from photo_ingest.config import EmbeddingModelConfig
from photo_ingest.decoding import decode_bytes
from photo_ingest.errors import DecodeError, EmbeddingUnavailableError
from photo_ingest.ml.models import load_embedding_model
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "embedding"})

EmbeddingInput = Union[Image.Image, bytes]


def _as_rgb_image(item: EmbeddingInput) -> Image.Image:
    image = decode_bytes(item) if isinstance(item, (bytes, bytearray)) else item
    if image.mode != "RGB":
        image = image.convert("RGB")
    return image


class EmbeddingService:
    """CLIP image embeddings, L2-normalised, batched and lock-serialised."""

    def __init__(self, config: EmbeddingModelConfig | None = None) -> None:
        self._config = config or EmbeddingModelConfig()
        self._lock = threading.Lock()
        try:
            self._processor, self._model, self._device = load_embedding_model(self._config)
        except (OSError, ValueError, RuntimeError, ImportError) as exc:
            raise EmbeddingUnavailableError(f"Failed to load embedding model: {exc}") from exc

    @property
    def expected_dim(self) -> int:
        return self._config.resolved_expected_dim()

    @property
    def model_name(self) -> str:
        return self._config.resolved_model_name()

    def embed(self, item: EmbeddingInput) -> list[float] | None:
        return self.embed_images([item])[0]

    def embed_images(self, items: Sequence[EmbeddingInput]) -> list[list[float] | None]:
        """Embed images or encoded image bytes; output is aligned with ``items``.

        Entries that cannot be decoded, fail inference or come back with the
        wrong dimension are ``None``.
        """

        results: list[list[float] | None] = [None] * len(items)
        prepared: list[tuple[int, Image.Image]] = []
        for index, item in enumerate(items):
            try:
                prepared.append((index, _as_rgb_image(item)))
            except DecodeError as exc:
                LOGGER.warning("embedding_input_decode_error", extra={"index": index, "error": str(exc)})

        batch_size = max(1, self._config.batch_size)
        for start in range(0, len(prepared), batch_size):
            chunk = prepared[start : start + batch_size]
            vectors = self._infer([image for _, image in chunk])
            if vectors is None:
                continue
            for (index, _), vector in zip(chunk, vectors, strict=True):
                if len(vector) != self.expected_dim:
                    LOGGER.warning(
                        "embedding_dimension_mismatch",
                        extra={"index": index, "expected_dim": self.expected_dim, "actual_dim": len(vector)},
                    )
                    continue
                results[index] = vector
        return results

    def _infer(self, images: list[Image.Image]) -> list[list[float]] | None:
        with self._lock:
            try:
                inputs = self._processor(images=images, return_tensors="pt").to(self._device)
                with torch.no_grad():
                    features = self._model.get_image_features(**inputs)
            except (RuntimeError, ValueError, TypeError) as exc:
                LOGGER.error(
                    "embedding_inference_error",
                    extra={"batch_size": len(images), "model_name": self.model_name, "error": str(exc)},
                )
                return None

        if not isinstance(features, Tensor):
            # Newer transformers releases wrap the projected features in a model output.
            features = features.pooler_output
        features = features / features.norm(dim=-1, keepdim=True).clamp_min(1e-12)
        return features.detach().cpu().float().tolist()


__all__ = ["EmbeddingInput", "EmbeddingService"]
