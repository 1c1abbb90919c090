"""Derived artifacts for one oriented raster: pHash, thumbnails, embedding."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Union

from PIL import Image

from photo_ingest.config import ThumbnailConfig
from photo_ingest.errors import EmbeddingUnavailableError
from photo_ingest.hasher import compute_perceptual_hash
from photo_ingest.thumbnailing import generate_all_thumbnails
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "artifacts"})


class EmbeddingProvider(Protocol):
    def embed_images(self, items: Sequence[Union[Image.Image, bytes]]) -> list[list[float] | None]: ...


@dataclass
class DerivedArtifacts:
    phash: str | None = None
    thumbnails: dict[str, Path] = field(default_factory=dict)
    embedding: list[float] | None = None


class DerivedArtifactCoordinator:
    """Run hashing, thumbnailing and embedding over a single decoded raster.

    The raster is shared read-only by the hash and thumbnail steps; the
    embedding step runs last. Only decode errors upstream are fatal; every
    step here degrades to an absent value.
    """

    def __init__(
        self,
        thumbnails: ThumbnailConfig | None = None,
        embedder: EmbeddingProvider | None = None,
        expected_dim: int = 512,
    ) -> None:
        self._thumbnails = thumbnails or ThumbnailConfig()
        self._embedder = embedder
        self._expected_dim = expected_dim

    def generate(
        self,
        raster: Image.Image,
        relative_path: str,
        thumbnail_root: Path,
        preview_bytes: bytes | None = None,
    ) -> DerivedArtifacts:
        artifacts = DerivedArtifacts()

        try:
            artifacts.phash = compute_perceptual_hash(raster)
        except (OSError, ValueError) as exc:
            LOGGER.warning("phash_error", extra={"relative_path": relative_path, "error": str(exc)})

        artifacts.thumbnails = generate_all_thumbnails(raster, thumbnail_root, relative_path, self._thumbnails)
        artifacts.embedding = self._embed(raster, preview_bytes, relative_path)
        return artifacts

    def _embed(self, raster: Image.Image, preview_bytes: bytes | None, relative_path: str) -> list[float] | None:
        if self._embedder is None:
            return None

        vector = None
        if preview_bytes:
            vector = self._request(preview_bytes, relative_path, source="preview")
        if vector is None:
            vector = self._request(raster, relative_path, source="raster")
        return vector

    def _request(self, item: Union[Image.Image, bytes], relative_path: str, source: str) -> list[float] | None:
        try:
            vectors = self._embedder.embed_images([item])  # type: ignore[union-attr]
        except EmbeddingUnavailableError as exc:
            LOGGER.warning(
                "embedding_unavailable",
                extra={"relative_path": relative_path, "source": source, "tag": exc.tag, "error": str(exc)},
            )
            return None

        vector = vectors[0] if vectors else None
        if vector is None:
            return None
        if len(vector) != self._expected_dim:
            LOGGER.warning(
                "embedding_dimension_mismatch",
                extra={
                    "relative_path": relative_path,
                    "expected_dim": self._expected_dim,
                    "actual_dim": len(vector),
                },
            )
            return None
        return list(vector)


__all__ = ["EmbeddingProvider", "DerivedArtifacts", "DerivedArtifactCoordinator"]
