"""Per-photo ingestion state machine and the bounded batch scheduler."""

from __future__ import annotations

import os
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from functools import lru_cache
from pathlib import Path

from photo_ingest.aggregation import FileFacts, ResultAggregator
from photo_ingest.artifacts import DerivedArtifactCoordinator, EmbeddingProvider
from photo_ingest.config import MAX_WORKER_CAP, Settings, load_settings
from photo_ingest.decoding import decode_image
from photo_ingest.errors import EmbeddingUnavailableError, IngestError, MetadataExtractionError
from photo_ingest.exiftool_session import ExifToolSessions
from photo_ingest.formats import (
    FormatCategory,
    HighEfficiency,
    RawFormat,
    Standard,
    Unsupported,
    classify,
    looks_like_heif,
    supported_extensions,
)
from photo_ingest.metadata import MetadataExtractor
from photo_ingest.ml.embedding import EmbeddingService
from photo_ingest.orientation import apply_orientation
from photo_ingest.raw import RawCodec, RawCodecProtocol, RawToneMatcher
from photo_ingest.records import CaptureMetadata, PhotoRecord
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "pipeline"})


class Stage(str, Enum):
    """Per-item processing stages, in order."""

    INIT = "init"
    METADATA_READ = "metadata_read"
    FORMAT_DISPATCH = "format_dispatch"
    STANDARD_DECODE = "standard_decode"
    HIGH_EFFICIENCY_DECODE = "high_efficiency_decode"
    RAW_DECODE = "raw_decode"
    ORIENT = "orient"
    ARTIFACT_GENERATION = "artifact_generation"
    DONE = "done"


def resolve_worker_count(requested: int | None = None) -> int:
    """``min(cpu_count, requested, 4)``, never below one."""

    cpus = os.cpu_count() or 1
    limit = requested if requested and requested > 0 else MAX_WORKER_CAP
    return max(1, min(cpus, limit, MAX_WORKER_CAP))


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class IngestionPipeline:
    """Turn photo files into :class:`PhotoRecord` instances.

    Collaborators are injectable so callers can share one embedding service
    across batches and tests can swap in fakes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        embedder: EmbeddingProvider | None = None,
        raw_codec: RawCodecProtocol | None = None,
        metadata_extractor: MetadataExtractor | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        self._exiftool = ExifToolSessions(self._settings.metadata.exiftool_path)
        self._metadata = metadata_extractor or MetadataExtractor(self._settings.metadata, sessions=self._exiftool)
        codec = raw_codec or RawCodec(sessions=self._exiftool)
        self._raw = RawToneMatcher(codec, self._settings.raw)
        self._artifacts = DerivedArtifactCoordinator(
            self._settings.thumbnails,
            embedder,
            expected_dim=self._settings.embedding.resolved_expected_dim(),
        )
        self._aggregator = ResultAggregator()
        self._logger = LOGGER

    @property
    def settings(self) -> Settings:
        return self._settings

    def close(self) -> None:
        """Stop helper processes; the pipeline stays usable and restarts them on demand."""

        self._exiftool.close()

    def process_photo(self, file_path: str | Path, relative_path: str, thumbnail_root: str | Path) -> PhotoRecord:
        """Process one file; every failure is folded into the returned record."""

        started = time.perf_counter()
        path = Path(file_path)
        root = Path(thumbnail_root)
        facts = self._aggregator.file_facts(path)
        category = classify(path)
        if isinstance(category, Unsupported):
            self._logger.info("photo_unsupported", extra={"relative_path": relative_path})
            return self._aggregator.unsupported(path, relative_path, facts)

        stage = Stage.INIT
        exif: CaptureMetadata | None = None
        try:
            stage = Stage.METADATA_READ
            exif = self._read_metadata(path, category, relative_path)

            stage = Stage.FORMAT_DISPATCH
            category = self._refine_category(path, category)

            preview_bytes: bytes | None = None
            histogram_matched: bool | None = None
            if isinstance(category, RawFormat):
                stage = Stage.RAW_DECODE
                decoded = self._raw.decode(path, category.name)
                raster = decoded.raster
                preview_bytes = decoded.preview_bytes
                histogram_matched = decoded.histogram_matched
            elif isinstance(category, HighEfficiency):
                stage = Stage.HIGH_EFFICIENCY_DECODE
                raster = decode_image(path)
            else:
                stage = Stage.STANDARD_DECODE
                raster = decode_image(path)

            stage = Stage.ORIENT
            raster = apply_orientation(raster, exif.orientation if exif else None)
            width, height = raster.size

            stage = Stage.ARTIFACT_GENERATION
            artifacts = self._artifacts.generate(raster, relative_path, root, preview_bytes)
            del raster, preview_bytes
        except IngestError as exc:
            return self._failed(path, relative_path, facts, category, exif, stage, exc, started)
        except Exception as exc:  # item boundary: one bad file never aborts a batch
            self._logger.exception(
                "photo_processing_unexpected_error",
                extra={"relative_path": relative_path, "stage": stage.value, "error": str(exc)},
            )
            return self._failed(path, relative_path, facts, category, exif, stage, exc, started)

        record = self._aggregator.success(
            path,
            relative_path,
            facts,
            category,
            width,
            height,
            artifacts,
            exif=exif,
            histogram_matched=histogram_matched,
            processing_time_ms=_elapsed_ms(started),
        )
        self._logger.debug(
            "photo_processed",
            extra={
                "relative_path": relative_path,
                "stage": Stage.DONE.value,
                "width": width,
                "height": height,
                "thumbnails": len(artifacts.thumbnails),
                "has_embedding": artifacts.embedding is not None,
                "elapsed_ms": record.processing_time_ms,
            },
        )
        return record

    def process_photos_batch(
        self,
        file_paths: Sequence[str | Path],
        relative_paths: Sequence[str],
        thumbnail_root: str | Path,
    ) -> list[PhotoRecord]:
        """Process a batch on a bounded thread pool; output order matches input order."""

        if len(file_paths) != len(relative_paths):
            raise ValueError(
                f"file_paths and relative_paths differ in length: {len(file_paths)} != {len(relative_paths)}"
            )

        total = len(file_paths)
        if total == 0:
            return []

        workers = resolve_worker_count(self._settings.pipeline.max_workers)
        percent_step = max(1, self._settings.pipeline.progress_every_percent)
        progress_interval = max(1, total * percent_step // 100)
        started = time.perf_counter()
        self._logger.info("batch_start", extra={"total": total, "workers": workers})

        results: list[PhotoRecord | None] = [None] * total
        processed = 0
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as executor:
            futures = {
                executor.submit(self.process_photo, file_path, relative_path, thumbnail_root): index
                for index, (file_path, relative_path) in enumerate(zip(file_paths, relative_paths))
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    results[index] = future.result()
                except Exception as exc:  # process_photo already isolates failures
                    self._logger.exception("batch_item_crashed", extra={"index": index, "error": str(exc)})
                    path = Path(file_paths[index])
                    results[index] = self._aggregator.failure(
                        path, relative_paths[index], self._aggregator.file_facts(path), classify(path), str(exc)
                    )

                processed += 1
                if processed % progress_interval == 0 or processed == total:
                    percent = round(processed * 100.0 / total, 1)
                    self._logger.info(
                        "batch_progress %s/%s (%.1f%%)",
                        processed,
                        total,
                        percent,
                        extra={"processed": processed, "total": total, "percent": percent},
                    )

        # Worker threads are gone; their ExifTool processes go with them.
        self.close()

        records = [record for record in results if record is not None]
        failed = sum(1 for record in records if not record.success)
        self._logger.info(
            "batch_complete",
            extra={"total": total, "failed": failed, "elapsed_ms": _elapsed_ms(started)},
        )
        return records

    def _read_metadata(self, path: Path, category: FormatCategory, relative_path: str) -> CaptureMetadata | None:
        try:
            return self._metadata.extract(path, category)
        except MetadataExtractionError as exc:
            self._logger.warning(
                "metadata_extraction_failed",
                extra={"relative_path": relative_path, "tag": exc.tag, "error": str(exc)},
            )
            return None

    def _refine_category(self, path: Path, category: FormatCategory) -> FormatCategory:
        """Route HEIC payloads saved under a standard extension to the HEIF decoder."""

        if isinstance(category, Standard) and self._settings.pipeline.sniff_heif_magic and looks_like_heif(path):
            self._logger.info("heif_magic_detected", extra={"path": str(path)})
            return HighEfficiency()
        return category

    def _failed(
        self,
        path: Path,
        relative_path: str,
        facts: FileFacts,
        category: FormatCategory,
        exif: CaptureMetadata | None,
        stage: Stage,
        exc: Exception,
        started: float,
    ) -> PhotoRecord:
        tag = getattr(exc, "tag", type(exc).__name__)
        self._logger.error(
            "photo_processing_failed",
            extra={"relative_path": relative_path, "stage": stage.value, "tag": tag, "error": str(exc)},
        )
        return self._aggregator.failure(
            path,
            relative_path,
            facts,
            category,
            str(exc) or tag,
            exif=exif,
            processing_time_ms=_elapsed_ms(started),
        )


def build_pipeline(settings: Settings | None = None, enable_embeddings: bool | None = None) -> IngestionPipeline:
    """Construct a pipeline, loading the embedding model up front when enabled.

    A model that cannot be loaded is logged and the pipeline runs without
    embeddings.
    """

    resolved = settings or load_settings()
    use_embeddings = resolved.embedding.enabled if enable_embeddings is None else enable_embeddings

    embedder: EmbeddingService | None = None
    if use_embeddings:
        try:
            embedder = EmbeddingService(resolved.embedding)
        except EmbeddingUnavailableError as exc:
            LOGGER.warning("embedding_service_unavailable", extra={"tag": exc.tag, "error": str(exc)})

    return IngestionPipeline(resolved, embedder=embedder)


@lru_cache(maxsize=1)
def _default_pipeline() -> IngestionPipeline:
    return build_pipeline()


def process_photos_batch(
    file_paths: Sequence[str | Path],
    relative_paths: Sequence[str],
    thumbnail_root: str | Path,
    pipeline: IngestionPipeline | None = None,
) -> list[PhotoRecord]:
    """Batch entrypoint; falls back to a process-wide pipeline built once from settings."""

    if len(file_paths) != len(relative_paths):
        raise ValueError(
            f"file_paths and relative_paths differ in length: {len(file_paths)} != {len(relative_paths)}"
        )
    active = pipeline or _default_pipeline()
    return active.process_photos_batch(file_paths, relative_paths, thumbnail_root)


def process_photo(
    file_path: str | Path,
    relative_path: str,
    thumbnail_root: str | Path,
    pipeline: IngestionPipeline | None = None,
) -> PhotoRecord:
    """Single-item entrypoint; runs inline without a thread pool."""

    active = pipeline or _default_pipeline()
    return active.process_photo(file_path, relative_path, thumbnail_root)


def get_supported_extensions() -> frozenset[str]:
    return supported_extensions()


__all__ = [
    "Stage",
    "IngestionPipeline",
    "resolve_worker_count",
    "build_pipeline",
    "process_photos_batch",
    "process_photo",
    "get_supported_extensions",
]
