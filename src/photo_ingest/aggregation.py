"""Assemble per-item outcomes into :class:`PhotoRecord` instances."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from photo_ingest.artifacts import DerivedArtifacts
from photo_ingest.errors import UnsupportedFileTypeError
from photo_ingest.formats import FormatCategory, RawFormat, Unsupported, mime_type_for
from photo_ingest.records import CaptureMetadata, PhotoRecord, RawStatus
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "aggregation"})


@dataclass
class FileFacts:
    """Filesystem facts gathered before any decoding."""

    name: str
    size: int = 0
    created_at: int = 0
    modified_at: int = 0


def _created_ns(stat_result: os.stat_result) -> int:
    birthtime = getattr(stat_result, "st_birthtime", None)
    if birthtime is not None:
        return int(birthtime * 1_000_000_000)
    return stat_result.st_ctime_ns


class ResultAggregator:
    """Build records that respect the success/error and RAW-status invariants."""

    def file_facts(self, path: Path) -> FileFacts:
        """Stat ``path``; size and timestamps stay zero when that fails."""

        facts = FileFacts(name=path.name)
        try:
            stat_result = path.stat()
        except OSError as exc:
            LOGGER.debug("file_stat_error", extra={"path": str(path), "error": str(exc)})
            return facts

        facts.size = stat_result.st_size
        facts.created_at = _created_ns(stat_result) // 1_000_000
        facts.modified_at = stat_result.st_mtime_ns // 1_000_000
        return facts

    def _base(
        self,
        path: Path,
        relative_path: str,
        facts: FileFacts,
        category: FormatCategory,
        exif: CaptureMetadata | None,
    ) -> PhotoRecord:
        is_raw = isinstance(category, RawFormat)
        return PhotoRecord(
            path=relative_path,
            name=facts.name,
            size=facts.size,
            created_at=facts.created_at,
            modified_at=facts.modified_at,
            mime_type=mime_type_for(path, category),
            exif=exif,
            is_raw=is_raw,
            raw_format=category.name if is_raw else None,
        )

    def success(
        self,
        path: Path,
        relative_path: str,
        facts: FileFacts,
        category: FormatCategory,
        width: int,
        height: int,
        artifacts: DerivedArtifacts,
        exif: CaptureMetadata | None = None,
        histogram_matched: bool | None = None,
        processing_time_ms: int = 0,
    ) -> PhotoRecord:
        record = self._base(path, relative_path, facts, category, exif)
        record.width = width
        record.height = height
        record.phash = artifacts.phash
        record.embedding = artifacts.embedding
        record.processing_time_ms = processing_time_ms
        record.success = True
        if record.is_raw:
            record.raw_status = RawStatus.CONVERTED
            record.histogram_matched = bool(histogram_matched)
        return record

    def failure(
        self,
        path: Path,
        relative_path: str,
        facts: FileFacts,
        category: FormatCategory,
        error: str,
        exif: CaptureMetadata | None = None,
        processing_time_ms: int = 0,
    ) -> PhotoRecord:
        record = self._base(path, relative_path, facts, category, exif)
        record.success = False
        record.error = error or "Unknown error"
        record.processing_time_ms = processing_time_ms
        if record.is_raw:
            record.raw_status = RawStatus.FAILED
            record.raw_error = record.error
        return record

    def unsupported(self, path: Path, relative_path: str, facts: FileFacts) -> PhotoRecord:
        return self.failure(path, relative_path, facts, Unsupported(), str(UnsupportedFileTypeError()))


__all__ = ["FileFacts", "ResultAggregator"]
