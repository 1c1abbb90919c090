"""Per-file result records produced by the ingestion pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class RawStatus(str, Enum):
    """Outcome of the RAW decode path."""

    CONVERTED = "converted"
    FAILED = "failed"


@dataclass
class CaptureMetadata:
    """Normalized subset of capture metadata (EXIF / maker notes)."""

    camera_make: str | None = None
    camera_model: str | None = None
    lens_make: str | None = None
    lens_model: str | None = None
    focal_length: int | None = None
    iso: int | None = None
    aperture: str | None = None
    shutter_speed: str | None = None
    exposure_bias: str | None = None
    date_taken: str | None = None
    gps_latitude: float | None = None
    gps_longitude: float | None = None
    gps_altitude: float | None = None
    orientation: int | None = None

    def is_empty(self) -> bool:
        return all(value is None for value in asdict(self).values())


@dataclass
class PhotoRecord:
    """Everything the pipeline learned about one input file.

    ``width``/``height`` are set together and only when a raster was decoded;
    ``raw_status`` is set only for files classified as RAW.
    """

    path: str
    name: str
    size: int = 0
    created_at: int = 0
    modified_at: int = 0
    width: int | None = None
    height: int | None = None
    mime_type: str | None = None
    phash: str | None = None
    embedding: list[float] | None = None
    exif: CaptureMetadata | None = None
    is_raw: bool = False
    raw_format: str | None = None
    raw_status: RawStatus | None = None
    raw_error: str | None = None
    histogram_matched: bool | None = None
    processing_time_ms: int = 0
    success: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable mapping of the record."""

        payload = asdict(self)
        payload["raw_status"] = self.raw_status.value if self.raw_status is not None else None
        return payload


__all__ = ["RawStatus", "CaptureMetadata", "PhotoRecord"]
