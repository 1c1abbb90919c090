"""Capture metadata extraction.

Standard and HEIF files are read through Pillow's EXIF support; RAW
containers go through ExifTool, which understands the maker-specific
layouts Pillow cannot parse. Both paths normalise into
:class:`~photo_ingest.records.CaptureMetadata`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from exiftool.exceptions import ExifToolException, ExifToolExecuteError
from PIL import ExifTags, Image

from photo_ingest.config import MetadataConfig
from photo_ingest.decoding import open_image
from photo_ingest.errors import IngestError, MetadataExtractionError
from photo_ingest.exiftool_session import ExifToolSessions
from photo_ingest.formats import FormatCategory, HighEfficiency, RawFormat, Standard
from photo_ingest.records import CaptureMetadata
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "metadata"})

_EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

# ExifTool keys (``-G -n`` output) per normalised field, most specific first.
_EXIFTOOL_KEYS: dict[str, tuple[str, ...]] = {
    "make": ("EXIF:Make",),
    "model": ("EXIF:Model",),
    "lens_make": ("EXIF:LensMake",),
    "lens_model": ("EXIF:LensModel", "Composite:LensID", "MakerNotes:LensModel", "MakerNotes:Lens"),
    "focal_length": ("EXIF:FocalLength", "MakerNotes:FocalLength"),
    "iso": ("EXIF:ISO", "MakerNotes:ISO", "Composite:ISO"),
    "f_number": ("EXIF:FNumber", "Composite:Aperture"),
    "exposure_time": ("EXIF:ExposureTime", "Composite:ShutterSpeed"),
    "exposure_bias": ("EXIF:ExposureCompensation",),
    "date_taken": ("EXIF:DateTimeOriginal", "EXIF:CreateDate"),
    "latitude": ("Composite:GPSLatitude",),
    "longitude": ("Composite:GPSLongitude",),
    "altitude": ("Composite:GPSAltitude", "EXIF:GPSAltitude"),
    "orientation": ("EXIF:Orientation",),
}


def _as_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def _as_text(value: object) -> str | None:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if not isinstance(value, str):
        return None
    cleaned = value.strip("\x00 ").strip()
    return cleaned or None


def format_aperture(f_number: float | None) -> str | None:
    if f_number is None or f_number <= 0:
        return None
    return f"f/{f_number:.1f}"


def format_shutter_speed(exposure_time: float | None) -> str | None:
    """Render an exposure time as ``1/250`` below one second, ``1.5s`` otherwise."""

    if exposure_time is None or exposure_time <= 0:
        return None
    if exposure_time >= 1.0:
        return f"{exposure_time:.1f}s"
    return f"1/{round(1.0 / exposure_time)}"


def format_exposure_bias(bias: float | None) -> str | None:
    if bias is None:
        return None
    if bias > 0:
        return f"+{bias:.1f} EV"
    if bias < 0:
        return f"{bias:.1f} EV"
    return "0 EV"


def format_datetime(raw_dt: object, datetime_format: str) -> str | None:
    text = _as_text(raw_dt)
    if text is None or datetime_format != "iso":
        return text
    try:
        return datetime.strptime(text[:19], _EXIF_DATETIME_FORMAT).isoformat(timespec="seconds")
    except ValueError:
        return text


def dms_to_degrees(value: object, ref: object) -> float | None:
    """Convert an EXIF ``(degrees, minutes, seconds)`` triple to signed decimal degrees."""

    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)) or len(value) < 3:
        return None
    parts = [_as_float(item) for item in value[:3]]
    if any(part is None for part in parts):
        return None
    degrees, minutes, seconds = parts
    decimal = degrees + (minutes / 60.0) + (seconds / 3600.0)  # type: ignore[operator]
    ref_text = _as_text(ref)
    if ref_text is not None and ref_text.upper() in {"S", "W"}:
        decimal = -decimal
    return decimal


def build_capture_metadata(values: Mapping[str, Any], datetime_format: str = "iso") -> CaptureMetadata | None:
    """Normalise extractor-neutral values into :class:`CaptureMetadata`.

    Returns ``None`` when nothing usable was found.
    """

    focal_length = _as_float(values.get("focal_length"))
    iso = _as_float(values.get("iso"))
    orientation = _as_float(values.get("orientation"))

    metadata = CaptureMetadata(
        camera_make=_as_text(values.get("make")),
        camera_model=_as_text(values.get("model")),
        lens_make=_as_text(values.get("lens_make")),
        lens_model=_as_text(values.get("lens_model")),
        focal_length=int(focal_length) if focal_length is not None else None,
        iso=int(iso) if iso is not None else None,
        aperture=format_aperture(_as_float(values.get("f_number"))),
        shutter_speed=format_shutter_speed(_as_float(values.get("exposure_time"))),
        exposure_bias=format_exposure_bias(_as_float(values.get("exposure_bias"))),
        date_taken=format_datetime(values.get("date_taken"), datetime_format),
        gps_latitude=_as_float(values.get("latitude")),
        gps_longitude=_as_float(values.get("longitude")),
        gps_altitude=_as_float(values.get("altitude")),
        orientation=int(orientation) if orientation is not None and 1 <= orientation <= 8 else None,
    )
    if metadata.is_empty():
        return None
    return metadata


def read_pillow_values(image: Image.Image) -> dict[str, Any]:
    """Collect the normalised fields from a Pillow image's EXIF block."""

    exif = image.getexif()
    if not exif:
        return {}

    exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
    gps_ifd = exif.get_ifd(ExifTags.IFD.GPSInfo)

    def _pick(tag: int) -> object:
        value = exif_ifd.get(tag)
        if value is None:
            value = exif.get(tag)
        if isinstance(value, tuple) and len(value) == 1:
            value = value[0]
        return value

    values: dict[str, Any] = {
        "make": exif.get(ExifTags.Base.Make),
        "model": exif.get(ExifTags.Base.Model),
        "lens_make": _pick(ExifTags.Base.LensMake),
        "lens_model": _pick(ExifTags.Base.LensModel),
        "focal_length": _pick(ExifTags.Base.FocalLength),
        "iso": _pick(ExifTags.Base.ISOSpeedRatings),
        "f_number": _pick(ExifTags.Base.FNumber),
        "exposure_time": _pick(ExifTags.Base.ExposureTime),
        "exposure_bias": _pick(ExifTags.Base.ExposureBiasValue),
        "date_taken": _pick(ExifTags.Base.DateTimeOriginal) or exif.get(ExifTags.Base.DateTime),
        "orientation": exif.get(ExifTags.Base.Orientation),
    }

    if gps_ifd:
        values["latitude"] = dms_to_degrees(
            gps_ifd.get(ExifTags.GPS.GPSLatitude), gps_ifd.get(ExifTags.GPS.GPSLatitudeRef)
        )
        values["longitude"] = dms_to_degrees(
            gps_ifd.get(ExifTags.GPS.GPSLongitude), gps_ifd.get(ExifTags.GPS.GPSLongitudeRef)
        )
        altitude = _as_float(gps_ifd.get(ExifTags.GPS.GPSAltitude))
        if altitude is not None and gps_ifd.get(ExifTags.GPS.GPSAltitudeRef) in (1, b"\x01"):
            altitude = -altitude
        values["altitude"] = altitude

    return values


def read_exiftool_values(tags: Mapping[str, Any]) -> dict[str, Any]:
    """Map ExifTool ``-G -n`` output onto the normalised field names."""

    values: dict[str, Any] = {}
    for field_name, keys in _EXIFTOOL_KEYS.items():
        for key in keys:
            if tags.get(key) is not None:
                values[field_name] = tags[key]
                break
    return values


class MetadataExtractor:
    """Extract a :class:`CaptureMetadata` subset for one file."""

    def __init__(self, config: MetadataConfig | None = None, sessions: ExifToolSessions | None = None) -> None:
        self._config = config or MetadataConfig()
        self._sessions = sessions or ExifToolSessions(self._config.exiftool_path)

    def extract(self, path: Path, category: FormatCategory) -> CaptureMetadata | None:
        """Return the metadata subset, ``None`` when the file carries none.

        Raises:
            MetadataExtractionError: when the file or the metadata tool cannot
                be read. Callers treat this as non-fatal.
        """

        if isinstance(category, RawFormat):
            values = self._read_with_exiftool(path)
        elif isinstance(category, (HighEfficiency, Standard)):
            values = self._read_with_pillow(path)
        else:
            return None
        return build_capture_metadata(values, self._config.datetime_format)

    def _read_with_pillow(self, path: Path) -> dict[str, Any]:
        try:
            with open_image(path) as image:
                return read_pillow_values(image)
        except IngestError as exc:
            raise MetadataExtractionError(str(exc)) from exc
        except (OSError, ValueError, SyntaxError) as exc:
            raise MetadataExtractionError(f"Failed to read EXIF: {exc}") from exc

    def _read_with_exiftool(self, path: Path) -> dict[str, Any]:
        try:
            tags_list = self._sessions.get().get_metadata(str(path))
        except ExifToolExecuteError as exc:
            raise MetadataExtractionError(f"ExifTool failed: {exc}") from exc
        except (OSError, ValueError, TypeError, ExifToolException) as exc:
            # Restart the process on the next file.
            self._sessions.discard()
            raise MetadataExtractionError(f"ExifTool failed: {exc}") from exc

        if not tags_list:
            return {}
        return read_exiftool_values(tags_list[0])


__all__ = [
    "MetadataExtractor",
    "build_capture_metadata",
    "read_pillow_values",
    "read_exiftool_values",
    "format_aperture",
    "format_shutter_speed",
    "format_exposure_bias",
    "format_datetime",
    "dms_to_degrees",
]
