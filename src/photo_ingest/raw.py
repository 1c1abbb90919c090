"""RAW decoding with embedded-preview tone matching.

``RawCodec`` wraps rawpy (LibRaw) and ExifTool; ``RawToneMatcher`` runs the
two-phase decode for one file:

1. read the container, pull out candidate JPEG previews, drop the bytes;
2. re-read the container, unpack and demosaic, drop the bytes;
3. when the best preview is large enough, match the demosaiced histogram
   to it in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Protocol

import numpy as np
import rawpy
from exiftool.exceptions import ExifToolException, ExifToolExecuteError
from PIL import Image

from photo_ingest.config import RawConfig
from photo_ingest.decoding import decode_bytes
from photo_ingest.errors import (
    ContainerOpenError,
    DecodeError,
    DemosaicError,
    FileUnreadableError,
    PreviewDecodeError,
    UnpackError,
)
from photo_ingest.exiftool_session import ExifToolSessions
from photo_ingest.tone_curve import apply_tone_curves_inplace, compute_tone_curves
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "raw"})


@dataclass
class EmbeddedPreview:
    """An encoded JPEG found inside a RAW container."""

    width: int
    height: int
    data: bytes
    source: str = "libraw"

    @property
    def area(self) -> int:
        return self.width * self.height


class RawCodecProtocol(Protocol):
    def extract_embedded_previews(self, data: bytes) -> list[EmbeddedPreview]: ...

    def extract_tool_previews(self, path: Path, tags: list[str]) -> list[EmbeddedPreview]: ...

    def unpack_and_demosaic(self, data: bytes, use_camera_wb: bool = True) -> np.ndarray: ...


def _jpeg_dimensions(data: bytes) -> tuple[int, int] | None:
    try:
        with Image.open(BytesIO(data)) as image:
            if image.format != "JPEG":
                return None
            return image.size
    except (OSError, ValueError, SyntaxError):
        return None


def read_file_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise FileUnreadableError(f"Failed to read file: {exc}") from exc


class RawCodec:
    """rawpy-backed RAW codec with an ExifTool preview fallback."""

    def __init__(self, exiftool_path: str | None = None, sessions: ExifToolSessions | None = None) -> None:
        self._sessions = sessions or ExifToolSessions(exiftool_path)

    def extract_embedded_previews(self, data: bytes) -> list[EmbeddedPreview]:
        """Return the JPEG preview LibRaw exposes, if any."""

        try:
            with rawpy.imread(BytesIO(data)) as raw:
                thumb = raw.extract_thumb()
        except (rawpy.LibRawNoThumbnailError, rawpy.LibRawUnsupportedThumbnailError):
            return []
        except (rawpy.LibRawError, OSError, ValueError) as exc:
            LOGGER.debug("raw_native_preview_error", extra={"error": str(exc)})
            return []

        if thumb.format != rawpy.ThumbFormat.JPEG:
            return []

        payload = bytes(thumb.data)
        dims = _jpeg_dimensions(payload)
        if dims is None:
            return []
        return [EmbeddedPreview(width=dims[0], height=dims[1], data=payload, source="libraw")]

    def extract_tool_previews(self, path: Path, tags: list[str]) -> list[EmbeddedPreview]:
        """Ask ExifTool for each binary preview tag and keep the decodable JPEGs."""

        previews: list[EmbeddedPreview] = []
        try:
            et = self._sessions.get()
            for tag in tags:
                try:
                    payload = et.execute("-b", f"-{tag}", str(path), raw_bytes=True)
                except ExifToolExecuteError as exc:
                    LOGGER.debug("raw_tool_preview_tag_error", extra={"path": str(path), "tag": tag, "error": str(exc)})
                    continue
                if not payload:
                    continue
                dims = _jpeg_dimensions(payload)
                if dims is None:
                    continue
                previews.append(EmbeddedPreview(width=dims[0], height=dims[1], data=payload, source=tag))
        except (OSError, ValueError, ExifToolException) as exc:
            self._sessions.discard()
            LOGGER.warning("raw_tool_preview_error", extra={"path": str(path), "error": str(exc)})
        return previews

    def unpack_and_demosaic(self, data: bytes, use_camera_wb: bool = True) -> np.ndarray:
        """Decode sensor data into an owned ``(H, W, 3)`` uint8 array.

        The sensor flip is not applied; orientation comes from metadata.
        """

        try:
            raw = rawpy.imread(BytesIO(data))
        except (rawpy.LibRawError, OSError, ValueError) as exc:
            raise ContainerOpenError(f"Failed to open RAW container: {exc}") from exc

        with raw:
            try:
                raw.unpack()
            except (rawpy.LibRawError, ValueError) as exc:
                raise UnpackError(f"Failed to unpack RAW data: {exc}") from exc

            try:
                rgb = raw.postprocess(use_camera_wb=use_camera_wb, output_bps=8, user_flip=0)
            except (rawpy.LibRawError, ValueError, MemoryError) as exc:
                raise DemosaicError(f"Failed to demosaic RAW data: {exc}") from exc

        pixels = np.ascontiguousarray(rgb, dtype=np.uint8)
        if not pixels.flags.writeable:
            pixels = pixels.copy()
        return pixels


@dataclass
class PreviewAsset:
    """Best embedded preview: encoded bytes plus a decoded RGB array."""

    data: bytes
    pixels: np.ndarray | None

    @property
    def shorter_side(self) -> int:
        if self.pixels is None:
            return 0
        return int(min(self.pixels.shape[0], self.pixels.shape[1]))

    def release_pixels(self) -> None:
        self.pixels = None


@dataclass
class RawDecodeResult:
    raster: Image.Image
    preview_bytes: bytes | None
    histogram_matched: bool


class RawToneMatcher:
    """Decode one RAW file and reconcile it with the camera's rendering."""

    def __init__(self, codec: RawCodecProtocol | None = None, config: RawConfig | None = None) -> None:
        self._config = config or RawConfig()
        self._codec = codec or RawCodec()

    def decode(self, path: Path, raw_format: str) -> RawDecodeResult:
        if not path.is_file():
            raise FileUnreadableError(f"Failed to read file: {path}")

        preview = self.load_preview(path, raw_format)

        data = read_file_bytes(path)
        try:
            pixels = self._codec.unpack_and_demosaic(data, use_camera_wb=self._config.use_camera_wb)
        finally:
            del data

        matched = False
        if preview is not None and preview.shorter_side >= self._config.min_preview_side:
            curves = compute_tone_curves(pixels, preview.pixels, self._config.histogram_sample_limit)
            apply_tone_curves_inplace(pixels, curves)
            matched = True
        else:
            LOGGER.debug(
                "raw_tone_match_skipped",
                extra={"path": str(path), "preview_shorter_side": preview.shorter_side if preview else 0},
            )

        preview_bytes: bytes | None = None
        if preview is not None:
            preview.release_pixels()
            preview_bytes = preview.data

        raster = Image.fromarray(pixels)
        del pixels
        return RawDecodeResult(raster=raster, preview_bytes=preview_bytes, histogram_matched=matched)

    def load_preview(self, path: Path, raw_format: str) -> PreviewAsset | None:
        """Pick and decode the largest embedded preview; ``None`` when unusable."""

        data = read_file_bytes(path)
        try:
            candidates = list(self._codec.extract_embedded_previews(data))
        finally:
            del data

        if raw_format.upper() in {fmt.upper() for fmt in self._config.tool_preview_formats}:
            candidates.extend(self._codec.extract_tool_previews(path, list(self._config.tool_preview_tags)))

        if not candidates:
            return None

        best = max(candidates, key=lambda candidate: candidate.area)
        try:
            image = decode_bytes(best.data)
        except DecodeError as exc:
            LOGGER.warning(
                "preview_decode_failed",
                extra={"path": str(path), "source": best.source, "tag": PreviewDecodeError.tag, "error": str(exc)},
            )
            return None

        pixels = np.asarray(image.convert("RGB"), dtype=np.uint8)
        return PreviewAsset(data=best.data, pixels=pixels)


__all__ = [
    "EmbeddedPreview",
    "RawCodecProtocol",
    "RawCodec",
    "PreviewAsset",
    "RawDecodeResult",
    "RawToneMatcher",
    "read_file_bytes",
]
