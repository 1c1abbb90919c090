"""Decode standard and HEIF images into RGB/RGBA rasters."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

import pillow_heif
from PIL import Image, UnidentifiedImageError

from photo_ingest.errors import DecodeError, FileUnreadableError

# Lets Image.open() read .heic/.heif containers.
pillow_heif.register_heif_opener()

_ALPHA_MODES = frozenset({"RGBA", "LA", "PA", "RGBa", "La"})


def to_raster(image: Image.Image) -> Image.Image:
    """Return ``image`` as an 8-bit RGB or RGBA raster.

    Images with an alpha channel (or palette transparency) keep it; everything
    else is flattened to RGB.
    """

    has_alpha = image.mode in _ALPHA_MODES or (image.mode == "P" and "transparency" in image.info)
    target_mode = "RGBA" if has_alpha else "RGB"
    if image.mode == target_mode:
        return image
    return image.convert(target_mode)


def open_image(path: Path) -> Image.Image:
    """Open an image lazily, mapping I/O and format errors onto the taxonomy."""

    try:
        return Image.open(path)
    except FileNotFoundError as exc:
        raise FileUnreadableError(f"Failed to read file: {exc}") from exc
    except UnidentifiedImageError as exc:
        raise DecodeError(f"Failed to decode image: {exc}") from exc
    except OSError as exc:
        raise FileUnreadableError(f"Failed to read file: {exc}") from exc


def decode_image(path: Path) -> Image.Image:
    """Fully decode a standard or HEIF file into an owned raster.

    Animated formats contribute their first frame.
    """

    with open_image(path) as image:
        try:
            image.load()
            raster = to_raster(image)
            return raster.copy() if raster is image else raster
        except (OSError, ValueError, SyntaxError) as exc:
            raise DecodeError(f"Failed to decode image: {exc}") from exc


def decode_bytes(data: bytes) -> Image.Image:
    """Decode an in-memory encoded image (an embedded JPEG preview, for example)."""

    try:
        with Image.open(BytesIO(data)) as image:
            image.load()
            raster = to_raster(image)
            return raster.copy() if raster is image else raster
    except (OSError, ValueError, SyntaxError) as exc:
        raise DecodeError(f"Failed to decode image bytes: {exc}") from exc


__all__ = ["to_raster", "open_image", "decode_image", "decode_bytes"]
