"""Thumbnail rendering and on-disk layout."""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from PIL import Image
from PIL.Image import Resampling

from photo_ingest.config import ThumbnailConfig
from photo_ingest.errors import ThumbnailWriteError
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "thumbnailing"})

_PIL_FORMATS = {"webp": "WEBP", "jpg": "JPEG", "jpeg": "JPEG", "png": "PNG"}


def _fit_within(size: tuple[int, int], max_side: int) -> tuple[int, int]:
    width, height = size
    scale = max_side / max(width, height)
    return max(1, round(width * scale)), max(1, round(height * scale))


def build_thumbnail_image(image: Image.Image, max_side: int) -> Image.Image:
    """Return ``image`` scaled so its longer side is at most ``max_side``.

    Aspect ratio is preserved and smaller images are never upscaled. An image
    that already fits is returned as-is; otherwise only the output raster is
    allocated, the source is never copied at full size.
    """

    safe_side = max(1, int(max_side))
    if max(image.size) <= safe_side:
        return image
    return image.resize(_fit_within(image.size, safe_side), resample=Resampling.LANCZOS, reducing_gap=3.0)


def thumbnail_path(root: Path, size_name: str, relative_path: str, extension: str) -> Path:
    """``{root}/{size_name}/{relative_path without extension}.{extension}``."""

    relative = PurePosixPath(relative_path.replace("\\", "/"))
    # Parent references and anchors are dropped so output stays under ``root``.
    parts = [part for part in relative.parts if part not in ("", ".", "..", "/")]
    if not parts:
        raise ValueError(f"Relative path has no file name: {relative_path!r}")

    *directories, filename = parts
    stem = PurePosixPath(filename).stem
    return root.joinpath(size_name, *directories, f"{stem}.{extension}")


def save_thumbnail(
    image: Image.Image,
    output_path: Path,
    max_side: int,
    quality: int,
    image_format: str = "webp",
) -> None:
    """Resize ``image`` and write it to ``output_path``, creating parent directories.

    ``image`` itself is never modified.
    """

    resized = build_thumbnail_image(image, max_side)
    pil_format = _PIL_FORMATS.get(image_format.lower(), image_format.upper())
    if pil_format == "JPEG" and resized.mode != "RGB":
        resized = resized.convert("RGB")

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        resized.save(output_path, format=pil_format, quality=quality)
    except (OSError, ValueError, KeyError) as exc:
        LOGGER.error(
            "thumbnail_save_error",
            extra={"path": str(output_path), "max_side": max_side, "quality": quality, "error": str(exc)},
        )
        raise ThumbnailWriteError(f"Failed to write thumbnail {output_path}: {exc}") from exc


def generate_all_thumbnails(
    image: Image.Image,
    root: Path,
    relative_path: str,
    config: ThumbnailConfig | None = None,
) -> dict[str, Path]:
    """Write every configured rendition; returns the paths that were written.

    A failed size is logged and skipped so the remaining sizes still land.
    """

    cfg = config or ThumbnailConfig()
    written: dict[str, Path] = {}
    for size in cfg.sizes:
        try:
            output_path = thumbnail_path(root, size.name, relative_path, cfg.extension)
            save_thumbnail(image, output_path, size.max_dimension, size.quality, cfg.image_format)
        except (ThumbnailWriteError, ValueError) as exc:
            LOGGER.warning(
                "thumbnail_size_skipped",
                extra={
                    "size": size.name,
                    "relative_path": relative_path,
                    "tag": ThumbnailWriteError.tag,
                    "error": str(exc),
                },
            )
            continue
        written[size.name] = output_path
    return written


__all__ = ["build_thumbnail_image", "thumbnail_path", "save_thumbnail", "generate_all_thumbnails"]
