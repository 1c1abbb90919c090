"""Filesystem discovery of photo files under a root directory."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from photo_ingest.formats import supported_extensions
from utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class DiscoveredFile:
    """An input file as an absolute path plus its path relative to the root."""

    path: Path
    relative_path: str


def _is_hidden(relative: Path) -> bool:
    return any(part.startswith(".") for part in relative.parts)


def iter_photos(root: Path, include_unsupported: bool = False) -> Iterator[DiscoveredFile]:
    """Recursively yield files under ``root`` in sorted order.

    Hidden files and anything inside hidden directories are skipped. Unless
    ``include_unsupported`` is set, only recognised photo extensions are kept.
    """

    resolved = root.expanduser().resolve()
    if not resolved.is_dir():
        LOGGER.warning("scan_root_missing", extra={"root": str(root)})
        return

    allowed = supported_extensions()
    for path in sorted(resolved.rglob("*")):
        relative = path.relative_to(resolved)
        if _is_hidden(relative) or not path.is_file():
            continue
        if not include_unsupported and path.suffix.lower() not in allowed:
            continue
        yield DiscoveredFile(path=path, relative_path=relative.as_posix())


def discover_photos(root: Path, include_unsupported: bool = False) -> tuple[list[str], list[str]]:
    """Return parallel ``(absolute_paths, relative_paths)`` lists for a batch run."""

    absolute: list[str] = []
    relative: list[str] = []
    for item in iter_photos(root, include_unsupported=include_unsupported):
        absolute.append(str(item.path))
        relative.append(item.relative_path)
    LOGGER.info("scan_complete", extra={"root": str(root), "file_count": len(absolute)})
    return absolute, relative


__all__ = ["DiscoveredFile", "iter_photos", "discover_photos"]
