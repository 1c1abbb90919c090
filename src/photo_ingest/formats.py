"""Extension-based classification of photo files into processing categories."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final, Union

RAW_EXTENSIONS: Final[dict[str, str]] = {
    ".cr2": "CR2",  # Canon
    ".cr3": "CR3",  # Canon (newer)
    ".nef": "NEF",  # Nikon
    ".arw": "ARW",  # Sony
    ".dng": "DNG",  # Adobe / generic
    ".raf": "RAF",  # Fujifilm
    ".orf": "ORF",  # Olympus
    ".rw2": "RW2",  # Panasonic
    ".pef": "PEF",  # Pentax
    ".srw": "SRW",  # Samsung
    ".x3f": "X3F",  # Sigma
    ".3fr": "3FR",  # Hasselblad
    ".iiq": "IIQ",  # Phase One
    ".rwl": "RWL",  # Leica
}

HIGH_EFFICIENCY_EXTENSIONS: Final[frozenset[str]] = frozenset({".heic", ".heif"})

STANDARD_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".webp",
        ".bmp",
        ".tiff",
        ".tif",
    }
)

SUPPORTED_EXTENSIONS: Final[frozenset[str]] = frozenset(RAW_EXTENSIONS) | HIGH_EFFICIENCY_EXTENSIONS | STANDARD_EXTENSIONS

_STANDARD_MIME_TYPES: Final[dict[str, str]] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
}

# ISO-BMFF brands found at offset 8 of HEIF-family files.
_HEIF_BRANDS: Final[frozenset[bytes]] = frozenset(
    {b"heic", b"heix", b"hevc", b"hevx", b"heim", b"heis", b"hevm", b"hevs", b"mif1", b"msf1", b"avif"}
)


@dataclass(frozen=True)
class RawFormat:
    """Camera sensor-native file; ``name`` is the upper-case format tag (``NEF``)."""

    name: str


@dataclass(frozen=True)
class HighEfficiency:
    """HEIF/HEIC container."""


@dataclass(frozen=True)
class Standard:
    """Raster format Pillow decodes directly."""


@dataclass(frozen=True)
class Unsupported:
    """Anything else."""


FormatCategory = Union[RawFormat, HighEfficiency, Standard, Unsupported]


def _extension(path: str | Path) -> str:
    return Path(path).suffix.lower()


def classify(path: str | Path) -> FormatCategory:
    """Map a file path to its processing category by lower-cased extension.

    No I/O happens here; see :func:`looks_like_heif` for the content sniff.
    """

    ext = _extension(path)
    raw_name = RAW_EXTENSIONS.get(ext)
    if raw_name is not None:
        return RawFormat(raw_name)
    if ext in HIGH_EFFICIENCY_EXTENSIONS:
        return HighEfficiency()
    if ext in STANDARD_EXTENSIONS:
        return Standard()
    return Unsupported()


def supported_extensions() -> frozenset[str]:
    """Return every recognised extension, dot-prefixed and lower-case."""

    return SUPPORTED_EXTENSIONS


def is_supported(path: str | Path) -> bool:
    return _extension(path) in SUPPORTED_EXTENSIONS


def mime_type_for(path: str | Path, category: FormatCategory | None = None) -> str:
    """Return a MIME-like type tag for the file."""

    resolved = category if category is not None else classify(path)
    if isinstance(resolved, RawFormat):
        return f"image/x-{resolved.name.lower()}"
    if isinstance(resolved, HighEfficiency):
        return "image/heic"
    return _STANDARD_MIME_TYPES.get(_extension(path), "image/unknown")


def looks_like_heif(path: str | Path) -> bool:
    """Return ``True`` when the file starts with a HEIF-family ``ftyp`` box.

    iOS exports occasionally save HEIC payloads under a ``.jpg`` name; this
    check lets the pipeline route those through the HEIF decoder.
    """

    try:
        with Path(path).open("rb") as handle:
            header = handle.read(12)
    except OSError:
        return False

    if len(header) < 12 or header[4:8] != b"ftyp":
        return False
    return header[8:12] in _HEIF_BRANDS


__all__ = [
    "RAW_EXTENSIONS",
    "HIGH_EFFICIENCY_EXTENSIONS",
    "STANDARD_EXTENSIONS",
    "SUPPORTED_EXTENSIONS",
    "RawFormat",
    "HighEfficiency",
    "Standard",
    "Unsupported",
    "FormatCategory",
    "classify",
    "supported_extensions",
    "is_supported",
    "mime_type_for",
    "looks_like_heif",
]
