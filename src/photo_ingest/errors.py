"""
Exception hierarchy for the photo ingestion pipeline.

Each exception carries a stable ``tag`` naming the failure class; fatal
errors end up as the ``error`` of a failed record, non-fatal ones are
logged and surface only as an absent optional field.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base exception for all ingestion errors."""

    tag = "IngestError"
    fatal = True


class FileUnreadableError(IngestError):
    """Raised when the source file cannot be stat'ed or read."""

    tag = "FileUnreadable"


class ContainerOpenError(IngestError):
    """Raised when a RAW container cannot be opened by the codec."""

    tag = "ContainerOpenFailed"


class UnpackError(IngestError):
    """Raised when RAW sensor data cannot be unpacked."""

    tag = "UnpackFailed"


class DemosaicError(IngestError):
    """Raised when demosaic / colour conversion of RAW data fails."""

    tag = "DemosaicFailed"


class DecodeError(IngestError):
    """Raised when a standard or HEIF image cannot be decoded."""

    tag = "DecodeFailed"


class PreviewDecodeError(IngestError):
    """Raised when an embedded RAW preview cannot be decoded."""

    tag = "PreviewDecodeFailed"
    fatal = False


class UnsupportedFileTypeError(IngestError):
    """Raised for files whose extension is not recognised."""

    tag = "UnsupportedFileType"

    def __init__(self, message: str = "Unsupported file type") -> None:
        super().__init__(message)


class ThumbnailWriteError(IngestError):
    """Raised when a thumbnail cannot be written to disk."""

    tag = "ThumbnailWriteFailed"
    fatal = False


class EmbeddingUnavailableError(IngestError):
    """Raised when the embedding model cannot be loaded or run."""

    tag = "EmbeddingUnavailable"
    fatal = False


class MetadataExtractionError(IngestError):
    """Raised when capture metadata cannot be extracted from a file."""

    tag = "MetadataExtractionFailed"
    fatal = False


__all__ = [
    "IngestError",
    "FileUnreadableError",
    "ContainerOpenError",
    "UnpackError",
    "DemosaicError",
    "DecodeError",
    "PreviewDecodeError",
    "UnsupportedFileTypeError",
    "ThumbnailWriteError",
    "EmbeddingUnavailableError",
    "MetadataExtractionError",
]
