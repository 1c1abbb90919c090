"""Configuration loader and typed settings for the photo ingestion pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from photo_ingest.ml.model_presets import CLIP_PRESETS, CLIP_VIT_BASE_PATCH32, DEFAULT_EMBEDDING_DIM, EMBEDDING_DIMS

MAX_WORKER_CAP = 4


@dataclass
class EmbeddingModelConfig:
    """Configuration for the image embedding model (CLIP)."""

    enabled: bool = True
    backend: str = "clip"
    model_name: str = CLIP_VIT_BASE_PATCH32
    preset: str | None = None
    device: str = "auto"
    batch_size: int = 8
    # ``None`` derives the width from the resolved checkpoint.
    expected_dim: int | None = None

    def resolved_model_name(self) -> str:
        """Return the concrete model name to load for embeddings.

        Resolution order:
        1. If ``preset`` is set, resolve via :data:`CLIP_PRESETS`.
        2. Otherwise, use ``model_name``.
        3. Fallback to the default CLIP ViT-B/32 checkpoint.
        """
        if self.preset:
            preset_name = CLIP_PRESETS.get(self.preset)
            if preset_name is None:
                raise ValueError(f"Unsupported CLIP preset: {self.preset!r}")
            return preset_name

        if self.model_name:
            return self.model_name

        return CLIP_VIT_BASE_PATCH32

    def resolved_expected_dim(self) -> int:
        """Explicit ``expected_dim`` wins, then the checkpoint's known width, then 512."""

        if self.expected_dim:
            return self.expected_dim
        name = CLIP_PRESETS.get(self.preset, self.model_name) if self.preset else self.model_name
        return EMBEDDING_DIMS.get(name, DEFAULT_EMBEDDING_DIM)


@dataclass
class ThumbnailSize:
    """One named thumbnail rendition."""

    name: str
    max_dimension: int
    quality: int


def _default_thumbnail_sizes() -> list[ThumbnailSize]:
    return [
        ThumbnailSize(name="tiny", max_dimension=150, quality=80),
        ThumbnailSize(name="small", max_dimension=400, quality=85),
        ThumbnailSize(name="medium", max_dimension=800, quality=85),
        ThumbnailSize(name="large", max_dimension=1600, quality=90),
    ]


@dataclass
class ThumbnailConfig:
    """Thumbnail renditions and the on-disk encoding."""

    sizes: list[ThumbnailSize] = field(default_factory=_default_thumbnail_sizes)
    image_format: str = "webp"

    @property
    def extension(self) -> str:
        fmt = self.image_format.lower()
        return "jpg" if fmt == "jpeg" else fmt


@dataclass
class RawConfig:
    """Knobs for the RAW decode and tone-matching path."""

    min_preview_side: int = 800
    histogram_sample_limit: int = 500_000
    use_camera_wb: bool = True
    # Formats whose previews rawpy tends to miss; ExifTool is queried as well.
    tool_preview_formats: list[str] = field(default_factory=lambda: ["CR3", "NEF"])
    tool_preview_tags: list[str] = field(default_factory=lambda: ["PreviewImage", "JpgFromRaw", "OtherImage"])


@dataclass
class MetadataConfig:
    """Capture metadata extraction settings."""

    datetime_format: str = "iso"
    exiftool_path: str | None = None


@dataclass
class PipelineConfig:
    """Batch scheduling settings."""

    max_workers: int = MAX_WORKER_CAP
    sniff_heif_magic: bool = True
    progress_every_percent: int = 5


@dataclass
class Settings:
    """Top-level application settings."""

    embedding: EmbeddingModelConfig = field(default_factory=EmbeddingModelConfig)
    thumbnails: ThumbnailConfig = field(default_factory=ThumbnailConfig)
    raw: RawConfig = field(default_factory=RawConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


def _project_root() -> Path:
    """Best-effort detection of the repository root for config discovery."""

    module_path = Path(__file__).resolve()
    try:
        return module_path.parents[2]
    except IndexError:  # pragma: no cover
        return module_path.parent


def _build_default_settings_paths() -> list[Path]:
    """Return candidate settings paths ordered by preference."""

    cwd_candidate = (Path.cwd() / "config" / "settings.yaml").resolve()
    repo_candidate = (_project_root() / "config" / "settings.yaml").resolve()

    candidates: list[Path] = []
    seen: set[Path] = set()
    for candidate in (cwd_candidate, repo_candidate):
        if candidate in seen:
            continue
        seen.add(candidate)
        candidates.append(candidate)
    return candidates


def _resolve_settings_path(settings_path: Path | str | None) -> Path:
    """Determine which settings file to load, honoring overrides."""

    if settings_path:
        return Path(settings_path).expanduser().resolve()

    env_override = os.getenv("PHOTO_INGEST_SETTINGS")
    if env_override:
        return Path(env_override).expanduser().resolve()

    candidates = _build_default_settings_paths()
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_thumbnail_sizes(raw_sizes: Any) -> list[ThumbnailSize] | None:
    """Parse ``{name: {max_dimension, quality}}`` or ``{name: max_dimension}`` mappings."""

    sizes_raw = _as_dict(raw_sizes)
    if not sizes_raw:
        return None

    defaults = {size.name: size for size in _default_thumbnail_sizes()}
    parsed: list[ThumbnailSize] = []
    for name, entry in sizes_raw.items():
        base = defaults.get(str(name), ThumbnailSize(name=str(name), max_dimension=0, quality=85))
        if _is_int(entry):
            parsed.append(ThumbnailSize(name=str(name), max_dimension=entry, quality=base.quality))
            continue
        entry_dict = _as_dict(entry)
        max_dimension = entry_dict.get("max_dimension", base.max_dimension)
        quality = entry_dict.get("quality", base.quality)
        if not _is_int(max_dimension) or max_dimension <= 0:
            continue
        parsed.append(
            ThumbnailSize(
                name=str(name),
                max_dimension=max_dimension,
                quality=quality if _is_int(quality) else base.quality,
            )
        )
    return parsed or None


def load_settings(settings_path: Path | str | None = None) -> Settings:
    """Load application settings from a YAML file, falling back to defaults.

    A missing or malformed file yields a :class:`Settings` populated with
    default values; individual keys with the wrong type are ignored.
    """
    path = _resolve_settings_path(settings_path)
    settings = Settings()

    if not path.exists() or not path.is_file():
        return settings

    try:
        with path.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}
    except yaml.YAMLError:
        return settings

    if not isinstance(raw, dict):
        return settings

    embedding_raw = _as_dict(raw.get("embedding"))
    embedding_cfg = settings.embedding
    if isinstance(embedding_raw.get("enabled"), bool):
        embedding_cfg.enabled = embedding_raw["enabled"]
    if isinstance(embedding_raw.get("backend"), str):
        embedding_cfg.backend = embedding_raw["backend"]
    if isinstance(embedding_raw.get("model_name"), str):
        embedding_cfg.model_name = embedding_raw["model_name"]
    if isinstance(embedding_raw.get("preset"), str):
        embedding_cfg.preset = embedding_raw["preset"]
    if isinstance(embedding_raw.get("device"), str):
        embedding_cfg.device = embedding_raw["device"]
    if _is_int(embedding_raw.get("batch_size")):
        embedding_cfg.batch_size = embedding_raw["batch_size"]
    if _is_int(embedding_raw.get("expected_dim")):
        embedding_cfg.expected_dim = embedding_raw["expected_dim"]

    thumbnails_raw = _as_dict(raw.get("thumbnails"))
    thumbnails_cfg = settings.thumbnails
    parsed_sizes = _parse_thumbnail_sizes(thumbnails_raw.get("sizes"))
    if parsed_sizes:
        thumbnails_cfg.sizes = parsed_sizes
    if isinstance(thumbnails_raw.get("format"), str):
        thumbnails_cfg.image_format = thumbnails_raw["format"].lower()

    raw_section = _as_dict(raw.get("raw"))
    raw_cfg = settings.raw
    if _is_int(raw_section.get("min_preview_side")):
        raw_cfg.min_preview_side = raw_section["min_preview_side"]
    if _is_int(raw_section.get("histogram_sample_limit")) and raw_section["histogram_sample_limit"] > 0:
        raw_cfg.histogram_sample_limit = raw_section["histogram_sample_limit"]
    if isinstance(raw_section.get("use_camera_wb"), bool):
        raw_cfg.use_camera_wb = raw_section["use_camera_wb"]
    if isinstance(raw_section.get("tool_preview_formats"), list):
        raw_cfg.tool_preview_formats = [str(item).upper() for item in raw_section["tool_preview_formats"] if str(item)]
    if isinstance(raw_section.get("tool_preview_tags"), list):
        raw_cfg.tool_preview_tags = [str(item) for item in raw_section["tool_preview_tags"] if str(item)]

    metadata_raw = _as_dict(raw.get("metadata"))
    metadata_cfg = settings.metadata
    if isinstance(metadata_raw.get("datetime_format"), str):
        metadata_cfg.datetime_format = metadata_raw["datetime_format"]
    if isinstance(metadata_raw.get("exiftool_path"), str):
        metadata_cfg.exiftool_path = metadata_raw["exiftool_path"]

    pipeline_raw = _as_dict(raw.get("pipeline"))
    pipeline_cfg = settings.pipeline
    if _is_int(pipeline_raw.get("max_workers")) and pipeline_raw["max_workers"] > 0:
        pipeline_cfg.max_workers = pipeline_raw["max_workers"]
    if isinstance(pipeline_raw.get("sniff_heif_magic"), bool):
        pipeline_cfg.sniff_heif_magic = pipeline_raw["sniff_heif_magic"]
    if _is_int(pipeline_raw.get("progress_every_percent")) and pipeline_raw["progress_every_percent"] > 0:
        pipeline_cfg.progress_every_percent = pipeline_raw["progress_every_percent"]

    return settings


__all__ = [
    "MAX_WORKER_CAP",
    "EmbeddingModelConfig",
    "ThumbnailSize",
    "ThumbnailConfig",
    "RawConfig",
    "MetadataConfig",
    "PipelineConfig",
    "Settings",
    "load_settings",
]
