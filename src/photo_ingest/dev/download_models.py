"""CLI to pre-download the embedding checkpoint for offline runs."""

from __future__ import annotations

from typing import Optional

import typer
from huggingface_hub import snapshot_download

from photo_ingest.config import Settings, load_settings
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def _resolve_models(settings: Settings, preset: Optional[str]) -> list[str]:
    """Return a sorted list of unique model identifiers to download."""

    if preset:
        settings.embedding.preset = preset
    return sorted({settings.embedding.resolved_model_name()})


def _download_model(repo_id: str) -> None:
    """Download a single model repository to the local Hugging Face cache."""

    LOGGER.info("model_download_start", extra={"model_name": repo_id})
    cache_path = snapshot_download(repo_id=repo_id)
    LOGGER.info("model_download_complete", extra={"model_name": repo_id, "cache_path": cache_path})


def main(
    preset: Optional[str] = typer.Option(
        None,
        "--preset",
        help="Download a named CLIP preset (clip_b32, clip_b16, clip_l14) instead of the configured model.",
    ),
) -> None:
    """Download the configured Hugging Face embedding checkpoint ahead of ingestion runs."""

    settings = load_settings()
    model_names = _resolve_models(settings, preset)
    LOGGER.info("model_download_prepare", extra={"models": model_names})

    for model_name in model_names:
        _download_model(model_name)

    LOGGER.info("model_download_finished", extra={"downloaded_models": model_names})


if __name__ == "__main__":
    typer.run(main)


__all__ = ["main"]
