"""CLI entrypoint for ingesting a photo directory."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from photo_ingest.config import Settings, load_settings
from photo_ingest.pipeline import build_pipeline, get_supported_extensions
from photo_ingest.scanner import discover_photos
from utils.logging import get_logger

LOGGER = get_logger(__name__)

app = typer.Typer(help="Ingest photo files into thumbnails, hashes, embeddings and metadata records.")


def _apply_cli_overrides(
    settings: Settings,
    batch_size: Optional[int],
    device: Optional[str],
    workers: Optional[int],
) -> Settings:
    """Apply CLI overrides for batch size, device and worker count to the settings."""

    if batch_size is not None and batch_size > 0:
        settings.embedding.batch_size = batch_size

    if device:
        settings.embedding.device = device

    if workers is not None and workers > 0:
        settings.pipeline.max_workers = workers

    return settings


@app.command("run")
def run(
    root: Path = typer.Option(
        ...,
        "--root",
        file_okay=False,
        dir_okay=True,
        exists=True,
        readable=True,
        help="Directory to scan recursively for photos.",
    ),
    thumbnails: Path = typer.Option(
        ...,
        "--thumbnails",
        file_okay=False,
        dir_okay=True,
        help="Output root for thumbnails; one sub-directory per size is created.",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        help="Write one JSON record per line to this file instead of stdout.",
    ),
    settings_path: Optional[Path] = typer.Option(
        None,
        "--settings",
        help="Settings YAML; defaults to PHOTO_INGEST_SETTINGS or config/settings.yaml.",
    ),
    embeddings: bool = typer.Option(
        True,
        "--embeddings/--no-embeddings",
        help="Compute image embeddings (loads the model once before the batch starts).",
    ),
    include_unsupported: bool = typer.Option(
        False,
        "--include-unsupported",
        help="Emit failed records for files with unrecognised extensions instead of skipping them.",
    ),
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        help="Override the embedding batch size configured in settings.yaml.",
    ),
    device: Optional[str] = typer.Option(
        None,
        "--device",
        help="Override the model device from settings.yaml, for example cpu, cuda, or mps.",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        help="Upper bound on concurrent items; never more than 4.",
    ),
) -> None:
    """Scan ``--root`` and process every photo found under it."""

    settings = load_settings(settings_path)
    settings = _apply_cli_overrides(settings, batch_size=batch_size, device=device, workers=workers)

    file_paths, relative_paths = discover_photos(root, include_unsupported=include_unsupported)
    if not file_paths:
        LOGGER.warning("ingest_no_files", extra={"root": str(root)})
        return

    pipeline = build_pipeline(settings, enable_embeddings=embeddings)
    records = pipeline.process_photos_batch(file_paths, relative_paths, thumbnails)

    lines = [json.dumps(record.to_dict(), ensure_ascii=False) for record in records]
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text("\n".join(lines) + "\n", encoding="utf-8")
    else:
        for line in lines:
            typer.echo(line)

    failed = sum(1 for record in records if not record.success)
    LOGGER.info(
        "ingest_complete",
        extra={"root": str(root), "total": len(records), "failed": failed, "output": str(output) if output else None},
    )


@app.command("extensions")
def extensions() -> None:
    """Print every recognised file extension, one per line."""

    for ext in sorted(get_supported_extensions()):
        typer.echo(ext)


def main() -> None:
    """Entrypoint used when invoking the module as a script."""

    app()


if __name__ == "__main__":
    main()


__all__ = ["app", "main"]
