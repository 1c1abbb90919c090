"""Tests for record assembly and the JSON payload shape."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from photo_ingest.aggregation import ResultAggregator
from photo_ingest.artifacts import DerivedArtifacts
from photo_ingest.formats import RawFormat, Standard
from photo_ingest.records import CaptureMetadata, RawStatus
from utils.logging import get_logger


def test_file_facts_for_existing_and_missing_files(tmp_path: Path) -> None:
    path = tmp_path / "a.jpg"
    path.write_bytes(b"12345")
    aggregator = ResultAggregator()

    facts = aggregator.file_facts(path)
    missing = aggregator.file_facts(tmp_path / "gone.jpg")

    assert facts.name == "a.jpg"
    assert facts.size == 5
    assert facts.modified_at > 0
    assert facts.created_at > 0
    assert (missing.name, missing.size, missing.modified_at) == ("gone.jpg", 0, 0)


def test_raw_success_sets_status_and_match_flag(tmp_path: Path) -> None:
    path = tmp_path / "shot.nef"
    aggregator = ResultAggregator()
    artifacts = DerivedArtifacts(phash="0" * 16, embedding=[1.0])

    record = aggregator.success(
        path,
        "shot.nef",
        aggregator.file_facts(path),
        RawFormat("NEF"),
        30,
        20,
        artifacts,
        histogram_matched=None,
    )

    assert record.success is True
    assert record.error is None
    assert record.is_raw is True
    assert record.raw_format == "NEF"
    assert record.raw_status is RawStatus.CONVERTED
    assert record.histogram_matched is False
    assert (record.width, record.height) == (30, 20)


def test_failure_keeps_metadata_and_never_sets_dimensions(tmp_path: Path) -> None:
    aggregator = ResultAggregator()
    exif = CaptureMetadata(camera_make="Canon")

    raw_path = tmp_path / "x.cr3"
    raw = aggregator.failure(raw_path, "x.cr3", aggregator.file_facts(raw_path), RawFormat("CR3"), "", exif=exif)
    png_path = tmp_path / "y.png"
    standard = aggregator.failure(png_path, "y.png", aggregator.file_facts(png_path), Standard(), "boom")

    assert raw.error == "Unknown error"
    assert raw.raw_status is RawStatus.FAILED
    assert raw.raw_error == "Unknown error"
    assert raw.exif == exif
    assert raw.width is None and raw.height is None
    assert standard.raw_status is None
    assert standard.raw_error is None
    assert standard.histogram_matched is None


def test_record_to_dict_is_json_serialisable(tmp_path: Path) -> None:
    aggregator = ResultAggregator()
    record = aggregator.failure(
        tmp_path / "x.arw", "x.arw", aggregator.file_facts(tmp_path / "x.arw"), RawFormat("ARW"), "Failed to unpack"
    )

    payload = json.loads(json.dumps(record.to_dict()))

    assert payload["raw_status"] == "failed"
    assert payload["path"] == "x.arw"
    assert payload["exif"] is None


def test_unsupported_record(tmp_path: Path) -> None:
    aggregator = ResultAggregator()
    record = aggregator.unsupported(tmp_path / "n.txt", "n.txt", aggregator.file_facts(tmp_path / "n.txt"))

    assert record.success is False
    assert record.error == "Unsupported file type"
    assert record.is_raw is False


def test_logger_merges_call_site_extra(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("photo_ingest.tests", extra={"component": "tests"})

    with caplog.at_level(logging.INFO, logger="photo_ingest.tests"):
        logger.info("something_happened", extra={"relative_path": "a.jpg"})

    record = caplog.records[-1]
    assert record.getMessage() == "something_happened"
    assert record.component == "tests"
    assert record.relative_path == "a.jpg"
