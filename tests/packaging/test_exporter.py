"""Tests for workspace export."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gamepipe.packaging import BuildExporter, ExportError, hash_file, read_entries


def _workspace(root: Path, build_id: str = "build-1", status: str = "PASS") -> Path:
    workspace = root / build_id
    (workspace / "assembly/modules/a").mkdir(parents=True)
    (workspace / "assembly/modules/a/index.ts").write_text("export const a = 1;\n", encoding="utf-8")
    (workspace / "reports").mkdir()
    (workspace / "reports/build-report.json").write_text(
        json.dumps({"buildId": build_id, "status": status}), encoding="utf-8"
    )
    (workspace / "reports/template-resolution.json").write_text(
        json.dumps({"resolvedTemplateId": "idle-rpg-base@1.2", "versionUsed": "1.2"}),
        encoding="utf-8",
    )
    (workspace / "artifacts").mkdir()
    (workspace / "artifacts/gamespec.hash").write_text("abc123", encoding="utf-8")
    return workspace


def test_export_produces_archive_and_checksums(tmp_path: Path) -> None:
    _workspace(tmp_path)

    result = BuildExporter(tmp_path).export("build-1")

    assert result.status == "PASS"
    assert result.checksum == hash_file(result.archive_path)
    names = [entry.name for entry in read_entries(result.archive_path)]
    assert "export/build/assembly/modules/a/index.ts" in names
    assert "export/reports/build-report.json" in names
    assert "export/metadata/build.json" in names
    assert names == sorted(names)

    checksum_lines = (result.export_dir / "checksum.sha256").read_text(encoding="utf-8").splitlines()
    paths = [line.split("  ", 1)[1] for line in checksum_lines]
    assert paths == sorted(paths)
    assert "checksum.sha256" not in paths


def test_export_metadata_records_template_and_hashes(tmp_path: Path) -> None:
    _workspace(tmp_path)

    result = BuildExporter(tmp_path).export("build-1")

    metadata = json.loads((result.export_dir / "metadata/build.json").read_text(encoding="utf-8"))
    assert metadata["buildId"] == "build-1"
    assert metadata["templateId"] == "idle-rpg-base"
    assert metadata["templateVersionUsed"] == "1.2"
    assert metadata["specHash"] == "abc123"
    assert set(metadata["hashes"]) == {"assembly", "reports"}


def test_repeated_export_is_reproducible(tmp_path: Path) -> None:
    _workspace(tmp_path)
    exporter = BuildExporter(tmp_path)

    first = exporter.export("build-1")
    first_bytes = first.archive_path.read_bytes()
    second = exporter.export("build-1")

    assert first.checksum == second.checksum
    assert second.archive_path.read_bytes() == first_bytes


def test_failed_builds_are_not_exported(tmp_path: Path) -> None:
    _workspace(tmp_path, status="FAIL")

    with pytest.raises(ExportError, match="not PASS"):
        BuildExporter(tmp_path).export("build-1")


def test_missing_report_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ExportError, match="Build report not found"):
        BuildExporter(tmp_path).export("build-404")
