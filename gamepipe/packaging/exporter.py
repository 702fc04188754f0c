"""Reproducible export of a validated build workspace."""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..logging import get_logger
from ..paths import workspace_dir
from .archive import hash_bytes, hash_file, write_archive

CHECKSUM_FILENAME = "checksum.sha256"

REPORT_FILES = (
    "build-report.json",
    "dependency-graph.json",
    "integration-report.json",
    "security-report.json",
    "template-resolution.json",
)

_README_LINES = (
    "gamepipe export build",
    "Use build/assembly with the runtime to run the game.",
    "Reports are in reports/.",
)


class ExportError(RuntimeError):
    """Raised when a workspace cannot be exported."""


@dataclass
class ExportResult:
    build_id: str
    status: str
    export_dir: Path
    archive_path: Path
    checksum: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "buildId": self.build_id,
            "status": self.status,
            "exportDir": str(self.export_dir),
            "archivePath": str(self.archive_path),
            "checksum": self.checksum,
        }


class BuildExporter:
    """Packages ``<workspaces>/<buildId>`` into a deterministic archive plus checksums."""

    def __init__(self, workspaces_dir: Path) -> None:
        self.workspaces_dir = Path(workspaces_dir)
        self.logger = get_logger("packaging.exporter")

    def export(self, build_id: str) -> ExportResult:
        workspace = workspace_dir(self.workspaces_dir, build_id)
        reports_dir = workspace / "reports"
        assembly_dir = workspace / "assembly"

        report = _read_json(reports_dir / "build-report.json")
        if report is None:
            raise ExportError(f"Build report not found for build: {build_id}")
        if report.get("status") != "PASS":
            raise ExportError(f"Build is not PASS: {build_id}")
        if not assembly_dir.is_dir():
            raise ExportError(f"Assembly tree not found for build: {build_id}")

        export_dir = workspace / "export"
        export_root = export_dir / "export"
        shutil.rmtree(export_dir, ignore_errors=True)
        export_root.mkdir(parents=True)

        build_root = export_root / "build"
        copy_tree(assembly_dir, build_root / "assembly")
        assets_dir = workspace / "assets"
        if assets_dir.is_dir():
            copy_tree(assets_dir, build_root / "assets")

        export_reports = export_root / "reports"
        export_reports.mkdir(parents=True)
        for filename in REPORT_FILES:
            source = reports_dir / filename
            if source.is_file():
                shutil.copyfile(source, export_reports / filename)

        manifest = build_manifest_for_export(build_id, workspace)
        manifest_text = json.dumps(manifest, indent=2, sort_keys=True)
        (export_reports / "build-manifest.json").write_text(manifest_text, encoding="utf-8")
        metadata_dir = export_root / "metadata"
        metadata_dir.mkdir(parents=True)
        (metadata_dir / "build.json").write_text(manifest_text, encoding="utf-8")
        (metadata_dir / "README.txt").write_text("\n".join(_README_LINES), encoding="utf-8")

        write_checksum_manifest(export_root)

        archive_path = export_dir / f"{build_id}.zip"
        members = [f"export/{name}" for name in list_files(export_root)]
        write_archive(archive_path, export_dir, members)
        checksum = hash_file(archive_path)
        self.logger.info("Exported %s (%d files) sha256=%s", build_id, len(members), checksum)
        return ExportResult(
            build_id=build_id,
            status="PASS",
            export_dir=export_root,
            archive_path=archive_path,
            checksum=checksum,
        )


def export_build(workspaces_dir: Path, build_id: str) -> ExportResult:
    return BuildExporter(workspaces_dir).export(build_id)


def list_files(root: Path) -> List[str]:
    """Every regular file under ``root`` as sorted POSIX relative paths."""
    root = Path(root)
    return sorted(
        path.relative_to(root).as_posix() for path in root.rglob("*") if path.is_file()
    )


def copy_tree(source: Path, target: Path) -> None:
    for relative in list_files(source):
        destination = target / relative
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source / relative, destination)


def hash_directory(root: Path) -> str:
    """Single digest over ``path:sha256`` lines of every file under ``root``."""
    root = Path(root)
    if not root.is_dir():
        return hash_bytes(b"")
    lines = [f"{relative}:{hash_file(root / relative)}" for relative in list_files(root)]
    return hash_bytes("\n".join(lines).encode("utf-8"))


def write_checksum_manifest(root: Path) -> str:
    """Write ``checksum.sha256`` (sorted ``<hash>  <path>`` lines); return its own digest."""
    root = Path(root)
    lines = [
        f"{hash_file(root / relative)}  {relative}"
        for relative in list_files(root)
        if relative != CHECKSUM_FILENAME
    ]
    content = "\n".join(lines)
    (root / CHECKSUM_FILENAME).write_text(content, encoding="utf-8")
    return hash_bytes(content.encode("utf-8"))


def build_manifest_for_export(build_id: str, workspace: Path) -> Dict[str, Any]:
    reports_dir = workspace / "reports"
    manifest: Dict[str, Any] = {"buildId": build_id}

    resolution = _read_json(reports_dir / "template-resolution.json")
    if resolution is not None:
        resolved = resolution.get("resolvedTemplateId")
        if isinstance(resolved, str):
            manifest["templateId"] = resolved.split("@", 1)[0]
        if isinstance(resolution.get("versionUsed"), str):
            manifest["templateVersionUsed"] = resolution["versionUsed"]

    spec_hash_path = workspace / "artifacts" / "gamespec.hash"
    if spec_hash_path.is_file():
        manifest["specHash"] = spec_hash_path.read_text(encoding="utf-8").strip()

    manifest["hashes"] = {
        "assembly": hash_directory(workspace / "assembly"),
        "reports": hash_directory(reports_dir),
    }
    return manifest


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as exc:
        raise ExportError(f"Invalid JSON in {path.name}: {exc}") from exc
    return payload if isinstance(payload, dict) else None


__all__ = [
    "BuildExporter",
    "CHECKSUM_FILENAME",
    "ExportError",
    "ExportResult",
    "build_manifest_for_export",
    "copy_tree",
    "export_build",
    "hash_directory",
    "list_files",
    "write_checksum_manifest",
]
