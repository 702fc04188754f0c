"""Build pipeline orchestration: validate, assemble and package one build."""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .config import PipelineConfig
from .gamespec import check_spec_integrity, normalized_json, spec_hash, stable_normalize
from .logging import build_file_handler, get_logger
from .manifests.guard import WriteEscapeError, WritePathGuard
from .manifests.integrity import check_manifest_integrity
from .manifests.resolver import ManifestGraphResolver
from .migrations import (
    MigrationEngine,
    MigrationError,
    latest_version,
    parse_template_id,
    versioned_template_id,
)
from .migrations.templates import is_known_version
from .models import (
    BuildReport,
    FeatureManifest,
    GeneratedFile,
    ManifestError,
    ManifestGraph,
    StepResult,
    WriteOperation,
)
from .packaging.archive import ArchiveError
from .packaging.exporter import BuildExporter, ExportError
from .paths import workspace_dir
from .safety.scanner import SourceSafetyScanner

WORKSPACE_SUBDIRS = ("artifacts", "logs", "reports", "assembly")
# Cleared at the start of every run; logs/ is appended to.
RESET_SUBDIRS = ("artifacts", "reports", "assembly", "export")

FATAL_ERRORS: Tuple[type, ...] = (
    ArchiveError,
    ExportError,
    MigrationError,
    WriteEscapeError,
    OSError,
)


class PipelineError(RuntimeError):
    """Raised when a build aborts for a reason other than a validation finding."""

    def __init__(self, message: str, report: BuildReport | None = None) -> None:
        super().__init__(message)
        self.report = report


@dataclass
class BuildRequest:
    """Everything one build consumes: the game spec plus generated modules."""

    spec: Mapping[str, Any]
    manifests: List[Any] = field(default_factory=list)
    files: List[GeneratedFile] = field(default_factory=list)
    build_id: Optional[str] = None
    export: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BuildRequest":
        spec = data.get("spec")
        if not isinstance(spec, Mapping):
            raise PipelineError("Build request requires a spec object")
        manifests = data.get("manifests") or []
        files = data.get("files") or []
        if not isinstance(manifests, list) or not isinstance(files, list):
            raise PipelineError("manifests and files must be lists")
        build_id = data.get("buildId")
        export = data.get("export")
        return cls(
            spec=spec,
            manifests=list(manifests),
            files=[
                item if isinstance(item, GeneratedFile) else GeneratedFile.from_dict(item)
                for item in files
                if isinstance(item, (GeneratedFile, Mapping))
            ],
            build_id=build_id if isinstance(build_id, str) and build_id else None,
            export=export if isinstance(export, bool) else None,
        )

    def request_hash(self) -> str:
        payload = {
            "spec": self.spec,
            "manifests": self.manifests,
            "files": [item.to_dict() for item in self.files],
        }
        canonical = json.dumps(stable_normalize(payload), sort_keys=True)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def resolved_build_id(self) -> str:
        return self.build_id or f"build-{self.request_hash()[:12]}"


class PipelineOrchestrator:
    """Runs every validation stage for a build and assembles it when nothing blocks."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        scanner: SourceSafetyScanner | None = None,
        resolver: ManifestGraphResolver | None = None,
        guard: WritePathGuard | None = None,
        migrations: MigrationEngine | None = None,
        exporter: BuildExporter | None = None,
    ) -> None:
        self.config = config or PipelineConfig.for_root(Path.cwd())
        self.scanner = scanner or SourceSafetyScanner(self.config.safety_policy())
        self.resolver = resolver or ManifestGraphResolver(self.config.allowlist_prefixes)
        self.guard = guard or WritePathGuard()
        self.migrations = migrations or MigrationEngine()
        self.exporter = exporter or BuildExporter(self.config.workspaces_dir)
        self.logger = get_logger("orchestrator")

    def run_build(self, request: BuildRequest) -> BuildReport:
        """Validate, assemble and (optionally) export one build.

        Validation findings never raise; they block steps and the report is
        FAIL. Fatal errors write a FAIL report with an ``error`` field and are
        re-raised as :class:`PipelineError`.
        """
        build_id = request.resolved_build_id()
        try:
            workspace = workspace_dir(self.config.workspaces_dir, build_id)
        except ValueError as exc:
            raise PipelineError(str(exc)) from exc

        report = BuildReport(build_id=build_id)
        handler = None
        try:
            for name in RESET_SUBDIRS:
                shutil.rmtree(workspace / name, ignore_errors=True)
            for name in WORKSPACE_SUBDIRS:
                (workspace / name).mkdir(parents=True, exist_ok=True)
            handler = build_file_handler(
                workspace / "logs" / "pipeline.log", thread_id=threading.get_ident()
            )
            get_logger().addHandler(handler)
            self.logger.info("Starting build %s", build_id)
            self._run_stages(request, report, workspace)
        except FATAL_ERRORS as exc:
            self._log_exception(f"Build {build_id} aborted", exc)
            report.error = f"{type(exc).__name__}: {exc}"
            report.freeze()
            self._write_report_quietly(workspace, report)
            raise PipelineError(f"Build {build_id} aborted: {exc}", report) from exc
        finally:
            if handler is not None:
                get_logger().removeHandler(handler)
                handler.close()

        report.freeze()
        _write_json(workspace / "reports" / "build-report.json", report.to_dict())
        self.logger.info("Build %s finished with status %s", build_id, report.status)
        return report

    def _run_stages(self, request: BuildRequest, report: BuildReport, workspace: Path) -> None:
        reports_dir = workspace / "reports"

        spec = self._migrate_spec(request.spec, report, reports_dir)
        artifacts_dir = workspace / "artifacts"
        (artifacts_dir / "gamespec.normalized.json").write_text(
            normalized_json(spec), encoding="utf-8"
        )
        (artifacts_dir / "gamespec.hash").write_text(spec_hash(spec), encoding="utf-8")

        report.add_step(_step("gamespec.integrity", check_spec_integrity(spec)))

        manifests: List[FeatureManifest] = []
        schema_ok = True
        for index, raw in enumerate(request.manifests):
            step_id = f"feature-manifest.{index}.schema"
            try:
                manifests.append(FeatureManifest.from_dict(raw))
            except ManifestError as exc:
                schema_ok = False
                report.add_step(StepResult.blocked(step_id, exc.errors))
                continue
            report.add_step(StepResult.passed(step_id))
        if schema_ok:
            report.add_step(
                _step("feature-manifest.integrity", check_manifest_integrity(manifests))
            )

        outcome = self.scanner.scan_with_status(request.files)
        report.add_step(
            _step("security.syntax", [f"{path}: syntax error" for path in outcome.unparsable])
        )
        report.add_step(
            _step("security.ast-scan", [violation.describe() for violation in outcome.violations])
        )
        _write_json(
            reports_dir / "security-report.json",
            {
                "ok": outcome.ok,
                "violations": [violation.to_dict() for violation in outcome.violations],
                "unparsable": list(outcome.unparsable),
            },
        )

        if not schema_ok:
            self.logger.info("Skipping graph and integration checks: manifest schema errors")
            return

        graph = self.resolver.build(manifests)
        _write_json(reports_dir / "dependency-graph.json", graph.to_dict())
        report.add_step(_step("feature-manifest.graph", _graph_errors(graph)))

        integration_errors = [
            f"Write sin moduleId: {item.path}" for item in request.files if not item.module_id
        ]
        integration_errors.extend(
            self.guard.validate_writes(
                manifests,
                [
                    WriteOperation(module_id=item.module_id, path=item.path)
                    for item in request.files
                    if item.module_id
                ],
            )
        )
        _write_json(
            reports_dir / "integration-report.json",
            {"ok": not integration_errors, "errors": integration_errors},
        )
        report.add_step(_step("feature-manifest.integration", integration_errors))

        if report.blocked_steps:
            self.logger.info(
                "Build %s blocked at %s",
                report.build_id,
                ", ".join(step.id for step in report.blocked_steps),
            )
            return

        result = self.guard.apply_writes(manifests, request.files, workspace / "assembly")
        report.add_step(_step("assembly.apply", result.errors))
        if not result.ok:
            return

        export_enabled = (
            request.export if request.export is not None else self.config.export.enabled
        )
        if not export_enabled:
            return
        # The exporter only packages workspaces whose written report is PASS.
        _write_json(reports_dir / "build-report.json", report.to_dict())
        exported = self.exporter.export(report.build_id)
        report.checksum = exported.checksum
        report.artifact_path = str(exported.archive_path)

    def _migrate_spec(
        self, spec: Mapping[str, Any], report: BuildReport, reports_dir: Path
    ) -> Mapping[str, Any]:
        engine = spec.get("engine")
        template_value = engine.get("templateId") if isinstance(engine, Mapping) else None
        if not isinstance(template_value, str) or not template_value:
            report.add_step(StepResult.passed("gamespec.migration"))
            return spec

        name, requested_version = parse_template_id(template_value)
        latest = latest_version(name)
        if latest is None:
            report.add_step(
                StepResult.blocked("gamespec.migration", [f"Template desconocido: {name}"])
            )
            return spec
        if requested_version is not None and not is_known_version(name, requested_version):
            report.add_step(
                StepResult.blocked(
                    "gamespec.migration",
                    [f"Version de template desconocida: {template_value}"],
                )
            )
            return spec

        from_version = requested_version or latest
        resolved = spec
        migrated = False
        if self.config.migrate_to_latest and from_version != latest:
            result = self.migrations.migrate(spec, name, from_version, latest)
            resolved = dict(result.spec)
            resolved["engine"] = {
                **dict(resolved.get("engine") or {}),
                "templateId": versioned_template_id(name, latest),
            }
            report.migration = result.report
            migrated = True
        version_used = latest if migrated else from_version

        _write_json(
            reports_dir / "template-resolution.json",
            {
                "requestedTemplateId": template_value,
                "resolvedTemplateId": versioned_template_id(name, version_used),
                "versionUsed": version_used,
                "latestVersion": latest,
                "migrated": migrated,
                "migrationReport": report.migration.to_dict() if migrated else None,
            },
        )
        report.add_step(StepResult.passed("gamespec.migration"))
        return resolved

    def _write_report_quietly(self, workspace: Path, report: BuildReport) -> None:
        try:
            _write_json(workspace / "reports" / "build-report.json", report.to_dict())
        except OSError:
            self.logger.debug("Unable to write failure report", exc_info=True)

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


def run_build(config: PipelineConfig, request: BuildRequest) -> BuildReport:
    return PipelineOrchestrator(config).run_build(request)


def _step(step_id: str, errors: Sequence[str]) -> StepResult:
    return StepResult.blocked(step_id, errors) if errors else StepResult.passed(step_id)


def _graph_errors(graph: ManifestGraph) -> List[str]:
    errors: List[str] = []
    if graph.missing:
        errors.append(f"Dependencias no satisfechas: {len(graph.missing)}")
        errors.extend(
            f"{item.module_id} consume {item.type} sin proveedor: {item.key}"
            for item in graph.missing
        )
    if graph.cycles:
        errors.append(f"Ciclos detectados: {len(graph.cycles)}")
        errors.extend(" -> ".join(cycle) for cycle in graph.cycles)
    return errors


def _write_json(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


__all__ = [
    "BuildRequest",
    "FATAL_ERRORS",
    "PipelineError",
    "PipelineOrchestrator",
    "RESET_SUBDIRS",
    "WORKSPACE_SUBDIRS",
    "run_build",
]
