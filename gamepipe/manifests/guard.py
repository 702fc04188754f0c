"""Write confinement for generated files against their owning manifests."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Set, Tuple

from ..logging import get_logger
from ..models import FeatureManifest, GeneratedFile, WriteOperation
from ..paths import is_safe_relative_path, is_within_root, normalize_path


class WriteEscapeError(RuntimeError):
    """Raised when a validated write still resolves outside the target directory."""


@dataclass
class IntegrationResult:
    ok: bool
    errors: List[str] = field(default_factory=list)
    written: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"ok": self.ok, "errors": list(self.errors)}


class WritePathGuard:
    """Validates and materialises batches of module writes."""

    def __init__(self) -> None:
        self.logger = get_logger("manifests.guard")

    def validate_writes(
        self,
        manifests: Sequence[FeatureManifest],
        operations: Sequence[WriteOperation],
    ) -> List[str]:
        """Return one error per rejected operation; empty means every write is allowed."""
        by_id = {manifest.module_id: manifest for manifest in manifests}
        declared_cache: Dict[str, Set[str]] = {}
        errors: List[str] = []

        for operation in operations:
            manifest = by_id.get(operation.module_id)
            if manifest is None:
                errors.append(f"Write sin manifest: {operation.module_id}")
                continue

            normalized = normalize_path(operation.path)
            if not is_safe_relative_path(normalized):
                errors.append(f"Path invalido: {operation.path}")
                continue

            if not is_within_root(normalized, manifest.root):
                errors.append(f"Path fuera del modulo {manifest.module_id}: {normalized}")
                continue

            declared = declared_cache.get(manifest.module_id)
            if declared is None:
                declared = _declared_paths(manifest)
                declared_cache[manifest.module_id] = declared
            if normalized not in declared:
                errors.append(f"Path no declarado en manifest {manifest.module_id}: {normalized}")

        return errors

    def apply_writes(
        self,
        manifests: Sequence[FeatureManifest],
        files: Sequence[GeneratedFile],
        target_dir: Path,
    ) -> IntegrationResult:
        """Validate the whole batch, then write it in ``moduleId:path`` order.

        Nothing is written unless every file passes validation.
        """
        errors = [f"Write sin moduleId: {item.path}" for item in files if not item.module_id]
        errors.extend(
            self.validate_writes(
                manifests,
                [
                    WriteOperation(module_id=item.module_id, path=item.path)
                    for item in files
                    if item.module_id
                ],
            )
        )
        if errors:
            self.logger.info("Rejected write batch with %d error(s)", len(errors))
            return IntegrationResult(ok=False, errors=errors)

        target_root = Path(target_dir).resolve()
        ordered = sorted(files, key=lambda item: f"{item.module_id}:{normalize_path(item.path)}")
        planned: List[Tuple[Path, GeneratedFile]] = []
        for item in ordered:
            target = (target_root / normalize_path(item.path)).resolve()
            if target == target_root or not target.is_relative_to(target_root):
                raise WriteEscapeError(f"Write fuera del target: {item.path}")
            planned.append((target, item))

        target_root.mkdir(parents=True, exist_ok=True)
        written: List[str] = []
        for target, item in planned:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(item.content, encoding="utf-8")
            written.append(target.relative_to(target_root).as_posix())
        self.logger.debug("Materialised %d file(s) under %s", len(written), target_root)
        return IntegrationResult(ok=True, written=written)


def validate_writes(
    manifests: Sequence[FeatureManifest], operations: Sequence[WriteOperation]
) -> List[str]:
    return WritePathGuard().validate_writes(manifests, operations)


def apply_writes(
    manifests: Sequence[FeatureManifest],
    files: Sequence[GeneratedFile],
    target_dir: Path,
) -> IntegrationResult:
    return WritePathGuard().apply_writes(manifests, files, target_dir)


def _declared_paths(manifest: FeatureManifest) -> Set[str]:
    paths = {normalize_path(item.path) for item in manifest.files}
    paths.update(normalize_path(asset.path) for asset in manifest.assets)
    return paths


__all__ = [
    "IntegrationResult",
    "WriteEscapeError",
    "WritePathGuard",
    "apply_writes",
    "validate_writes",
]
