"""Structural checks over a parsed manifest set, run before graph resolution."""

from __future__ import annotations

from typing import List, Sequence, Set

from ..models import FeatureManifest
from ..paths import is_safe_relative_path, is_within_root, normalize_path


def check_manifest_integrity(manifests: Sequence[FeatureManifest]) -> List[str]:
    """Return integrity errors; an empty list means the set is structurally sound."""
    errors: List[str] = []
    seen: Set[str] = set()

    for manifest in manifests:
        if manifest.module_id in seen:
            errors.append(f"Module duplicado: {manifest.module_id}")
        seen.add(manifest.module_id)

        entry = normalize_path(manifest.entry_path)
        if not is_safe_relative_path(entry):
            errors.append(f"Entry invalido en manifest {manifest.module_id}: {manifest.entry_path}")
            continue

        root = manifest.root
        for label, paths in (
            ("files", [item.path for item in manifest.files]),
            ("assets", [asset.path for asset in manifest.assets]),
        ):
            for raw in paths:
                normalized = normalize_path(raw)
                if not is_safe_relative_path(normalized):
                    errors.append(f"Path invalido en {label}: {raw}")
                elif not is_within_root(normalized, root):
                    errors.append(
                        f"Archivo fuera de la raiz del modulo {manifest.module_id}: {normalized}"
                    )

    return errors


__all__ = ["check_manifest_integrity"]
