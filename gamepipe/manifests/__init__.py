"""Manifest graph resolution, integrity checks and write confinement."""

from .guard import IntegrationResult, WriteEscapeError, WritePathGuard, apply_writes, validate_writes
from .integrity import check_manifest_integrity
from .resolver import DEFAULT_ALLOWLIST, ManifestGraphResolver, build_manifest_graph, detect_cycles

__all__ = [
    "DEFAULT_ALLOWLIST",
    "IntegrationResult",
    "ManifestGraphResolver",
    "WriteEscapeError",
    "WritePathGuard",
    "apply_writes",
    "build_manifest_graph",
    "check_manifest_integrity",
    "detect_cycles",
    "validate_writes",
]
