"""Versioned, pure spec migrations keyed by template id."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional, Tuple

from ..logging import get_logger
from ..models import MigrationReport

# A patch receives a private deep copy of the spec, edits it in place and
# returns the human-readable steps it applied.
MigrationPatch = Callable[[MutableMapping[str, Any]], List[str]]
MigrationRegistry = Mapping[str, Mapping[Tuple[str, str], MigrationPatch]]


class MigrationError(RuntimeError):
    """Raised for unknown templates or unregistered version pairs."""


@dataclass(frozen=True)
class MigrationResult:
    spec: Mapping[str, Any]
    report: MigrationReport


class MigrationEngine:
    """Applies registered template migrations without mutating the caller's spec."""

    def __init__(self, registry: Optional[MigrationRegistry] = None) -> None:
        self.registry: MigrationRegistry = registry if registry is not None else default_registry()
        self.logger = get_logger("migrations")

    def supports(self, template_id: str) -> bool:
        return template_id in self.registry

    def migrate(
        self,
        spec: Mapping[str, Any],
        template_id: str,
        from_version: str,
        to_version: str,
    ) -> MigrationResult:
        patches = self.registry.get(template_id)
        if patches is None:
            raise MigrationError(f"Migration not supported for template: {template_id}")

        if from_version == to_version:
            return MigrationResult(spec=spec, report=MigrationReport(from_version, to_version))

        patch = patches.get((from_version, to_version))
        if patch is None:
            raise MigrationError(
                f"Migration not supported for {template_id}: {from_version} -> {to_version}"
            )

        migrated = copy.deepcopy(dict(spec))
        steps = patch(migrated)
        self.logger.info(
            "Migrated %s %s -> %s (%d step(s))",
            template_id,
            from_version,
            to_version,
            len(steps),
        )
        return MigrationResult(
            spec=migrated,
            report=MigrationReport(from_version, to_version, tuple(steps)),
        )


def migrate_spec(
    spec: Mapping[str, Any], template_id: str, from_version: str, to_version: str
) -> MigrationResult:
    return MigrationEngine().migrate(spec, template_id, from_version, to_version)


def default_registry() -> Dict[str, Dict[Tuple[str, str], MigrationPatch]]:
    """Built-in migrations, one entry per known template."""
    from . import idle_rpg_base

    return {idle_rpg_base.TEMPLATE_ID: dict(idle_rpg_base.MIGRATIONS)}


__all__ = [
    "MigrationEngine",
    "MigrationError",
    "MigrationPatch",
    "MigrationRegistry",
    "MigrationResult",
    "default_registry",
    "migrate_spec",
]
