"""Template-versioned game spec migrations."""

from .engine import (
    MigrationEngine,
    MigrationError,
    MigrationResult,
    default_registry,
    migrate_spec,
)
from .templates import (
    TEMPLATE_VERSIONS,
    latest_version,
    parse_template_id,
    versioned_template_id,
)

__all__ = [
    "MigrationEngine",
    "MigrationError",
    "MigrationResult",
    "TEMPLATE_VERSIONS",
    "default_registry",
    "latest_version",
    "migrate_spec",
    "parse_template_id",
    "versioned_template_id",
]
