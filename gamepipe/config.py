"""Configuration loading for gamepipe (.gamepipe.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .manifests.resolver import DEFAULT_ALLOWLIST
from .safety.policy import DEFAULT_POLICY, SafetyPolicy

CONFIG_FILENAME = ".gamepipe.yml"
WORKSPACES_ENV = "GAMEPIPE_WORKSPACES"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ExportConfig:
    """Whether passing builds are packaged automatically."""

    enabled: bool = True


@dataclass
class SafetyConfig:
    """Entries added on top of the built-in deny tables."""

    extra_imports: List[str] = field(default_factory=list)
    extra_import_prefixes: List[str] = field(default_factory=list)
    extra_calls: List[str] = field(default_factory=list)
    extra_constructors: List[str] = field(default_factory=list)


@dataclass
class PipelineConfig:
    """Represents the settings defined in .gamepipe.yml."""

    root: Path
    workspaces_dir: Path
    allowlist_prefixes: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWLIST))
    migrate_to_latest: bool = True
    export: ExportConfig = field(default_factory=ExportConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    templates_dir: Optional[Path] = None

    def safety_policy(self) -> SafetyPolicy:
        return DEFAULT_POLICY.extended(
            imports=self.safety.extra_imports,
            import_prefixes=self.safety.extra_import_prefixes,
            calls=self.safety.extra_calls,
            constructors=self.safety.extra_constructors,
        )

    @classmethod
    def for_root(cls, root: Path) -> "PipelineConfig":
        root = Path(root).resolve()
        return cls(root=root, workspaces_dir=_workspaces_override(root) or root / "workspaces")


def load_config(config_path: Path) -> PipelineConfig:
    """Load configuration from disk; a missing file yields the defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return PipelineConfig.for_root(root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    workspaces_str = _as_str(data.get("workspaces_dir"))
    workspaces_dir = _workspaces_override(root) or (
        root / workspaces_str if workspaces_str else root / "workspaces"
    )

    graph_data = _as_dict(data.get("graph"))
    allowlist = (
        _as_str_list(graph_data["allowlist_prefixes"])
        if "allowlist_prefixes" in graph_data
        else list(DEFAULT_ALLOWLIST)
    )

    migrations_data = _as_dict(data.get("migrations"))
    migrate_to_latest = _as_bool(migrations_data.get("migrate_to_latest"))

    export_data = _as_dict(data.get("export"))
    export_enabled = _as_bool(export_data.get("enabled"))

    safety_data = _as_dict(data.get("safety"))
    safety = SafetyConfig(
        extra_imports=_as_str_list(safety_data.get("forbidden_imports")),
        extra_import_prefixes=_as_str_list(safety_data.get("forbidden_import_prefixes")),
        extra_calls=_as_str_list(safety_data.get("forbidden_calls")),
        extra_constructors=_as_str_list(safety_data.get("forbidden_constructors")),
    )

    generation_data = _as_dict(data.get("generation"))
    templates_dir_str = _as_str(generation_data.get("templates_dir"))

    return PipelineConfig(
        root=root,
        workspaces_dir=workspaces_dir,
        allowlist_prefixes=allowlist,
        migrate_to_latest=True if migrate_to_latest is None else migrate_to_latest,
        export=ExportConfig(enabled=True if export_enabled is None else export_enabled),
        safety=safety,
        templates_dir=root / templates_dir_str if templates_dir_str else None,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = Path(config_path).expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _workspaces_override(root: Path) -> Optional[Path]:
    value = os.environ.get(WORKSPACES_ENV)
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "ExportConfig",
    "PipelineConfig",
    "SafetyConfig",
    "WORKSPACES_ENV",
    "load_config",
]
