"""Path normalisation helpers shared by the guard, generator and workspace layout."""

from __future__ import annotations

import posixpath
import re
from pathlib import Path

_LEADING_CURRENT_DIR = re.compile(r"^(?:\./+)+")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")
_BUILD_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def normalize_path(value: str) -> str:
    """Convert backslashes to forward slashes and strip leading ``./`` segments."""
    return _LEADING_CURRENT_DIR.sub("", value.replace("\\", "/"))


def is_safe_relative_path(value: str) -> bool:
    """Return True for non-empty relative paths without parent-traversal segments."""
    if not value:
        return False
    if value.startswith("/") or value.startswith("\\") or _DRIVE_PREFIX.match(value):
        return False
    return ".." not in value.replace("\\", "/").split("/")


def module_root(entry_path: str) -> str:
    """Directory containing ``entry_path``; empty when the entry sits at the logical root."""
    directory = posixpath.dirname(normalize_path(entry_path))
    return "" if directory in {"", "."} else directory


def is_within_root(path: str, root: str) -> bool:
    if not root:
        return True
    return path.startswith(f"{root}/")


def workspace_dir(workspaces_root: Path, build_id: str) -> Path:
    """Return the workspace directory owned by ``build_id``."""
    if not _BUILD_ID_PATTERN.match(build_id) or ".." in build_id:
        raise ValueError(f"Invalid build id: {build_id!r}")
    return Path(workspaces_root) / build_id


__all__ = [
    "is_safe_relative_path",
    "is_within_root",
    "module_root",
    "normalize_path",
    "workspace_dir",
]
