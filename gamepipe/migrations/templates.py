"""Known templates and their ordered version history."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

TEMPLATE_VERSIONS: Dict[str, Tuple[str, ...]] = {
    "idle-rpg-base": ("1.1", "1.2"),
}


def parse_template_id(value: str) -> Tuple[str, Optional[str]]:
    """Split ``name@version``; the version is None when absent."""
    name, separator, version = value.partition("@")
    if not separator or not version:
        return name, None
    return name, version


def versioned_template_id(name: str, version: str) -> str:
    return f"{name}@{version}"


def latest_version(template_id: str) -> Optional[str]:
    versions = TEMPLATE_VERSIONS.get(parse_template_id(template_id)[0])
    return versions[-1] if versions else None


def is_known_version(template_id: str, version: str) -> bool:
    return version in TEMPLATE_VERSIONS.get(parse_template_id(template_id)[0], ())


__all__ = [
    "TEMPLATE_VERSIONS",
    "is_known_version",
    "latest_version",
    "parse_template_id",
    "versioned_template_id",
]
