"""Game spec normalisation, hashing and referential integrity checks."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

# (section path, label used in findings)
_UNIQUE_ID_SECTIONS: Tuple[Tuple[Tuple[str, str], str], ...] = (
    (("content", "heroes"), "Heroes"),
    (("content", "enemies"), "Enemies"),
    (("content", "stages"), "Stages"),
    (("content", "items"), "Items"),
    (("ui", "screens"), "Screens"),
)


def stable_normalize(value: Any) -> Any:
    """Recursively sort mapping keys so equal specs serialise identically."""
    if isinstance(value, Mapping):
        return {key: stable_normalize(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [stable_normalize(item) for item in value]
    return value


def normalized_json(value: Any) -> str:
    return json.dumps(stable_normalize(value), indent=2, ensure_ascii=False)


def spec_hash(spec: Mapping[str, Any]) -> str:
    return hashlib.sha256(normalized_json(spec).encode("utf-8")).hexdigest()


def check_spec_integrity(spec: Mapping[str, Any]) -> List[str]:
    """Return duplicate-id and dangling enemy reference findings for ``spec``."""
    errors: List[str] = []
    for (section, key), label in _UNIQUE_ID_SECTIONS:
        duplicates = _duplicate_ids(_records(spec, section, key))
        if duplicates:
            errors.append(f"{label} duplicados: {', '.join(duplicates)}")

    enemy_ids = {_record_id(enemy) for enemy in _records(spec, "content", "enemies")}
    for stage in _records(spec, "content", "stages"):
        enemies = stage.get("enemies")
        if not isinstance(enemies, list):
            continue
        for enemy_id in enemies:
            if not isinstance(enemy_id, (str, int)) or enemy_id not in enemy_ids:
                errors.append(
                    f"Stage {_record_id(stage)} referencia enemy inexistente: {enemy_id}"
                )
    return errors


def _records(spec: Mapping[str, Any], section: str, key: str) -> List[Mapping[str, Any]]:
    container = spec.get(section)
    if not isinstance(container, Mapping):
        return []
    items = container.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, Mapping)]


def _record_id(record: Mapping[str, Any]) -> Any:
    value = record.get("id")
    return value if isinstance(value, (str, int)) else None


def _duplicate_ids(records: Iterable[Mapping[str, Any]]) -> Sequence[str]:
    seen = set()
    duplicates: Dict[Any, None] = {}
    for record in records:
        record_id = _record_id(record)
        if record_id is None:
            continue
        if record_id in seen:
            duplicates[record_id] = None
        seen.add(record_id)
    return [str(item) for item in duplicates]


__all__ = [
    "check_spec_integrity",
    "normalized_json",
    "spec_hash",
    "stable_normalize",
]
