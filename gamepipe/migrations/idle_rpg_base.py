"""Migrations for the ``idle-rpg-base`` template."""

from __future__ import annotations

from typing import Any, List, MutableMapping

from .engine import MigrationError

TEMPLATE_ID = "idle-rpg-base"

INVENTORY_STEP = "set systems.inventory.enabled=false"


def migrate_1_1_to_1_2(spec: MutableMapping[str, Any]) -> List[str]:
    # 1.2 made the inventory toggle explicit.
    systems = spec.setdefault("systems", {})
    if not isinstance(systems, MutableMapping):
        raise MigrationError("systems must be an object to migrate idle-rpg-base 1.1 -> 1.2")

    inventory = systems.get("inventory")
    if not isinstance(inventory, MutableMapping):
        systems["inventory"] = {"enabled": False}
        return [INVENTORY_STEP]
    if not isinstance(inventory.get("enabled"), bool):
        inventory["enabled"] = False
        return [INVENTORY_STEP]
    return []


MIGRATIONS = {("1.1", "1.2"): migrate_1_1_to_1_2}

__all__ = ["INVENTORY_STEP", "MIGRATIONS", "TEMPLATE_ID", "migrate_1_1_to_1_2"]
