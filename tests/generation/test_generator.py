"""Tests for template-backed module generation."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from gamepipe.generation import GenerationError, ModuleGenerator, ModuleRequest, generate_module
from gamepipe.manifests import check_manifest_integrity, validate_writes
from gamepipe.models import WriteOperation
from gamepipe.safety import SourceSafetyScanner


def _request(**module: object) -> dict:
    payload = {"module": {"id": "combat", "kind": "system", **module}}
    payload["provides"] = {"events": ["combat.won"]}
    payload["consumes"] = {"state": ["economy.gold"]}
    return payload


def test_system_module_gets_rendered_entry() -> None:
    module = generate_module(_request())

    manifest = module.manifest
    assert manifest.entry_path == "modules/combat/index.ts"
    assert manifest.template_id == "idle-rpg-base"
    assert [item.path for item in module.files] == ["modules/combat/index.ts"]
    entry = module.files[0]
    assert entry.module_id == "combat"
    assert "export function combat(" in entry.content
    assert '"combat.won"' in entry.content
    assert manifest.files[0].role == "logic"
    assert manifest.files[0].content_hash == hashlib.sha256(entry.content.encode("utf-8")).hexdigest()


@pytest.mark.parametrize(("kind", "role", "marker"), [("renderer", "render", "renderHud"), ("ui", "ui", "HudView")])
def test_role_and_template_follow_kind(kind: str, role: str, marker: str) -> None:
    module = generate_module({"module": {"id": "hud", "kind": kind}})

    assert module.manifest.files[0].role == role
    assert marker in module.files[0].content


@pytest.mark.parametrize("kind", ["system", "renderer", "ui"])
def test_rendered_entries_are_clean_and_confined(kind: str) -> None:
    module = generate_module({"module": {"id": "loot-table", "kind": kind}})

    outcome = SourceSafetyScanner().scan_with_status(module.files)
    assert outcome.ok, (outcome.unparsable, outcome.violations)
    assert check_manifest_integrity([module.manifest]) == []
    operations = [WriteOperation(item.module_id or "", item.path) for item in module.files]
    assert validate_writes([module.manifest], operations) == []


def test_supplied_files_are_normalised_and_sorted() -> None:
    module = generate_module(
        {
            "module": {"id": "shop", "kind": "ui", "entry": "modules/shop/index.ts"},
            "files": [
                {"path": "modules\\shop\\view.ts", "content": "export const v = 1;\n"},
                {"path": "./modules/shop/index.ts", "content": "export * from './view';\n"},
            ],
        }
    )

    assert [item.path for item in module.files] == ["modules/shop/index.ts", "modules/shop/view.ts"]
    assert module.files[0].content == "export * from './view';\n"
    assert {item.role for item in module.manifest.files} == {"ui"}


def test_generation_id_is_deterministic() -> None:
    first = generate_module(_request())
    second = generate_module(_request())

    assert first.generation_id == second.generation_id
    assert first.generation_id.startswith("gen-")
    assert first.files == second.files


@pytest.mark.parametrize(
    "payload",
    [
        {"module": {"id": "a", "kind": "system", "entry": "../a.ts"}},
        {"module": {"id": "a", "kind": "system"}, "files": [{"path": "/abs.ts", "content": ""}]},
    ],
)
def test_unsafe_paths_raise(payload: dict) -> None:
    with pytest.raises(GenerationError, match="invalido"):
        generate_module(payload)


def test_missing_kind_raises() -> None:
    with pytest.raises(GenerationError, match="module.kind"):
        ModuleRequest.from_dict({"module": {"id": "a"}})


def test_custom_templates_override_defaults(tmp_path: Path) -> None:
    (tmp_path / "system.ts.j2").write_text("export const custom = {{ module_id | tojson }};\n", encoding="utf-8")

    module = ModuleGenerator(tmp_path).generate(ModuleRequest.from_dict(_request()))

    assert module.files[0].content == 'export const custom = "combat";\n'
