from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.module_builder import ModuleSetBuilder


@pytest.fixture
def modules(tmp_path: Path) -> ModuleSetBuilder:
    """Provide a manifest/file collector rooted at the pytest tmp_path."""
    return ModuleSetBuilder(tmp_path)


@pytest.fixture(autouse=True)
def _isolate_workspaces_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GAMEPIPE_WORKSPACES", raising=False)
