"""Tests for shared models and path helpers."""

from __future__ import annotations

import pytest

from gamepipe.models import BuildReport, MigrationReport, StepResult
from gamepipe.paths import is_safe_relative_path, module_root, normalize_path, workspace_dir


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("modules\\a\\index.ts", "modules/a/index.ts"),
        ("./././modules/a/index.ts", "modules/a/index.ts"),
        ("modules/a/index.ts", "modules/a/index.ts"),
    ],
)
def test_normalize_path(raw: str, expected: str) -> None:
    assert normalize_path(raw) == expected
    assert normalize_path(normalize_path(raw)) == expected


@pytest.mark.parametrize("value", ["", "/abs.ts", "\\abs.ts", "C:/x.ts", "a/../b.ts", ".."])
def test_unsafe_relative_paths(value: str) -> None:
    assert not is_safe_relative_path(value)


def test_dotted_file_names_are_safe() -> None:
    assert is_safe_relative_path("modules/a/file..name.ts")


def test_module_root_is_entry_directory() -> None:
    assert module_root("modules/a/index.ts") == "modules/a"
    assert module_root("index.ts") == ""


def test_workspace_dir_rejects_traversal(tmp_path) -> None:
    assert workspace_dir(tmp_path, "build-1") == tmp_path / "build-1"
    with pytest.raises(ValueError):
        workspace_dir(tmp_path, "../x")


def test_build_report_status_and_serialisation() -> None:
    report = BuildReport(build_id="b")
    report.add_step(StepResult.passed("one"))
    assert report.status == "PASS"

    report.add_step(StepResult.blocked("two", ["bad thing"]))
    report.migration = MigrationReport("1.1", "1.2", ("step",))

    payload = report.freeze().to_dict()
    assert payload["status"] == "FAIL"
    assert payload["blockedSteps"] == [{"id": "two", "errors": ["bad thing"]}]
    assert payload["migration"]["steps"] == ["step"]
    with pytest.raises(RuntimeError):
        report.add_step(StepResult.passed("three"))
