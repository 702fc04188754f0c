"""Tests for the source safety scanner."""

from __future__ import annotations

import pytest

from gamepipe.models import GeneratedFile
from gamepipe.safety import DEFAULT_POLICY, SourceSafetyScanner, scan_files


def _scan(content: str, path: str = "modules/a/index.ts") -> list[str]:
    return [
        violation.describe()
        for violation in scan_files([GeneratedFile(path=path, content=content)])
    ]


def test_clean_module_has_no_violations() -> None:
    source = """
import { clamp } from "./math";

export function tick(state: { gold: number }): { gold: number } {
  return { gold: clamp(state.gold + 1, 0, 100) };
}
"""
    assert _scan(source) == []


@pytest.mark.parametrize(
    ("source", "message"),
    [
        ('import fs from "fs";\n', "Import prohibido: fs"),
        ('import { spawn } from "child_process";\n', "Import prohibido: child_process"),
        ('import * as p from "node:path";\n', "Import prohibido: node:path"),
        ('import "node:crypto";\n', "Import prohibido: node:crypto"),
        ('export * from "os";\n', "Import prohibido: os"),
        ('import fs = require("fs");\n', "Import prohibido: fs"),
        ('eval("1 + 1");\n', "API prohibida: eval()"),
        ('fetch("https://example.com");\n', "API prohibida: fetch()"),
        ('const h = new Function("return 1");\n', "API prohibida: new Function()"),
        ('const m = import("./lazy");\n', "Import dinamico prohibido"),
    ],
)
def test_denied_capabilities_are_reported(source: str, message: str) -> None:
    findings = _scan(source)
    assert any(finding.endswith(message) for finding in findings), findings


def test_escaped_specifier_is_decoded_before_matching() -> None:
    assert _scan('import fs from "\\u0066s";\n') == ["modules/a/index.ts:1:1 Import prohibido: fs"]


def test_member_calls_are_not_flagged() -> None:
    assert _scan('const api = { eval: (x: string) => x };\napi.eval("ok");\n') == []


def test_violations_report_one_based_character_positions() -> None:
    source = 'const s = "ñ"; eval("1");\n\n  require("x");\n'
    assert _scan(source) == [
        "modules/a/index.ts:1:16 API prohibida: eval()",
        "modules/a/index.ts:3:3 API prohibida: require()",
    ]


def test_nested_calls_are_found_in_source_order() -> None:
    source = """
export function run(): void {
  if (true) {
    eval("a");
  }
}
const later = new Function("b");
"""
    findings = _scan(source)
    assert [finding.split(" ", 1)[1] for finding in findings] == [
        "API prohibida: eval()",
        "API prohibida: new Function()",
    ]


def test_tsx_files_use_the_jsx_grammar() -> None:
    source = 'export const View = () => <div>{eval("x")}</div>;\n'
    findings = _scan(source, path="modules/ui/view.tsx")
    assert findings == ["modules/ui/view.tsx:1:33 API prohibida: eval()"]


def test_unparsable_files_are_reported_without_raising() -> None:
    scanner = SourceSafetyScanner()
    outcome = scanner.scan_with_status(
        [
            GeneratedFile(path="modules/a/broken.ts", content="export const = ;\n"),
            GeneratedFile(path="modules/a/ok.ts", content='eval("x");\n'),
        ]
    )
    assert outcome.unparsable == ["modules/a/broken.ts"]
    assert [violation.file for violation in outcome.violations] == ["modules/a/ok.ts"]
    assert outcome.ok is False


def test_mapping_inputs_are_accepted() -> None:
    findings = SourceSafetyScanner().scan([{"path": "a.ts", "sourceText": 'eval("x")'}])
    assert [violation.message for violation in findings] == ["API prohibida: eval()"]


def test_extended_policy_adds_entries() -> None:
    policy = DEFAULT_POLICY.extended(calls=["setTimeout"], imports=["lodash"])
    findings = scan_files(
        [GeneratedFile(path="a.ts", content='import _ from "lodash";\nsetTimeout(() => 1, 5);\n')],
        policy,
    )
    assert [violation.message for violation in findings] == [
        "Import prohibido: lodash",
        "API prohibida: setTimeout()",
    ]
    assert not DEFAULT_POLICY.is_forbidden_call("setTimeout")
