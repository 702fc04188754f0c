"""Tree-sitter powered scanner for denied host capabilities in generated modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Union

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

from ..logging import get_logger
from ..models import GeneratedFile, Violation
from .policy import DEFAULT_POLICY, SafetyPolicy

_LANGUAGES = {
    "typescript": Language(tree_sitter_typescript.language_typescript()),
    "tsx": Language(tree_sitter_typescript.language_tsx()),
}

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}

ScanInput = Union[GeneratedFile, Mapping[str, str]]


@dataclass
class ScanOutcome:
    """Violations plus the files that could not be parsed cleanly."""

    violations: List[Violation] = field(default_factory=list)
    unparsable: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations and not self.unparsable


class SourceSafetyScanner:
    """Walks each file's syntax tree and reports denied imports, calls and constructors."""

    def __init__(self, policy: SafetyPolicy | None = None) -> None:
        self.policy = policy or DEFAULT_POLICY
        self._parsers: Dict[str, Parser] = {}
        self.logger = get_logger("safety")

    def scan(self, files: Iterable[ScanInput]) -> List[Violation]:
        """Return every violation across ``files``; never raises on malformed text."""
        return self.scan_with_status(files).violations

    def scan_with_status(self, files: Iterable[ScanInput]) -> ScanOutcome:
        outcome = ScanOutcome()
        for item in files:
            path, content = _unpack(item)
            source_bytes = content.encode("utf-8")
            tree = self._get_parser(_language_for_file(path)).parse(source_bytes)
            if tree.root_node.has_error:
                # A generator that emitted broken text is the failure point; the
                # orchestrator blocks on ``unparsable`` instead.
                self.logger.debug("Syntax errors in %s; skipping capability scan", path)
                outcome.unparsable.append(path)
                continue
            outcome.violations.extend(self._scan_tree(path, tree.root_node, source_bytes))
        return outcome

    def _get_parser(self, language_key: str) -> Parser:
        parser = self._parsers.get(language_key)
        if parser is None:
            parser = Parser(_LANGUAGES[language_key])
            self._parsers[language_key] = parser
        return parser

    def _scan_tree(self, path: str, root: Node, source_bytes: bytes) -> Iterator[Violation]:
        for node in _walk(root):
            message = self._check_node(node, source_bytes)
            if message is None:
                continue
            line, column = _position(node, source_bytes)
            yield Violation(file=path, message=message, line=line, column=column)

    def _check_node(self, node: Node, source_bytes: bytes) -> Optional[str]:
        node_type = node.type
        if node_type in {"import_statement", "export_statement"}:
            source = _import_source(node)
            if source is None:
                return None
            specifier = _string_value(source, source_bytes)
            if self.policy.is_forbidden_import(specifier):
                return f"Import prohibido: {specifier}"
            return None

        if node_type == "call_expression":
            callee = node.child_by_field_name("function")
            if callee is None:
                return None
            if callee.type == "import":
                return "Import dinamico prohibido"
            if callee.type == "identifier":
                name = _node_text(callee, source_bytes)
                if self.policy.is_forbidden_call(name):
                    return f"API prohibida: {name}()"
            return None

        if node_type == "new_expression":
            constructor = node.child_by_field_name("constructor")
            if constructor is not None and constructor.type == "identifier":
                name = _node_text(constructor, source_bytes)
                if self.policy.is_forbidden_constructor(name):
                    return f"API prohibida: new {name}()"
        return None


def scan_files(files: Iterable[ScanInput], policy: SafetyPolicy | None = None) -> List[Violation]:
    """Convenience wrapper scanning ``files`` with a one-off scanner."""
    return SourceSafetyScanner(policy).scan(files)


def _unpack(item: ScanInput) -> tuple[str, str]:
    if isinstance(item, GeneratedFile):
        return item.path, item.content
    return str(item["path"]), str(item.get("content", item.get("sourceText", "")))


def _language_for_file(path: str) -> str:
    lower = path.lower()
    if lower.endswith((".ts", ".mts", ".cts")):
        return "typescript"
    return "tsx"


def _walk(root: Node) -> Iterator[Node]:
    """Pre-order traversal, children visited in source order."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _import_source(node: Node) -> Optional[Node]:
    source = node.child_by_field_name("source")
    if source is not None:
        return source
    # import x = require("...")
    for child in node.children:
        if child.type == "import_require_clause":
            return child.child_by_field_name("source")
    return None


def _node_text(node: Node, source_bytes: bytes) -> str:
    return source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _string_value(node: Node, source_bytes: bytes) -> str:
    if node.type != "string":
        return _node_text(node, source_bytes)
    parts: List[str] = []
    for child in node.named_children:
        text = _node_text(child, source_bytes)
        if child.type == "escape_sequence":
            parts.append(_decode_escape(text))
        else:
            parts.append(text)
    return "".join(parts)


def _decode_escape(sequence: str) -> str:
    body = sequence[1:]
    try:
        if body.startswith("u{") and body.endswith("}"):
            return chr(int(body[2:-1], 16))
        if body.startswith("u") and len(body) == 5:
            return chr(int(body[1:], 16))
        if body.startswith("x") and len(body) == 3:
            return chr(int(body[1:], 16))
    except ValueError:
        return body
    if body in _SIMPLE_ESCAPES:
        return _SIMPLE_ESCAPES[body]
    if body.startswith(("\n", "\r", "\u2028", "\u2029")):
        return ""
    return body


def _position(node: Node, source_bytes: bytes) -> tuple[int, int]:
    """1-based line and character column of ``node``'s start."""
    row, byte_column = node.start_point
    line_start = node.start_byte - byte_column
    prefix = source_bytes[line_start : node.start_byte].decode("utf-8", errors="replace")
    return row + 1, len(prefix) + 1


__all__ = ["ScanOutcome", "SourceSafetyScanner", "scan_files"]
