"""Deny-list policy consumed by the source safety scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Tuple

_HOST_MODULES = (
    "fs",
    "fs/promises",
    "child_process",
    "worker_threads",
    "vm",
    "net",
    "tls",
    "http",
    "https",
    "os",
    "path",
)


@dataclass(frozen=True)
class SafetyPolicy:
    """Closed tables of host capabilities generated code may not reference."""

    forbidden_imports: FrozenSet[str] = field(default_factory=frozenset)
    forbidden_import_prefixes: Tuple[str, ...] = ()
    forbidden_calls: FrozenSet[str] = field(default_factory=frozenset)
    forbidden_constructors: FrozenSet[str] = field(default_factory=frozenset)

    def is_forbidden_import(self, specifier: str) -> bool:
        if specifier in self.forbidden_imports:
            return True
        return any(specifier.startswith(prefix) for prefix in self.forbidden_import_prefixes)

    def is_forbidden_call(self, name: str) -> bool:
        return name in self.forbidden_calls

    def is_forbidden_constructor(self, name: str) -> bool:
        return name in self.forbidden_constructors

    def extended(
        self,
        *,
        imports: Iterable[str] = (),
        import_prefixes: Iterable[str] = (),
        calls: Iterable[str] = (),
        constructors: Iterable[str] = (),
    ) -> "SafetyPolicy":
        """Return a new policy with additional entries; ``self`` is left untouched."""
        prefixes = list(self.forbidden_import_prefixes)
        prefixes.extend(prefix for prefix in import_prefixes if prefix not in prefixes)
        return SafetyPolicy(
            forbidden_imports=self.forbidden_imports | frozenset(imports),
            forbidden_import_prefixes=tuple(prefixes),
            forbidden_calls=self.forbidden_calls | frozenset(calls),
            forbidden_constructors=self.forbidden_constructors | frozenset(constructors),
        )


DEFAULT_POLICY = SafetyPolicy(
    forbidden_imports=frozenset(_HOST_MODULES) | frozenset(f"node:{name}" for name in _HOST_MODULES),
    forbidden_import_prefixes=("node:",),
    forbidden_calls=frozenset({"eval", "Function", "fetch", "require"}),
    forbidden_constructors=frozenset({"Function"}),
)


__all__ = ["DEFAULT_POLICY", "SafetyPolicy"]
