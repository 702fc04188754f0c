"""Core data models shared across gamepipe components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .paths import module_root

MANIFEST_VERSION = "1.0"

# (manifest field, dependency type reported in graphs)
CAPABILITY_GROUPS: Tuple[Tuple[str, str], ...] = (
    ("events", "event"),
    ("state", "state"),
    ("commands", "command"),
)

FILE_ROLES = frozenset({"logic", "render", "ui", "asset"})


class ManifestError(RuntimeError):
    """Raised when a feature manifest does not match the expected shape."""

    def __init__(self, message: str, errors: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class ModuleKind(str, Enum):
    """Closed set of generated module kinds."""

    SYSTEM = "system"
    RENDERER = "renderer"
    UI = "ui"

    @classmethod
    def parse(cls, value: object) -> "ModuleKind":
        for kind in cls:
            if kind.value == value:
                return kind
        raise ManifestError(f"module.kind invalido: {value!r}")


@dataclass(frozen=True)
class CapabilitySet:
    """Capability keys grouped by type; duplicates dropped, input order kept."""

    events: Tuple[str, ...] = ()
    state: Tuple[str, ...] = ()
    commands: Tuple[str, ...] = ()

    def keys(self, group: str) -> Tuple[str, ...]:
        return getattr(self, group)

    @classmethod
    def from_dict(cls, data: object, label: str, errors: List[str]) -> "CapabilitySet":
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            errors.append(f"{label} debe ser un objeto")
            return cls()
        values: Dict[str, Tuple[str, ...]] = {}
        for group, _ in CAPABILITY_GROUPS:
            raw = data.get(group, [])
            if raw is None:
                raw = []
            if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
                errors.append(f"{label}.{group} debe ser una lista de strings")
                values[group] = ()
                continue
            values[group] = tuple(dict.fromkeys(raw))
        return cls(**values)

    def to_dict(self) -> Dict[str, List[str]]:
        return {group: list(self.keys(group)) for group, _ in CAPABILITY_GROUPS}


@dataclass(frozen=True)
class ManifestFile:
    path: str
    role: str
    content_hash: str

    def to_dict(self) -> Dict[str, str]:
        return {"path": self.path, "role": self.role, "sha256": self.content_hash}


@dataclass(frozen=True)
class ManifestAsset:
    path: str
    id: Optional[str] = None
    type: Optional[str] = None
    content_hash: Optional[str] = None
    size_bytes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"path": self.path}
        if self.id is not None:
            payload["id"] = self.id
        if self.type is not None:
            payload["type"] = self.type
        if self.content_hash is not None:
            payload["sha256"] = self.content_hash
        if self.size_bytes is not None:
            payload["sizeBytes"] = self.size_bytes
        return payload


@dataclass(frozen=True)
class FeatureManifest:
    """Declarative description of one generated module."""

    module_id: str
    kind: ModuleKind
    entry_path: str
    template_id: str
    name: str = ""
    provides: CapabilitySet = field(default_factory=CapabilitySet)
    consumes: CapabilitySet = field(default_factory=CapabilitySet)
    files: Tuple[ManifestFile, ...] = ()
    assets: Tuple[ManifestAsset, ...] = ()
    version: str = MANIFEST_VERSION
    constraints: Optional[Mapping[str, Any]] = None

    @property
    def root(self) -> str:
        """Write boundary of the module, derived from the entry file's directory."""
        return module_root(self.entry_path)

    @classmethod
    def from_dict(cls, data: object) -> "FeatureManifest":
        """Parse the manifest wire format, collecting every schema problem."""
        if not isinstance(data, Mapping):
            raise ManifestError("Feature Manifest debe ser un objeto")
        errors: List[str] = []

        module = data.get("module")
        if not isinstance(module, Mapping):
            raise ManifestError("module es requerido")
        module_id = _required_str(module, "id", "module.id", errors)
        entry = _required_str(module, "entry", "module.entry", errors)
        kind: Optional[ModuleKind] = None
        try:
            kind = ModuleKind.parse(module.get("kind"))
        except ManifestError as exc:
            errors.append(str(exc))
        template_id = module.get("templateId")
        if template_id is not None and not isinstance(template_id, str):
            errors.append("module.templateId debe ser string")
            template_id = None
        name = module.get("name")

        provides = CapabilitySet.from_dict(data.get("provides"), "provides", errors)
        consumes = CapabilitySet.from_dict(data.get("consumes"), "consumes", errors)
        files = _parse_files(data.get("files"), errors)
        assets = _parse_assets(data.get("assets"), errors)

        constraints = data.get("constraints")
        if constraints is not None and not isinstance(constraints, Mapping):
            errors.append("constraints debe ser un objeto")
            constraints = None

        version = data.get("version", MANIFEST_VERSION)
        if version != MANIFEST_VERSION:
            errors.append(f"version no soportada: {version!r}")

        if errors or kind is None:
            raise ManifestError(
                f"Feature Manifest invalido: {module_id or '<sin id>'}", errors
            )
        return cls(
            module_id=module_id,
            kind=kind,
            entry_path=entry,
            template_id=template_id or "",
            name=name if isinstance(name, str) and name else module_id,
            provides=provides,
            consumes=consumes,
            files=files,
            assets=assets,
            version=MANIFEST_VERSION,
            constraints=dict(constraints) if constraints is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "version": self.version,
            "module": {
                "id": self.module_id,
                "name": self.name or self.module_id,
                "kind": self.kind.value,
                "entry": self.entry_path,
                "templateId": self.template_id,
            },
            "provides": self.provides.to_dict(),
            "consumes": self.consumes.to_dict(),
            "files": [item.to_dict() for item in self.files],
        }
        if self.assets:
            payload["assets"] = [asset.to_dict() for asset in self.assets]
        if self.constraints is not None:
            payload["constraints"] = dict(self.constraints)
        return payload


def _required_str(data: Mapping[str, Any], key: str, label: str, errors: List[str]) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{label} es requerido")
        return ""
    return value


def _parse_files(raw: object, errors: List[str]) -> Tuple[ManifestFile, ...]:
    if not isinstance(raw, list):
        errors.append("files debe ser una lista")
        return ()
    files: List[ManifestFile] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping) or not isinstance(item.get("path"), str):
            errors.append(f"files[{index}].path es requerido")
            continue
        role = item.get("role", "logic")
        if role not in FILE_ROLES:
            errors.append(f"files[{index}].role invalido: {role!r}")
            continue
        content_hash = item.get("sha256", "")
        files.append(
            ManifestFile(
                path=item["path"],
                role=role,
                content_hash=content_hash if isinstance(content_hash, str) else "",
            )
        )
    return tuple(files)


def _parse_assets(raw: object, errors: List[str]) -> Tuple[ManifestAsset, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        errors.append("assets debe ser una lista")
        return ()
    assets: List[ManifestAsset] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping) or not isinstance(item.get("path"), str):
            errors.append(f"assets[{index}].path es requerido")
            continue
        size = item.get("sizeBytes")
        assets.append(
            ManifestAsset(
                path=item["path"],
                id=item.get("id") if isinstance(item.get("id"), str) else None,
                type=item.get("type") if isinstance(item.get("type"), str) else None,
                content_hash=item.get("sha256") if isinstance(item.get("sha256"), str) else None,
                size_bytes=size if isinstance(size, int) else None,
            )
        )
    return tuple(assets)


@dataclass(frozen=True)
class WriteOperation:
    """A single proposed write issued on behalf of a module."""

    module_id: str
    path: str


@dataclass(frozen=True)
class GeneratedFile:
    """Source text produced for a module, not yet written anywhere."""

    path: str
    content: str
    module_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GeneratedFile":
        module_id = data.get("moduleId")
        return cls(
            path=str(data.get("path", "")),
            content=str(data.get("content", "")),
            module_id=module_id if isinstance(module_id, str) and module_id else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"path": self.path, "content": self.content}
        if self.module_id is not None:
            payload["moduleId"] = self.module_id
        return payload


@dataclass(frozen=True)
class Violation:
    """A denied capability reference found in a source file (1-based position)."""

    file: str
    message: str
    line: int
    column: int

    def describe(self) -> str:
        return f"{self.file}:{self.line}:{self.column} {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"file": self.file, "message": self.message, "line": self.line, "column": self.column}


@dataclass(frozen=True)
class GraphEdge:
    from_id: str
    to_id: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.from_id, "to": self.to_id, "reason": self.reason}


@dataclass(frozen=True)
class MissingDependency:
    module_id: str
    type: str
    key: str

    def to_dict(self) -> Dict[str, str]:
        return {"moduleId": self.module_id, "type": self.type, "key": self.key}


@dataclass
class ManifestGraph:
    """Dependency graph derived from a manifest set; never persisted as input."""

    nodes: List[str] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    missing: List[MissingDependency] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing and not self.cycles

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": list(self.nodes),
            "edges": [edge.to_dict() for edge in self.edges],
            "missing": [item.to_dict() for item in self.missing],
            "cycles": [list(cycle) for cycle in self.cycles],
        }


STEP_OK = "ok"
STEP_BLOCKED = "blocked"


@dataclass(frozen=True)
class StepResult:
    id: str
    status: str
    errors: Tuple[str, ...] = ()

    @classmethod
    def passed(cls, step_id: str) -> "StepResult":
        return cls(id=step_id, status=STEP_OK)

    @classmethod
    def blocked(cls, step_id: str, errors: Sequence[str]) -> "StepResult":
        return cls(id=step_id, status=STEP_BLOCKED, errors=tuple(errors) or ("blocked",))

    @property
    def is_blocked(self) -> bool:
        return self.status == STEP_BLOCKED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "status": self.status}
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


@dataclass(frozen=True)
class MigrationReport:
    from_version: str
    to_version: str
    steps: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"fromVersion": self.from_version, "toVersion": self.to_version, "steps": list(self.steps)}


STATUS_PASS = "PASS"
STATUS_FAIL = "FAIL"


@dataclass
class BuildReport:
    """Accumulates stage results for one build; frozen once serialised."""

    build_id: str
    steps: List[StepResult] = field(default_factory=list)
    migration: Optional[MigrationReport] = None
    checksum: Optional[str] = None
    artifact_path: Optional[str] = None
    error: Optional[str] = None
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise RuntimeError(f"BuildReport {self.build_id} is frozen")
        super().__setattr__(name, value)

    def add_step(self, step: StepResult) -> StepResult:
        if self._frozen:
            raise RuntimeError(f"BuildReport {self.build_id} is frozen")
        self.steps.append(step)
        return step

    def freeze(self) -> "BuildReport":
        if not self._frozen:
            self.steps = tuple(self.steps)  # type: ignore[assignment]
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def blocked_steps(self) -> List[StepResult]:
        return [step for step in self.steps if step.is_blocked]

    @property
    def status(self) -> str:
        if self.error is not None or self.blocked_steps:
            return STATUS_FAIL
        return STATUS_PASS

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "buildId": self.build_id,
            "status": self.status,
            "steps": [step.to_dict() for step in self.steps],
            "blockedSteps": [
                {"id": step.id, "errors": list(step.errors)} for step in self.blocked_steps
            ],
        }
        if self.migration is not None:
            payload["migration"] = self.migration.to_dict()
        if self.checksum is not None:
            payload["checksum"] = self.checksum
        if self.artifact_path is not None:
            payload["artifactPath"] = self.artifact_path
        if self.error is not None:
            payload["error"] = self.error
        return payload


__all__ = [
    "BuildReport",
    "CAPABILITY_GROUPS",
    "CapabilitySet",
    "FeatureManifest",
    "GeneratedFile",
    "GraphEdge",
    "ManifestAsset",
    "ManifestError",
    "ManifestFile",
    "ManifestGraph",
    "MigrationReport",
    "MissingDependency",
    "ModuleKind",
    "STATUS_FAIL",
    "STATUS_PASS",
    "StepResult",
    "Violation",
    "WriteOperation",
]
