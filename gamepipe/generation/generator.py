"""Template-backed generation of module manifests and entry sources."""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, TemplateNotFound

from ..gamespec import stable_normalize
from ..logging import get_logger
from ..models import (
    CapabilitySet,
    FeatureManifest,
    GeneratedFile,
    ManifestError,
    ModuleKind,
)
from ..paths import is_safe_relative_path, normalize_path

DEFAULT_TEMPLATE_ID = "idle-rpg-base"

ROLE_BY_KIND: Dict[ModuleKind, str] = {
    ModuleKind.SYSTEM: "logic",
    ModuleKind.RENDERER: "render",
    ModuleKind.UI: "ui",
}

TEMPLATE_BY_KIND: Dict[ModuleKind, str] = {
    ModuleKind.SYSTEM: "system.ts.j2",
    ModuleKind.RENDERER: "renderer.ts.j2",
    ModuleKind.UI: "ui.ts.j2",
}

_NON_IDENTIFIER = re.compile(r"[^0-9A-Za-z_$]+")


class GenerationError(RuntimeError):
    """Raised when a module request cannot produce a valid manifest."""


@dataclass(frozen=True)
class ModuleFile:
    path: str
    content: str
    role: Optional[str] = None


@dataclass(frozen=True)
class ModuleRequest:
    """Input describing one module to generate."""

    module_id: str
    kind: ModuleKind
    name: Optional[str] = None
    entry: Optional[str] = None
    template_id: Optional[str] = None
    provides: CapabilitySet = field(default_factory=CapabilitySet)
    consumes: CapabilitySet = field(default_factory=CapabilitySet)
    constraints: Optional[Mapping[str, Any]] = None
    files: Tuple[ModuleFile, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModuleRequest":
        module = data.get("module") if isinstance(data, Mapping) else None
        if not isinstance(module, Mapping) or not module.get("id") or not module.get("kind"):
            raise GenerationError("module.id y module.kind son requeridos")
        try:
            kind = ModuleKind.parse(module["kind"])
        except ManifestError as exc:
            raise GenerationError(str(exc)) from exc

        errors: List[str] = []
        provides = CapabilitySet.from_dict(data.get("provides"), "provides", errors)
        consumes = CapabilitySet.from_dict(data.get("consumes"), "consumes", errors)
        files: List[ModuleFile] = []
        for index, item in enumerate(data.get("files") or []):
            if not isinstance(item, Mapping) or not isinstance(item.get("path"), str):
                errors.append(f"files[{index}].path es requerido")
                continue
            role = item.get("role")
            files.append(
                ModuleFile(
                    path=item["path"],
                    content=str(item.get("content", "")),
                    role=role if isinstance(role, str) else None,
                )
            )
        constraints = data.get("constraints")
        if constraints is not None and not isinstance(constraints, Mapping):
            errors.append("constraints debe ser un objeto")
        if errors:
            raise GenerationError("; ".join(errors))

        return cls(
            module_id=str(module["id"]),
            kind=kind,
            name=module.get("name") or None,
            entry=module.get("entry") or None,
            template_id=module.get("templateId") or None,
            provides=provides,
            consumes=consumes,
            constraints=constraints,
            files=tuple(files),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "module": {
                "id": self.module_id,
                "kind": self.kind.value,
                "name": self.name,
                "entry": self.entry,
                "templateId": self.template_id,
            },
            "provides": self.provides.to_dict(),
            "consumes": self.consumes.to_dict(),
            "files": [
                {"path": item.path, "content": item.content, "role": item.role}
                for item in self.files
            ],
        }
        if self.constraints is not None:
            payload["constraints"] = dict(self.constraints)
        return payload


@dataclass
class GeneratedModule:
    generation_id: str
    manifest: FeatureManifest
    files: List[GeneratedFile]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generationId": self.generation_id,
            "manifest": self.manifest.to_dict(),
            "files": [item.to_dict() for item in self.files],
        }


class ModuleGenerator:
    """Builds a manifest for a module and renders its entry file when missing."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        default_dir = Path(__file__).with_name("templates")
        directories = [str(templates_dir)] if templates_dir else []
        if str(default_dir) not in directories:
            directories.append(str(default_dir))
        self._env = Environment(
            loader=FileSystemLoader(directories),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.logger = get_logger("generation")

    def generate(self, request: ModuleRequest) -> GeneratedModule:
        canonical = json.dumps(stable_normalize(request.to_dict()))
        generation_id = f"gen-{_sha256(canonical)[:12]}"

        entry_path = normalize_path(request.entry or default_entry_path(request.module_id))
        if not is_safe_relative_path(entry_path):
            raise GenerationError(f"entry path invalido: {entry_path}")

        default_role = ROLE_BY_KIND[request.kind]
        files: Dict[str, Tuple[str, str]] = {}
        for item in request.files:
            path = normalize_path(item.path)
            if not is_safe_relative_path(path):
                raise GenerationError(f"file path invalido: {item.path}")
            files[path] = (item.content, item.role or default_role)
        if entry_path not in files:
            files[entry_path] = (self.render_entry(request), default_role)

        ordered = sorted(files)
        manifest_payload: Dict[str, Any] = {
            "version": "1.0",
            "module": {
                "id": request.module_id,
                "name": request.name or request.module_id,
                "kind": request.kind.value,
                "entry": entry_path,
                "templateId": request.template_id or DEFAULT_TEMPLATE_ID,
            },
            "provides": request.provides.to_dict(),
            "consumes": request.consumes.to_dict(),
            "files": [
                {"path": path, "role": files[path][1], "sha256": _sha256(files[path][0])}
                for path in ordered
            ],
        }
        if request.constraints is not None:
            manifest_payload["constraints"] = dict(request.constraints)
        try:
            manifest = FeatureManifest.from_dict(manifest_payload)
        except ManifestError as exc:
            raise GenerationError(
                f"Feature Manifest invalido: {'; '.join(exc.errors)}"
            ) from exc

        generated = [
            GeneratedFile(path=path, content=files[path][0], module_id=request.module_id)
            for path in ordered
        ]
        self.logger.info(
            "Generated %s (%s) with %d file(s)", request.module_id, generation_id, len(generated)
        )
        return GeneratedModule(generation_id=generation_id, manifest=manifest, files=generated)

    def render_entry(self, request: ModuleRequest) -> str:
        template_name = TEMPLATE_BY_KIND[request.kind]
        try:
            template = self._env.get_template(template_name)
        except TemplateNotFound as exc:
            raise GenerationError(f"Template not found: {template_name}") from exc
        return template.render(
            module_id=request.module_id,
            name=request.name or request.module_id,
            template_id=request.template_id or DEFAULT_TEMPLATE_ID,
            symbol=_identifier(request.module_id),
            pascal=_pascal_case(request.module_id),
            provides=request.provides.to_dict(),
            consumes=request.consumes.to_dict(),
        )


def default_entry_path(module_id: str) -> str:
    return f"modules/{module_id}/index.ts"


def generate_module(data: Mapping[str, Any], templates_dir: Path | None = None) -> GeneratedModule:
    return ModuleGenerator(templates_dir).generate(ModuleRequest.from_dict(data))


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _identifier(module_id: str) -> str:
    name = _NON_IDENTIFIER.sub("_", module_id).strip("_") or "module"
    return f"_{name}" if name[0].isdigit() else name


def _pascal_case(module_id: str) -> str:
    parts = [part for part in _NON_IDENTIFIER.split(module_id.replace("_", "-")) if part]
    name = "".join(part[:1].upper() + part[1:] for part in parts) or "Module"
    return f"M{name}" if name[0].isdigit() else name


__all__ = [
    "DEFAULT_TEMPLATE_ID",
    "GeneratedModule",
    "GenerationError",
    "ModuleFile",
    "ModuleGenerator",
    "ModuleRequest",
    "default_entry_path",
    "generate_module",
]
