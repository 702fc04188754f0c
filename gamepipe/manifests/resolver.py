"""Dependency graph construction over feature manifest capability keys."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

from ..logging import get_logger
from ..models import (
    CAPABILITY_GROUPS,
    FeatureManifest,
    GraphEdge,
    ManifestGraph,
    MissingDependency,
)

DEFAULT_ALLOWLIST: tuple[str, ...] = ("core.", "system.")

_WHITE, _GRAY, _BLACK = 0, 1, 2


class ManifestGraphResolver:
    """Resolves consumed capability keys against providers and reports gaps and cycles."""

    def __init__(self, allowlist_prefixes: Sequence[str] | None = None) -> None:
        self.allowlist_prefixes = (
            tuple(allowlist_prefixes) if allowlist_prefixes is not None else DEFAULT_ALLOWLIST
        )
        self.logger = get_logger("manifests.resolver")

    def is_allowlisted(self, key: str) -> bool:
        return any(key.startswith(prefix) for prefix in self.allowlist_prefixes)

    def build(self, manifests: Sequence[FeatureManifest]) -> ManifestGraph:
        nodes = [manifest.module_id for manifest in manifests]
        providers = {group: _provider_index(manifests, group) for group, _ in CAPABILITY_GROUPS}

        edges: List[GraphEdge] = []
        missing: List[MissingDependency] = []
        for manifest in manifests:
            for group, dependency_type in CAPABILITY_GROUPS:
                for key in manifest.consumes.keys(group):
                    if self.is_allowlisted(key):
                        continue
                    provider_ids = providers[group].get(key)
                    if not provider_ids:
                        missing.append(
                            MissingDependency(
                                module_id=manifest.module_id, type=dependency_type, key=key
                            )
                        )
                        continue
                    for provider_id in provider_ids:
                        if provider_id == manifest.module_id:
                            continue
                        edges.append(
                            GraphEdge(
                                from_id=manifest.module_id,
                                to_id=provider_id,
                                reason=f"{dependency_type}:{key}",
                            )
                        )

        cycles = detect_cycles(nodes, edges)
        self.logger.debug(
            "Manifest graph: %d nodes, %d edges, %d missing, %d cycles",
            len(nodes),
            len(edges),
            len(missing),
            len(cycles),
        )
        return ManifestGraph(nodes=nodes, edges=edges, missing=missing, cycles=cycles)


def build_manifest_graph(
    manifests: Sequence[FeatureManifest],
    allowlist_prefixes: Sequence[str] | None = None,
) -> ManifestGraph:
    """Return the dependency graph for ``manifests``."""
    return ManifestGraphResolver(allowlist_prefixes).build(manifests)


def detect_cycles(nodes: Iterable[str], edges: Iterable[GraphEdge]) -> List[List[str]]:
    """Three-colour DFS; each cycle is the stack suffix from the revisited node plus that node."""
    adjacency = _adjacency(edges)
    marks: Dict[str, int] = {}
    cycles: List[List[str]] = []

    for root in nodes:
        if marks.get(root, _WHITE) != _WHITE:
            continue
        marks[root] = _GRAY
        path = [root]
        frames = [iter(adjacency.get(root, ()))]
        while frames:
            descended = False
            for neighbor in frames[-1]:
                mark = marks.get(neighbor, _WHITE)
                if mark == _GRAY:
                    start = path.index(neighbor)
                    cycles.append(path[start:] + [neighbor])
                elif mark == _WHITE:
                    marks[neighbor] = _GRAY
                    path.append(neighbor)
                    frames.append(iter(adjacency.get(neighbor, ())))
                    descended = True
                    break
            if not descended:
                frames.pop()
                marks[path.pop()] = _BLACK
    return cycles


def _provider_index(manifests: Sequence[FeatureManifest], group: str) -> Mapping[str, List[str]]:
    index: Dict[str, List[str]] = {}
    for manifest in manifests:
        for key in manifest.provides.keys(group):
            providers = index.setdefault(key, [])
            if manifest.module_id not in providers:
                providers.append(manifest.module_id)
    return index


def _adjacency(edges: Iterable[GraphEdge]) -> Mapping[str, List[str]]:
    # Neighbour order follows first edge insertion so cycle reports are reproducible.
    adjacency: Dict[str, Dict[str, None]] = {}
    for edge in edges:
        adjacency.setdefault(edge.from_id, {})[edge.to_id] = None
    return {node: list(targets) for node, targets in adjacency.items()}


__all__ = [
    "DEFAULT_ALLOWLIST",
    "ManifestGraphResolver",
    "build_manifest_graph",
    "detect_cycles",
]
