"""Graph construction and ordering helpers."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .schemas.resource import Edge, ResourceGraph, ResourceKind, ResourceNode
from .schemas.secret import Secret

LOGGER = logging.getLogger(__name__)


class DeclarationError(ValueError):
    """Raised when a resource is declared against an inconsistent graph."""


class GraphCycleError(DeclarationError):
    """Raised when dependency edges do not form a DAG."""

    def __init__(self, remaining: List[str]) -> None:
        super().__init__(f"Dependency cycle between resources: {', '.join(remaining)}")
        self.remaining = remaining


class GraphBuilder:
    """Accumulate resource nodes and derive edges from the references they carry."""

    def __init__(self) -> None:
        self._nodes: Dict[str, ResourceNode] = {}
        self._secrets: Dict[str, Secret] = {}

    def add_secret(self, key: str, secret: Secret) -> None:
        self._secrets[key] = secret

    def declare(
        self,
        name: str,
        kind: ResourceKind,
        properties: Optional[Mapping[str, Any]] = None,
        *,
        parent: Optional[str] = None,
    ) -> ResourceNode:
        if name in self._nodes:
            raise DeclarationError(f"Resource '{name}' is already declared.")
        if parent is not None and parent not in self._nodes:
            raise DeclarationError(f"Parent '{parent}' of '{name}' has not been declared.")

        node = ResourceNode(
            name=name,
            kind=kind,
            properties=properties or {},
            parent=parent,
        )
        for dependency in node.dependencies:
            if dependency not in self._nodes:
                raise DeclarationError(f"Resource '{name}' references undeclared resource '{dependency}'.")
        for key in node.secret_keys:
            if key not in self._secrets:
                raise DeclarationError(f"Resource '{name}' references unknown secret '{key}'.")

        self._nodes[name] = node
        LOGGER.debug("Declared %s (%s) depending on %s", name, kind.value, list(node.dependencies) or "nothing")
        return node

    def build(self) -> ResourceGraph:
        edges = [Edge(source=dependency, target=node.name) for node in self._nodes.values() for dependency in node.dependencies]
        return ResourceGraph(
            nodes=tuple(self._nodes.values()),
            edges=tuple(edges),
            secrets=dict(self._secrets),
        )


def apply_waves(graph: ResourceGraph) -> List[List[str]]:
    """Group nodes into levels; every node in a level depends only on earlier levels."""
    indegree = {name: 0 for name in graph.names}
    for edge in graph.edges:
        indegree[edge.target] += 1

    order = {name: index for index, name in enumerate(graph.names)}
    waves: List[List[str]] = []
    ready = [name for name in graph.names if indegree[name] == 0]
    placed = 0
    while ready:
        waves.append(ready)
        placed += len(ready)
        following: List[str] = []
        for name in ready:
            for dependent in graph.dependents_of(name):
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    following.append(dependent)
        ready = sorted(following, key=order.__getitem__)

    if placed != len(graph.nodes):
        raise GraphCycleError([name for name in graph.names if indegree[name] > 0])
    return waves


def topological_order(graph: ResourceGraph) -> List[str]:
    """Dependency order with ties broken by declaration order."""
    return [name for wave in apply_waves(graph) for name in wave]


def diff(old: ResourceGraph, new: ResourceGraph) -> List[str]:
    """Names of nodes added, removed or changed between two evaluations."""
    changed: List[str] = []
    old_nodes = {node.name: node for node in old.nodes}
    new_names = set(new.names)
    for node in new.nodes:
        previous = old_nodes.get(node.name)
        if previous is None or previous != node:
            changed.append(node.name)
            continue
        secrets_before = {key: old.secrets.get(key) for key in node.secret_keys}
        secrets_after = {key: new.secrets.get(key) for key in node.secret_keys}
        if secrets_before != secrets_after:
            changed.append(node.name)
    changed.extend(name for name in old.names if name not in new_names)
    return changed


__all__ = [
    "DeclarationError",
    "GraphBuilder",
    "GraphCycleError",
    "apply_waves",
    "diff",
    "topological_order",
]
