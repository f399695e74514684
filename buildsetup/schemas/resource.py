"""Resource nodes, dependency edges and the graph that holds them."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .secret import Secret, SecretRef


class ResourceKind(str, Enum):
    STACK = "build-setup:Stack"
    ROLE = "aws:iam:Role"
    POLICY_ATTACHMENT = "aws:iam:RolePolicyAttachment"
    SOURCE_CREDENTIAL = "aws:codebuild:SourceCredential"
    PARAMETER = "aws:ssm:Parameter"
    PROJECT = "aws:codebuild:Project"
    WEBHOOK = "aws:codebuild:Webhook"


@dataclass(frozen=True)
class OutputRef:
    """Reference to an output attribute of another declared resource."""

    resource: str
    attribute: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ref": self.resource, "attribute": self.attribute}


def iter_refs(value: Any) -> Iterator[Any]:
    """Yield every OutputRef and SecretRef nested inside a property value."""
    if isinstance(value, (OutputRef, SecretRef)):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_refs(item)


def serialize(value: Any) -> Any:
    if isinstance(value, (OutputRef, SecretRef)):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {key: serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    return value


def freeze(value: Any) -> Any:
    """Read-only copy: mappings become proxies, sequences become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen value, references left in place."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


def _hash_key(value: Any) -> Any:
    if isinstance(value, Mapping):
        return frozenset((key, _hash_key(item)) for key, item in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(_hash_key(item) for item in value)
    return value


@dataclass(frozen=True)
class ResourceNode:
    name: str
    kind: ResourceKind
    properties: Mapping[str, Any] = field(default_factory=dict)
    parent: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", freeze(self.properties))

    def __hash__(self) -> int:
        return hash((self.name, self.kind, self.parent, _hash_key(self.properties)))

    @property
    def dependencies(self) -> Tuple[str, ...]:
        """Names of the resources this node references, in first-seen order."""
        seen: List[str] = []
        for ref in iter_refs(self.properties):
            if isinstance(ref, OutputRef) and ref.resource not in seen:
                seen.append(ref.resource)
        return tuple(seen)

    @property
    def secret_keys(self) -> Tuple[str, ...]:
        keys: List[str] = []
        for ref in iter_refs(self.properties):
            if isinstance(ref, SecretRef) and ref.key not in keys:
                keys.append(ref.key)
        return tuple(keys)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.kind.value,
            "parent": self.parent,
            "properties": serialize(self.properties),
        }


@dataclass(frozen=True)
class Edge:
    """``source`` must have a resolved identifier before ``target`` is created."""

    source: str
    target: str

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.source, "to": self.target}


@dataclass(frozen=True)
class ResourceGraph:
    nodes: Tuple[ResourceNode, ...]
    edges: Tuple[Edge, ...]
    secrets: Mapping[str, Secret] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))
        object.__setattr__(self, "secrets", MappingProxyType(dict(self.secrets)))

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(node.name for node in self.nodes)

    def node(self, name: str) -> ResourceNode:
        for candidate in self.nodes:
            if candidate.name == name:
                return candidate
        raise KeyError(name)

    def by_kind(self, kind: ResourceKind) -> List[ResourceNode]:
        return [node for node in self.nodes if node.kind is kind]

    def dependencies_of(self, name: str) -> List[str]:
        return [edge.source for edge in self.edges if edge.target == name]

    def dependents_of(self, name: str) -> List[str]:
        return [edge.target for edge in self.edges if edge.source == name]

    def to_dict(self) -> Dict[str, Any]:
        """Redacted form: secrets appear by key only."""
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "secrets": sorted(self.secrets),
        }


__all__ = [
    "Edge",
    "OutputRef",
    "ResourceGraph",
    "ResourceKind",
    "ResourceNode",
    "freeze",
    "iter_refs",
    "serialize",
    "thaw",
]
