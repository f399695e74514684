"""Data model for the resource declaration graph."""
from .resource import Edge, OutputRef, ResourceGraph, ResourceKind, ResourceNode
from .secret import Secret, SecretRef

__all__ = [
    "Edge",
    "OutputRef",
    "ResourceGraph",
    "ResourceKind",
    "ResourceNode",
    "Secret",
    "SecretRef",
]
