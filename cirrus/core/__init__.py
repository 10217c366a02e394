"""
Core model: declarations, attribute futures, the dependency graph and the
Stack container.
"""

from cirrus.core.declaration import (
    Declaration,
    Reference,
    ResourceKind,
    iter_references,
    substitute,
)
from cirrus.core.future import AttributeFuture
from cirrus.core.dag import DAG, DAGNode, build_graph
from cirrus.core.errors import (
    CirrusError,
    CyclicDependency,
    DuplicateDeclaration,
    RemoteCallFailure,
    UnresolvedReference,
    UpstreamFailed,
    ValidationError,
)
from cirrus.core.stack import Plan, Stack

__all__ = [
    "AttributeFuture",
    "CirrusError",
    "CyclicDependency",
    "DAG",
    "DAGNode",
    "Declaration",
    "DuplicateDeclaration",
    "Plan",
    "Reference",
    "RemoteCallFailure",
    "ResourceKind",
    "Stack",
    "UnresolvedReference",
    "UpstreamFailed",
    "ValidationError",
    "build_graph",
    "iter_references",
    "substitute",
]
