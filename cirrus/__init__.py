"""
Cirrus: declarative provisioning for small serverless pipelines.

Resources are declared up front. Property values that are only known once
another resource exists (ARNs, identifiers, addresses) are References, and
Cirrus derives the creation order from them.

Core concepts:
- Declaration: desired state of one resource
- Reference: a not-yet-known attribute of another declaration
- Stack: the set of declarations in a deployment
- Scheduler: provisions declarations in dependency order

Example:
    from cirrus import Stack, ResourceKind, InMemoryProvider

    stack = Stack(name="demo")
    table = stack.declare(ResourceKind.TABLE, "video", {...})
    stack.declare(ResourceKind.STREAM_BINDING, "trigger", {
        "event_source_arn": table.attr("stream_arn"),
        ...
    })

    plan = stack.plan()                        # graph only
    report = stack.apply(InMemoryProvider())   # graph + provisioning
"""

from cirrus.core import (
    AttributeFuture,
    CirrusError,
    CyclicDependency,
    Declaration,
    Plan,
    Reference,
    RemoteCallFailure,
    ResourceKind,
    Stack,
    UnresolvedReference,
    UpstreamFailed,
    ValidationError,
    build_graph,
)
from cirrus.config import AwsConfig, OrchestratorConfig, load_config
from cirrus.execution import ApplyReport, Scheduler, Status
from cirrus.providers import InMemoryProvider, RemoteCallLayer

__version__ = "0.1.0"
__all__ = [
    "ApplyReport",
    "AttributeFuture",
    "AwsConfig",
    "CirrusError",
    "CyclicDependency",
    "Declaration",
    "InMemoryProvider",
    "OrchestratorConfig",
    "Plan",
    "Reference",
    "RemoteCallFailure",
    "RemoteCallLayer",
    "ResourceKind",
    "Scheduler",
    "Stack",
    "Status",
    "UnresolvedReference",
    "UpstreamFailed",
    "ValidationError",
    "build_graph",
    "load_config",
]
