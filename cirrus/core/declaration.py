"""
Declarations: immutable desired-state descriptions of cloud resources.

A declaration's property values are either literals (scalars, lists, dicts,
JSON documents) or References to an attribute of another declaration that
is only known once that declaration has been provisioned.
"""

import hashlib
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping


class ResourceKind(str, Enum):
    """The closed set of resource kinds Cirrus knows how to provision."""

    ROLE = "Role"
    POLICY_ATTACHMENT = "PolicyAttachment"
    FUNCTION = "Function"
    TABLE = "Table"
    BUCKET = "Bucket"
    REST_API = "RestApi"
    RESOURCE = "Resource"
    METHOD = "Method"
    INTEGRATION = "Integration"
    DEPLOYMENT = "Deployment"
    STAGE = "Stage"
    PERMISSION = "Permission"
    STREAM_BINDING = "StreamBinding"


def _callable_name(func: Callable[..., Any]) -> str:
    if isinstance(func, partial):
        args = ", ".join(repr(arg) for arg in func.args)
        return f"{_callable_name(func.func)}({args})"
    return getattr(func, "__qualname__", type(func).__name__)


@dataclass(frozen=True)
class Reference:
    """
    A pointer to an attribute of another declaration.

    Transforms registered with apply() run, in order, on the resolved value.

    Example:
        arn = function.attr("arn")
        uri = arn.apply(lambda value: f"{value}/invocations")
    """

    logical_name: str
    attribute_path: str
    transforms: tuple[Callable[[Any], Any], ...] = ()

    def apply(self, transform: Callable[[Any], Any]) -> "Reference":
        """Return a new Reference whose value is transform(resolved value)."""
        return replace(self, transforms=self.transforms + (transform,))

    def resolve(self, value: Any) -> Any:
        """Run the transform chain over a resolved attribute value."""
        for transform in self.transforms:
            value = transform(value)
        return value

    def describe(self) -> dict[str, Any]:
        """JSON-friendly description used for fingerprints and plan output."""
        description: dict[str, Any] = {"ref": f"{self.logical_name}.{self.attribute_path}"}
        if self.transforms:
            description["transforms"] = [_callable_name(t) for t in self.transforms]
        return description

    def __str__(self) -> str:
        return "${" + f"{self.logical_name}.{self.attribute_path}" + "}"


def iter_references(value: Any) -> Iterator[Reference]:
    """Yield every Reference in a value, descending into lists and dicts."""
    if isinstance(value, Reference):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_references(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_references(item)


def substitute(value: Any, resolver: Callable[[Reference], Any]) -> Any:
    """
    Replace every Reference in a value with resolver(reference).

    Containers are rebuilt; literals are returned unchanged.
    """
    if isinstance(value, Reference):
        return value.resolve(resolver(value))
    if isinstance(value, Mapping):
        return {key: substitute(item, resolver) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute(item, resolver) for item in value]
    if isinstance(value, tuple):
        return tuple(substitute(item, resolver) for item in value)
    return value


def describe_value(value: Any) -> Any:
    """Convert a property value into plain JSON-compatible data."""
    if isinstance(value, Reference):
        return value.describe()
    if isinstance(value, Mapping):
        return {str(key): describe_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [describe_value(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class Declaration:
    """
    Desired state of one cloud resource.

    Attributes:
        logical_name: Name unique within a deployment
        kind: Resource kind (immutable)
        properties: Property values, literal or Reference
        depends_on: Logical names that must be provisioned first, in
            addition to the ones implied by References

    Example:
        role = Declaration("controllerLambdaRole", ResourceKind.ROLE, {
            "name": "controller_lambda_role",
            "assume_role_policy": lambda_trust_policy(),
        })
        function = Declaration("controllerLambda", ResourceKind.FUNCTION, {
            "name": "controller_lambda",
            "role": role.attr("arn"),
        })
    """

    logical_name: str
    kind: ResourceKind
    properties: Mapping[str, Any] = field(default_factory=dict)
    depends_on: frozenset[str] = frozenset()

    def __post_init__(self):
        if not self.logical_name:
            raise ValueError("Declaration logical_name must not be empty")
        object.__setattr__(self, "kind", ResourceKind(self.kind))
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))
        names = frozenset(
            dep.logical_name if isinstance(dep, Declaration) else dep
            for dep in self.depends_on
        )
        object.__setattr__(self, "depends_on", names)

    def attr(self, attribute_path: str) -> Reference:
        """Reference one of this declaration's future attributes."""
        return Reference(self.logical_name, attribute_path)

    def references(self) -> list[Reference]:
        """All References held by this declaration's properties."""
        return list(iter_references(self.properties))

    def dependencies(self) -> list[str]:
        """
        Logical names this declaration depends on, in a stable order.

        Reference-induced dependencies come first in property order,
        followed by explicit ones sorted by name.
        """
        ordered: list[str] = []
        for reference in self.references():
            if reference.logical_name not in ordered:
                ordered.append(reference.logical_name)
        for name in sorted(self.depends_on):
            if name not in ordered:
                ordered.append(name)
        return ordered

    def with_dependencies(self, *dependencies: "Declaration | str") -> "Declaration":
        """Return a copy with additional explicit dependencies."""
        names = frozenset(
            dep.logical_name if isinstance(dep, Declaration) else dep
            for dep in dependencies
        )
        return replace(self, depends_on=self.depends_on | names)

    def to_dict(self) -> dict[str, Any]:
        return {
            "logical_name": self.logical_name,
            "kind": self.kind.value,
            "properties": describe_value(self.properties),
            "depends_on": sorted(self.depends_on),
        }

    def fingerprint(self) -> str:
        """Stable digest of the declaration, used to detect changes between runs."""
        payload = json.dumps(self.to_dict(), sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def __repr__(self) -> str:
        return f"Declaration(name='{self.logical_name}', kind='{self.kind.value}')"
