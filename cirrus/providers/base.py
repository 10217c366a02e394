"""
Remote call layer contract.

The scheduler only ever talks to a RemoteCallLayer. Implementations own
the transport, credentials, and retry policy for transient failures; the
core never sees any of that.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from cirrus.core.declaration import ResourceKind


@dataclass(frozen=True)
class ResourceSpec:
    """A declaration with every Reference already substituted."""

    logical_name: str
    kind: ResourceKind
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CallResult:
    """What a create or update call returns."""

    resource_id: str
    attributes: dict[str, Any] = field(default_factory=dict)


class RemoteCallLayer(ABC):
    """
    Base class for remote call layers.

    Implementations must raise cirrus.core.errors.RemoteCallFailure when a
    call fails; the scheduler wraps anything else it receives.

    Example:
        provider = InMemoryProvider(AwsConfig(region="us-east-1"))
        existing = provider.lookup(spec)
        if existing:
            result = provider.update(existing, spec)
        else:
            result = provider.create(spec)
    """

    @abstractmethod
    def create(self, spec: ResourceSpec) -> CallResult:
        """Create a resource and return its identity and attributes."""
        pass

    @abstractmethod
    def update(self, resource_id: str, spec: ResourceSpec) -> CallResult:
        """Bring an existing resource in line with spec."""
        pass

    @abstractmethod
    def delete(self, resource_id: str) -> None:
        """Delete a resource."""
        pass

    @abstractmethod
    def lookup(self, spec: ResourceSpec) -> str | None:
        """
        Return the identifier of an existing resource matching spec's
        kind and logical name, or None if it does not exist yet.
        """
        pass

    def get_provider_type(self) -> str:
        """Return the provider type."""
        return "unknown"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type='{self.get_provider_type()}')"
