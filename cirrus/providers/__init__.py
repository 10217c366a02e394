"""
Remote call layers.

RemoteCallLayer is the only contract the scheduler depends on.
InMemoryProvider implements it without touching a cloud account.
"""

from cirrus.providers.base import CallResult, RemoteCallLayer, ResourceSpec
from cirrus.providers.memory import InMemoryProvider

__all__ = [
    "CallResult",
    "InMemoryProvider",
    "RemoteCallLayer",
    "ResourceSpec",
]
