"""
AttributeFuture: resource properties that are only known after provisioning.

Every declaration owns exactly one future. The scheduler creates it empty
when a deployment run starts and fulfils it once, with the attributes the
remote call layer returned (identifiers, ARNs, addresses). Dependents do
not poll; they register continuations that fire exactly once.
"""

import threading
from typing import Any, Callable

from cirrus.core.errors import UnresolvedReference


_PENDING = "pending"
_RESOLVED = "resolved"
_FAILED = "failed"


def lookup_attribute(attributes: dict[str, Any], attribute_path: str) -> Any:
    """
    Read a (possibly dotted) attribute path from a resolved attribute map.

    Raises:
        KeyError: If any segment of the path is missing
    """
    value: Any = attributes
    for segment in attribute_path.split("."):
        if not isinstance(value, dict) or segment not in value:
            raise KeyError(attribute_path)
        value = value[segment]
    return value


class AttributeFuture:
    """
    Resolved attributes of one declaration, available after it is created.

    Example:
        future = AttributeFuture("controllerLambda")
        future.on_resolved(lambda attrs: print(attrs["arn"]))
        future.resolve({"id": "fn-123", "arn": "arn:aws:lambda:..."})
    """

    def __init__(self, owner: str):
        self.owner = owner
        self._lock = threading.Lock()
        self._state = _PENDING
        self._attributes: dict[str, Any] = {}
        self._error: BaseException | None = None
        self._resolved_callbacks: list[Callable[[dict[str, Any]], None]] = []
        self._failed_callbacks: list[Callable[[BaseException], None]] = []

    @property
    def done(self) -> bool:
        return self._state != _PENDING

    @property
    def resolved(self) -> bool:
        return self._state == _RESOLVED

    @property
    def failed(self) -> bool:
        return self._state == _FAILED

    @property
    def error(self) -> BaseException | None:
        return self._error

    def on_resolved(self, callback: Callable[[dict[str, Any]], None]) -> None:
        """
        Register a continuation invoked once with the resolved attributes.

        If the future is already resolved the callback runs immediately.
        """
        with self._lock:
            if self._state == _PENDING:
                self._resolved_callbacks.append(callback)
                return
            run_now = self._state == _RESOLVED
            attributes = dict(self._attributes)
        if run_now:
            callback(attributes)

    def on_failed(self, callback: Callable[[BaseException], None]) -> None:
        """Register a continuation invoked once if the future fails."""
        with self._lock:
            if self._state == _PENDING:
                self._failed_callbacks.append(callback)
                return
            run_now = self._state == _FAILED
            error = self._error
        if run_now:
            callback(error)

    def resolve(self, attributes: dict[str, Any]) -> None:
        """
        Fulfil the future. Allowed exactly once.

        Raises:
            RuntimeError: If the future was already fulfilled or failed
        """
        with self._lock:
            if self._state != _PENDING:
                raise RuntimeError(f"Attribute future of '{self.owner}' is already {self._state}")
            self._attributes = dict(attributes)
            self._state = _RESOLVED
            callbacks, self._resolved_callbacks = self._resolved_callbacks, []
            self._failed_callbacks = []
        for callback in callbacks:
            callback(dict(self._attributes))

    def fail(self, error: BaseException) -> None:
        """Mark the future as never going to resolve."""
        with self._lock:
            if self._state != _PENDING:
                raise RuntimeError(f"Attribute future of '{self.owner}' is already {self._state}")
            self._error = error
            self._state = _FAILED
            callbacks, self._failed_callbacks = self._failed_callbacks, []
            self._resolved_callbacks = []
        for callback in callbacks:
            callback(error)

    def attributes(self) -> dict[str, Any]:
        """Return a copy of the resolved attributes."""
        if self._state != _RESOLVED:
            raise UnresolvedReference(self.owner, reason=f"resource is {self._state}")
        return dict(self._attributes)

    def get(self, attribute_path: str) -> Any:
        """
        Read one resolved attribute.

        Raises:
            UnresolvedReference: If the future is not resolved or the
                attribute was not returned by the remote call
        """
        if self._state != _RESOLVED:
            raise UnresolvedReference(
                self.owner, attribute_path, reason=f"resource is {self._state}"
            )
        try:
            return lookup_attribute(self._attributes, attribute_path)
        except KeyError:
            raise UnresolvedReference(
                self.owner, attribute_path, reason="attribute was not returned by the provider"
            ) from None

    def __repr__(self) -> str:
        return f"AttributeFuture(owner='{self.owner}', state='{self._state}')"
