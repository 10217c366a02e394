"""
Provisioning records and the per-run apply report.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cirrus.core.errors import CirrusError


class Status(str, Enum):
    PENDING = "Pending"
    IN_FLIGHT = "InFlight"
    CREATED = "Created"
    FAILED = "Failed"
    UPSTREAM_FAILED = "UpstreamFailed"


_TRANSITIONS = {
    Status.PENDING: {Status.IN_FLIGHT, Status.CREATED, Status.UPSTREAM_FAILED},
    Status.IN_FLIGHT: {Status.CREATED, Status.FAILED},
    Status.CREATED: set(),
    Status.FAILED: set(),
    Status.UPSTREAM_FAILED: set(),
}


@dataclass
class ProvisioningRecord:
    """
    Provisioning state of one declaration during a run.

    Transitions are published under the record's own lock and only move
    forward: Pending -> InFlight -> Created | Failed, or
    Pending -> UpstreamFailed.
    """

    logical_name: str
    fingerprint: str = ""
    status: Status = Status.PENDING
    resource_id: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    """Properties sent to the call layer, with references substituted"""

    resolved_attributes: dict[str, Any] = field(default_factory=dict)
    error: CirrusError | None = None
    cause: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def transition(
        self,
        status: Status,
        *,
        resource_id: str | None = None,
        attributes: dict[str, Any] | None = None,
        properties: dict[str, Any] | None = None,
        error: CirrusError | None = None,
        cause: str | None = None,
    ) -> None:
        """
        Move the record to a new status.

        Raises:
            RuntimeError: If the transition is not allowed
        """
        with self._lock:
            if status not in _TRANSITIONS[self.status]:
                raise RuntimeError(
                    f"Illegal transition for '{self.logical_name}': "
                    f"{self.status.value} -> {status.value}"
                )
            self.status = status
            if resource_id is not None:
                self.resource_id = resource_id
            if attributes is not None:
                self.resolved_attributes = dict(attributes)
            if properties is not None:
                self.properties = dict(properties)
            self.error = error
            self.cause = cause

    def outcome(self) -> str:
        """User-facing summary of how the declaration ended up."""
        if self.status is Status.CREATED:
            return "Created"
        if self.status is Status.FAILED:
            reason = getattr(self.error, "reason", None) or str(self.error)
            return f"Failed: {reason}"
        if self.status is Status.UPSTREAM_FAILED:
            return f"Skipped: UpstreamFailed({self.cause})"
        if self.status is Status.PENDING:
            return "Skipped: Cancelled"
        return self.status.value


@dataclass
class ApplyReport:
    """
    Terminal state of every declaration after an apply.

    The report lists records in declaration order. It is also what a rerun
    passes back as resume_from to skip work that already succeeded.
    """

    records: dict[str, ProvisioningRecord]
    order: list[str] = field(default_factory=list)
    """Logical names in the order their remote calls were issued"""

    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return all(record.status is Status.CREATED for record in self.records.values())

    def by_status(self, status: Status) -> list[str]:
        return [name for name, record in self.records.items() if record.status is status]

    @property
    def created(self) -> list[str]:
        return self.by_status(Status.CREATED)

    @property
    def failed(self) -> list[str]:
        return self.by_status(Status.FAILED)

    @property
    def upstream_failed(self) -> list[str]:
        return self.by_status(Status.UPSTREAM_FAILED)

    @property
    def pending(self) -> list[str]:
        return self.by_status(Status.PENDING)

    def attributes(self) -> dict[str, dict[str, Any]]:
        """Resolved attributes of every Created declaration."""
        return {
            name: dict(record.resolved_attributes)
            for name, record in self.records.items()
            if record.status is Status.CREATED
        }

    def outcomes(self) -> dict[str, str]:
        return {name: record.outcome() for name, record in self.records.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "cancelled": self.cancelled,
            "resources": [
                {
                    "name": name,
                    "status": record.status.value,
                    "outcome": record.outcome(),
                    "id": record.resource_id,
                    "attributes": record.resolved_attributes,
                }
                for name, record in self.records.items()
            ],
        }
