"""
Execution of deployments.

The Scheduler walks a dependency graph and issues remote calls through a
RemoteCallLayer; the ApplyReport records how each declaration ended up.
"""

from cirrus.execution.records import ApplyReport, ProvisioningRecord, Status
from cirrus.execution.scheduler import Scheduler

__all__ = [
    "ApplyReport",
    "ProvisioningRecord",
    "Scheduler",
    "Status",
]
