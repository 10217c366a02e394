"""
Error taxonomy for Cirrus deployments.

Construction-time errors (CyclicDependency, UnresolvedReference,
ValidationError) abort a deployment before any remote call is issued.
Runtime errors (RemoteCallFailure, UpstreamFailed) are recorded per
declaration and reported alongside everything that still succeeded.
"""


class CirrusError(Exception):
    """Base class for all Cirrus errors."""
    pass


class CyclicDependency(CirrusError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(
            "Cyclic dependency between declarations: " + " -> ".join(self.cycle)
        )


class UnresolvedReference(CirrusError):
    """
    Raised when a Reference cannot be resolved.

    This always indicates a bug in how declarations were wired together,
    never a runtime race, and is fatal for the whole deployment.
    """

    def __init__(self, logical_name: str, attribute_path: str | None = None, reason: str = ""):
        self.logical_name = logical_name
        self.attribute_path = attribute_path
        # Set by the scheduler when the error aborts an apply: what the run
        # managed to provision before it stopped.
        self.report = None
        target = logical_name if attribute_path is None else f"{logical_name}.{attribute_path}"
        message = f"Unresolved reference to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ValidationError(CirrusError):
    """Raised when a declaration carries an invalid literal value."""

    def __init__(self, logical_name: str, message: str):
        self.logical_name = logical_name
        super().__init__(f"Invalid declaration '{logical_name}': {message}")


class DuplicateDeclaration(ValidationError):
    """Raised when two declarations share a logical name."""

    def __init__(self, logical_name: str):
        super().__init__(logical_name, "logical name is already declared")


class RemoteCallFailure(CirrusError):
    """
    Raised by a remote call layer when a create/update/delete call fails.

    The scheduler records it against the declaration that issued the call.
    Retrying transient failures is the call layer's job, not the scheduler's.
    """

    def __init__(self, logical_name: str, reason: str, transient: bool = False):
        self.logical_name = logical_name
        self.reason = reason
        self.transient = transient
        super().__init__(f"Remote call for '{logical_name}' failed: {reason}")


class UpstreamFailed(CirrusError):
    """Derived failure for a declaration whose dependency failed."""

    def __init__(self, logical_name: str, cause: str):
        self.logical_name = logical_name
        self.cause = cause
        super().__init__(f"'{logical_name}' skipped: upstream '{cause}' failed")
