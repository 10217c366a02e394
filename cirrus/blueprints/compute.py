"""
Function declarations.
"""

from typing import Any, TYPE_CHECKING

from cirrus.blueprints.iam import RoleBinding
from cirrus.core.declaration import Declaration, ResourceKind

if TYPE_CHECKING:
    from cirrus.core.stack import Stack


def declare_function(
    stack: "Stack",
    logical_name: str,
    role: RoleBinding | Declaration,
    runtime: str,
    handler: str,
    code: str,
    name: str | None = None,
    timeout: int = 29,
    memory_size: int | None = None,
    environment: dict[str, str] | None = None,
) -> Declaration:
    """
    Declare a function that runs under an execution role.

    When given a RoleBinding, the function also depends on whatever the
    binding says must be in place before first use.

    Args:
        stack: Stack to declare into
        logical_name: Logical name of the function
        role: Role binding (or bare Role declaration)
        runtime: Runtime identifier, e.g. "java21"
        handler: Handler entry point
        code: Path of the deployment archive
        name: Function name in the account (defaults to logical_name)
        timeout: Timeout in seconds (1-900)
        memory_size: Memory in MB
        environment: Environment variables

    Returns:
        The Function declaration
    """
    properties: dict[str, Any] = {
        "name": name or logical_name,
        "role": role.attr("arn"),
        "runtime": runtime,
        "handler": handler,
        "timeout": timeout,
        "code": code,
    }
    if memory_size is not None:
        properties["memory_size"] = memory_size
    if environment:
        properties["environment"] = {"variables": dict(environment)}

    depends_on = role.ready_dependencies() if isinstance(role, RoleBinding) else [role]
    return stack.declare(ResourceKind.FUNCTION, logical_name, properties, depends_on=depends_on)
