"""
REST API resource tree assembly.

The tree is a fixed chain:

    RestApi -> Resource -> Method -> Integration -> Deployment -> Stage

Each link depends on the one before it. The Integration additionally waits
for the backend function's ARN, and the Deployment waits for both the
Integration and the Method: a deployment taken before its integration is
finalised serves a stage with stale or missing routing.
"""

from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

from cirrus.config.resources import MAX_INTEGRATION_TIMEOUT_MS
from cirrus.core.declaration import Declaration, ResourceKind
from cirrus.core.errors import ValidationError

if TYPE_CHECKING:
    from cirrus.core.stack import Stack

INVOCATION_URI_FORMAT = (
    "arn:aws:apigateway:{region}:lambda:path/2015-03-31/functions/{function_arn}/invocations"
)


def invocation_uri(region: str, function_arn: str) -> str:
    """
    Backend URI an Integration uses to invoke a function.

    Example:
        >>> invocation_uri("us-east-1", "fn-123")
        'arn:aws:apigateway:us-east-1:lambda:path/2015-03-31/functions/fn-123/invocations'
    """
    return INVOCATION_URI_FORMAT.format(region=region, function_arn=function_arn)


def _execution_source_arn(execution_arn: str) -> str:
    return f"{execution_arn}/*"


def validate_integration_timeout(logical_name: str, timeout_ms: int) -> None:
    """
    Raises:
        ValidationError: If timeout_ms is not within (0, 29000]
    """
    if timeout_ms <= 0 or timeout_ms > MAX_INTEGRATION_TIMEOUT_MS:
        raise ValidationError(
            logical_name,
            f"integration timeout must be between 1 and {MAX_INTEGRATION_TIMEOUT_MS} ms, got {timeout_ms}",
        )


@dataclass
class ApiTree:
    """Declarations making up one REST API route and its stage."""

    rest_api: Declaration
    resource: Declaration
    method: Declaration
    integration: Declaration
    deployment: Declaration
    stage: Declaration

    def chain(self) -> list[Declaration]:
        return [
            self.rest_api,
            self.resource,
            self.method,
            self.integration,
            self.deployment,
            self.stage,
        ]


def assemble_rest_api(
    stack: "Stack",
    name: str,
    function: Declaration,
    region: str,
    path_part: str,
    http_method: str = "POST",
    authorization: str = "AWS_IAM",
    integration_type: str = "AWS_PROXY",
    timeout_ms: int = MAX_INTEGRATION_TIMEOUT_MS,
    stage_name: str = "dev",
) -> ApiTree:
    """
    Declare a REST API with one path and method proxied to a function.

    Args:
        stack: Stack to declare into
        name: Logical name of the RestApi; the other links derive theirs
        function: Backend Function declaration
        region: Region used in the invocation URI
        path_part: Path segment under the API root
        http_method: Verb served by the Method
        authorization: Method authorization mode
        integration_type: Integration type
        timeout_ms: Integration timeout, at most 29000 ms
        stage_name: Name of the deployed stage

    Returns:
        ApiTree

    Raises:
        ValidationError: If timeout_ms is out of bounds
    """
    prefix = f"{name}-{path_part}"
    validate_integration_timeout(f"{prefix}-integration", timeout_ms)

    rest_api = stack.declare(ResourceKind.REST_API, name, {"name": name})

    resource = stack.declare(
        ResourceKind.RESOURCE,
        f"{prefix}-resource",
        {
            "rest_api": rest_api.attr("id"),
            "parent_id": rest_api.attr("root_resource_id"),
            "path_part": path_part,
        },
    )

    method = stack.declare(
        ResourceKind.METHOD,
        f"{prefix}-{http_method.lower()}-method",
        {
            "rest_api": rest_api.attr("id"),
            "resource_id": resource.attr("id"),
            "http_method": http_method,
            "authorization": authorization,
        },
    )

    integration = stack.declare(
        ResourceKind.INTEGRATION,
        f"{prefix}-integration",
        {
            "rest_api": rest_api.attr("id"),
            "resource_id": resource.attr("id"),
            "http_method": method.attr("http_method"),
            # Function invocations through the proxy are always POSTs.
            "integration_http_method": "POST",
            "type": integration_type,
            "uri": function.attr("arn").apply(partial(invocation_uri, region)),
            "timeout_milliseconds": timeout_ms,
        },
        depends_on=[function],
    )

    deployment = stack.declare(
        ResourceKind.DEPLOYMENT,
        f"{name}-deployment",
        {"rest_api": rest_api.attr("id")},
        depends_on=[integration, method],
    )

    stage = stack.declare(
        ResourceKind.STAGE,
        f"{name}-stage",
        {
            "rest_api": rest_api.attr("id"),
            "deployment": deployment.attr("id"),
            "stage_name": stage_name,
        },
    )

    return ApiTree(
        rest_api=rest_api,
        resource=resource,
        method=method,
        integration=integration,
        deployment=deployment,
        stage=stage,
    )


def grant_api_invoke(
    stack: "Stack",
    logical_name: str,
    api: ApiTree,
    function: Declaration,
    statement_id: str = "AllowAPIInvoke",
) -> Declaration:
    """Allow any route of the API to invoke the function."""
    return stack.declare(
        ResourceKind.PERMISSION,
        logical_name,
        {
            "statement_id": statement_id,
            "action": "lambda:InvokeFunction",
            "function": function.attr("name"),
            "principal": "apigateway.amazonaws.com",
            "source_arn": api.rest_api.attr("execution_arn").apply(_execution_source_arn),
        },
    )
