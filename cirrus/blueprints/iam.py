"""
Role/policy binding for function execution roles.

A role moves through NotCreated -> RoleCreated -> PoliciesAttached. The
role is created with its trust policy first; each policy attachment then
depends on the role but not on the other attachments, so they may be
provisioned concurrently.

The control plane does not promise that attachments are visible by the
time the role is, so consumers that need the policies in effect on first
use must depend on the attachments too. RoleBinding.ready_dependencies()
turns that choice into explicit dependencies.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TYPE_CHECKING

from cirrus.core.declaration import Declaration, Reference, ResourceKind

if TYPE_CHECKING:
    from cirrus.core.stack import Stack
    from cirrus.execution.records import ApplyReport

POLICY_VERSION = "2012-10-17"

DYNAMODB_FULL_ACCESS = "arn:aws:iam::aws:policy/AmazonDynamoDBFullAccess"
S3_FULL_ACCESS = "arn:aws:iam::aws:policy/AmazonS3FullAccess"


def lambda_trust_policy(service: str = "lambda.amazonaws.com") -> dict[str, Any]:
    """Trust policy letting a service principal assume the role."""
    return {
        "Version": POLICY_VERSION,
        "Statement": [
            {
                "Action": "sts:AssumeRole",
                "Principal": {"Service": service},
                "Effect": "Allow",
                "Sid": "",
            }
        ],
    }


class RoleState(str, Enum):
    NOT_CREATED = "NotCreated"
    ROLE_CREATED = "RoleCreated"
    POLICIES_ATTACHED = "PoliciesAttached"


@dataclass
class RoleBinding:
    """
    A role and the policy attachments bound to it.

    Attributes:
        role: The Role declaration
        attachments: One PolicyAttachment declaration per policy
        require_policies: Whether consumers wait for PoliciesAttached
            (True) or only for RoleCreated (False)
    """

    role: Declaration
    attachments: list[Declaration] = field(default_factory=list)
    require_policies: bool = True

    @property
    def logical_name(self) -> str:
        return self.role.logical_name

    @property
    def arn(self) -> Reference:
        return self.role.attr("arn")

    def attr(self, attribute_path: str) -> Reference:
        return self.role.attr(attribute_path)

    def ready_dependencies(self) -> list[str]:
        """Logical names a consumer of this role must depend on."""
        names = [self.role.logical_name]
        if self.require_policies:
            names.extend(attachment.logical_name for attachment in self.attachments)
        return names

    def state(self, report: "ApplyReport") -> RoleState:
        """Where the role stands after an apply."""
        from cirrus.execution.records import Status

        record = report.records.get(self.role.logical_name)
        if record is None or record.status is not Status.CREATED:
            return RoleState.NOT_CREATED
        for attachment in self.attachments:
            attached = report.records.get(attachment.logical_name)
            if attached is None or attached.status is not Status.CREATED:
                return RoleState.ROLE_CREATED
        return RoleState.POLICIES_ATTACHED


def bind_role(
    stack: "Stack",
    logical_name: str,
    role_name: str,
    policies: dict[str, str] | None = None,
    trust_policy: dict[str, Any] | None = None,
    require_policies: bool = True,
) -> RoleBinding:
    """
    Declare a role and attach managed policies to it.

    Args:
        stack: Stack to declare into
        logical_name: Logical name of the role
        role_name: Name of the role in the account
        policies: Attachment suffix -> policy ARN; each attachment is named
            f"{logical_name}{suffix}Attachment"
        trust_policy: Assume-role policy document (defaults to the
            function service principal)
        require_policies: See RoleBinding.require_policies

    Returns:
        RoleBinding

    Example:
        binding = bind_role(
            stack,
            "controllerLambdaRole",
            "controller_lambda_role",
            policies={"Dynamo": DYNAMODB_FULL_ACCESS, "S3": S3_FULL_ACCESS},
        )
    """
    role = stack.declare(
        ResourceKind.ROLE,
        logical_name,
        {
            "name": role_name,
            "assume_role_policy": trust_policy or lambda_trust_policy(),
        },
    )

    attachments = [
        stack.declare(
            ResourceKind.POLICY_ATTACHMENT,
            f"{logical_name}{suffix}Attachment",
            {"role": role.attr("name"), "policy_arn": policy_arn},
            depends_on=[role],
        )
        for suffix, policy_arn in (policies or {}).items()
    ]

    return RoleBinding(role=role, attachments=attachments, require_policies=require_policies)
