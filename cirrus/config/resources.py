"""
Property validation for each resource kind.

Only literal property values are checked here; values that are still
References are validated by the provider once they resolve. Everything in
this module runs while planning, before any remote call is issued.
"""

import json
from typing import Any, Literal, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from cirrus.core.declaration import Declaration, ResourceKind, Reference, iter_references
from cirrus.core.errors import ValidationError

MAX_INTEGRATION_TIMEOUT_MS = 29000
"""Upper bound the API gateway allows for an integration timeout"""

MAX_FUNCTION_TIMEOUT_S = 900


class ResourceProperties(BaseModel):
    """Base model for literal resource properties."""

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)


class PolicyStatement(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    action: str | list[str] = Field(alias="Action")
    effect: Literal["Allow", "Deny"] = Field(alias="Effect")
    principal: dict[str, Any] | str | None = Field(default=None, alias="Principal")
    sid: str | None = Field(default=None, alias="Sid")


class PolicyDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: str = Field(alias="Version")
    statement: list[PolicyStatement] = Field(alias="Statement", min_length=1)


class RoleProperties(ResourceProperties):
    name: str | None = None
    assume_role_policy: PolicyDocument | None = None

    @field_validator("assume_role_policy", mode="before")
    @classmethod
    def _parse_json_policy(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value)
        return value


class PolicyAttachmentProperties(ResourceProperties):
    policy_arn: str | None = Field(default=None, pattern=r"^arn:aws[\w-]*:iam::")


class FunctionProperties(ResourceProperties):
    name: str | None = None
    runtime: str | None = None
    handler: str | None = None
    timeout: int | None = Field(
        default=None, ge=1, le=MAX_FUNCTION_TIMEOUT_S, description="Timeout in seconds (1-900)"
    )
    memory_size: int | None = Field(
        default=None, ge=128, le=10240, description="Memory allocation in MB (128-10240)"
    )
    code: str | None = None


class TableAttribute(BaseModel):
    name: str
    type: Literal["S", "N", "B"]


class TableProperties(ResourceProperties):
    name: str | None = None
    hash_key: str | None = None
    range_key: str | None = None
    read_capacity: int | None = Field(default=None, ge=1)
    write_capacity: int | None = Field(default=None, ge=1)
    attributes: list[TableAttribute] | None = None
    stream_enabled: bool = False
    stream_view_type: Literal["KEYS_ONLY", "NEW_IMAGE", "OLD_IMAGE", "NEW_AND_OLD_IMAGES"] | None = None

    @model_validator(mode="after")
    def _check_keys_and_stream(self) -> "TableProperties":
        if self.stream_enabled and self.stream_view_type is None:
            raise ValueError("stream_view_type is required when stream_enabled is set")
        if self.attributes is not None:
            declared = {attribute.name for attribute in self.attributes}
            for key in (self.hash_key, self.range_key):
                if key is not None and key not in declared:
                    raise ValueError(f"key '{key}' has no attribute definition")
        return self


class BucketProperties(ResourceProperties):
    bucket: str | None = Field(default=None, pattern=r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")


class ResourcePathProperties(ResourceProperties):
    path_part: str | None = Field(default=None, min_length=1)


class MethodProperties(ResourceProperties):
    http_method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "ANY"] | None = None
    authorization: Literal["NONE", "AWS_IAM", "CUSTOM", "COGNITO_USER_POOLS"] | None = None


class IntegrationProperties(ResourceProperties):
    type: Literal["AWS", "AWS_PROXY", "HTTP", "HTTP_PROXY", "MOCK"] | None = None
    integration_http_method: str | None = None
    timeout_milliseconds: int | None = Field(
        default=None,
        gt=0,
        le=MAX_INTEGRATION_TIMEOUT_MS,
        description="Integration timeout in milliseconds (max 29000)",
    )


class StageProperties(ResourceProperties):
    stage_name: str | None = Field(default=None, pattern=r"^[A-Za-z0-9_-]+$")


class PermissionProperties(ResourceProperties):
    action: str | None = None
    principal: str | None = None


class StreamBindingProperties(ResourceProperties):
    starting_position: Literal["LATEST", "TRIM_HORIZON"] | None = None
    batch_size: int | None = Field(default=None, ge=1, le=10000)


PROPERTY_MODELS: dict[ResourceKind, type[ResourceProperties]] = {
    ResourceKind.ROLE: RoleProperties,
    ResourceKind.POLICY_ATTACHMENT: PolicyAttachmentProperties,
    ResourceKind.FUNCTION: FunctionProperties,
    ResourceKind.TABLE: TableProperties,
    ResourceKind.BUCKET: BucketProperties,
    ResourceKind.RESOURCE: ResourcePathProperties,
    ResourceKind.METHOD: MethodProperties,
    ResourceKind.INTEGRATION: IntegrationProperties,
    ResourceKind.STAGE: StageProperties,
    ResourceKind.PERMISSION: PermissionProperties,
    ResourceKind.STREAM_BINDING: StreamBindingProperties,
}

REQUIRED_PROPERTIES: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.ROLE: ("assume_role_policy",),
    ResourceKind.POLICY_ATTACHMENT: ("role", "policy_arn"),
    ResourceKind.FUNCTION: ("role", "runtime", "handler", "code"),
    ResourceKind.TABLE: ("hash_key", "attributes"),
    ResourceKind.BUCKET: ("bucket",),
    ResourceKind.RESOURCE: ("rest_api", "parent_id", "path_part"),
    ResourceKind.METHOD: ("rest_api", "resource_id", "http_method", "authorization"),
    ResourceKind.INTEGRATION: ("rest_api", "resource_id", "http_method", "type", "uri"),
    ResourceKind.DEPLOYMENT: ("rest_api",),
    ResourceKind.STAGE: ("rest_api", "deployment", "stage_name"),
    ResourceKind.PERMISSION: ("action", "function", "principal"),
    ResourceKind.STREAM_BINDING: ("event_source_arn", "function_name", "starting_position"),
}


def _format_errors(error: PydanticValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "properties"
        messages.append(f"{location}: {item['msg']}")
    return "; ".join(messages)


def validate_declaration(declaration: Declaration) -> None:
    """
    Check one declaration's required properties and literal values.

    Raises:
        ValidationError: If a required property is missing or a literal is
            out of bounds
    """
    required = REQUIRED_PROPERTIES.get(declaration.kind, ())
    missing = [name for name in required if name not in declaration.properties]
    if missing:
        raise ValidationError(
            declaration.logical_name, f"missing required properties: {', '.join(missing)}"
        )

    model = PROPERTY_MODELS.get(declaration.kind)
    if model is None:
        return

    literals = {
        name: value
        for name, value in declaration.properties.items()
        if next(iter_references(value), None) is None
    }
    try:
        model.model_validate(literals)
    except PydanticValidationError as e:
        raise ValidationError(declaration.logical_name, _format_errors(e)) from e


def _validate_stream_source(binding: Declaration, by_name: dict[str, Declaration]) -> None:
    source = binding.properties.get("event_source_arn")
    if not isinstance(source, Reference):
        return
    table = by_name.get(source.logical_name)
    if table is None or table.kind is not ResourceKind.TABLE:
        return
    if not table.properties.get("stream_enabled"):
        raise ValidationError(
            binding.logical_name,
            f"table '{table.logical_name}' does not have streaming enabled",
        )


def validate_declarations(declarations: Iterable[Declaration]) -> None:
    """
    Validate every declaration, then the rules that span declarations.

    Raises:
        ValidationError: On the first invalid declaration
    """
    declarations = list(declarations)
    by_name = {declaration.logical_name: declaration for declaration in declarations}

    for declaration in declarations:
        validate_declaration(declaration)

    for declaration in declarations:
        if declaration.kind is ResourceKind.STREAM_BINDING:
            _validate_stream_source(declaration, by_name)
