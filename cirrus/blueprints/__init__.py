"""
Blueprints: helpers that declare groups of related resources with the
dependency wiring they need.
"""

from cirrus.blueprints.apigateway import (
    ApiTree,
    assemble_rest_api,
    grant_api_invoke,
    invocation_uri,
)
from cirrus.blueprints.compute import declare_function
from cirrus.blueprints.iam import (
    DYNAMODB_FULL_ACCESS,
    S3_FULL_ACCESS,
    RoleBinding,
    RoleState,
    bind_role,
    lambda_trust_policy,
)
from cirrus.blueprints.storage import declare_bucket, declare_table
from cirrus.blueprints.streams import StartingPosition, bind_stream
from cirrus.blueprints.video import video_pipeline

__all__ = [
    "ApiTree",
    "DYNAMODB_FULL_ACCESS",
    "RoleBinding",
    "RoleState",
    "S3_FULL_ACCESS",
    "StartingPosition",
    "assemble_rest_api",
    "bind_role",
    "bind_stream",
    "declare_bucket",
    "declare_function",
    "declare_table",
    "grant_api_invoke",
    "invocation_uri",
    "lambda_trust_policy",
    "video_pipeline",
]
