"""
Video pipeline blueprint.

    POST /video -> controller function -> video table
    video table stream -> search transformer function

Each function runs under its own role with table and bucket access, and a
bucket holds the raw uploads.
"""

from cirrus.blueprints.apigateway import assemble_rest_api, grant_api_invoke
from cirrus.blueprints.compute import declare_function
from cirrus.blueprints.iam import DYNAMODB_FULL_ACCESS, S3_FULL_ACCESS, bind_role
from cirrus.blueprints.storage import declare_bucket, declare_table
from cirrus.blueprints.streams import StartingPosition, bind_stream
from cirrus.config.provider import OrchestratorConfig
from cirrus.core.stack import Stack

FUNCTION_POLICIES = {"Dynamo": DYNAMODB_FULL_ACCESS, "S3": S3_FULL_ACCESS}


def video_pipeline(config: OrchestratorConfig | None = None) -> Stack:
    """
    Build the complete video pipeline stack.

    Args:
        config: Orchestrator configuration (region, stage, function code)

    Returns:
        Stack with every declaration of the deployment
    """
    config = config or OrchestratorConfig()
    stack = Stack(name="video-pipeline")

    controller_role = bind_role(
        stack, "controllerLambdaRole", "controller_lambda_role", policies=FUNCTION_POLICIES
    )
    controller = declare_function(
        stack,
        "controllerLambda",
        role=controller_role,
        name="controller_lambda",
        runtime=config.function_runtime,
        handler="org.hemz.ExampleHandler::handleRequest",
        code=config.function_code,
        timeout=29,
    )

    api = assemble_rest_api(
        stack,
        "video-api",
        function=controller,
        region=config.aws.region,
        path_part="video",
        http_method="POST",
        authorization="AWS_IAM",
        timeout_ms=29000,
        stage_name=config.stage_name,
    )
    grant_api_invoke(
        stack, "videoAPIPermission", api, controller, statement_id="AllowVideoAPIInvoke"
    )

    table = declare_table(
        stack,
        "video",
        name="video",
        hash_key="id",
        range_key="epoch",
        attributes={"id": "S", "epoch": "N"},
        read_capacity=5,
        write_capacity=5,
        stream_view_type="NEW_AND_OLD_IMAGES",
    )

    transformer_role = bind_role(
        stack, "openSearchTransformerRole", "open_search_transformer_role", policies=FUNCTION_POLICIES
    )
    transformer = declare_function(
        stack,
        "opensearchTransformer",
        role=transformer_role,
        name="open_search_transformer",
        runtime=config.function_runtime,
        handler="org.hemz.OpensearchTransformer::handleRequest",
        code=config.function_code,
        timeout=29,
    )

    bind_stream(
        stack,
        "openSearchLambdaTrigger",
        table=table,
        consumer=transformer,
        starting_position=StartingPosition.LATEST,
        tags={"Name": "dynamodb-stream-mapping"},
    )

    declare_bucket(stack, "rawVideoBucket", bucket="raw-video-bucket-hemd-123")

    return stack


def build_stack(config: OrchestratorConfig) -> Stack:
    """Entry point the CLI looks for in stack modules."""
    return video_pipeline(config)
