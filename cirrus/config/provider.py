"""
Provider and orchestrator configuration.

Configuration can be loaded from a YAML file, from environment variables,
or built directly in code.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class AwsConfig(BaseModel):
    """
    AWS target configuration.

    Example:
        aws_config = AwsConfig(
            region="us-east-1",
            account_id="123456789012",
            tags={"environment": "dev", "managed_by": "cirrus"}
        )
    """

    region: str = Field(default="us-east-1", description="AWS region")
    profile: str | None = Field(default=None, description="AWS profile name")
    account_id: str = Field(default="000000000000", description="AWS account ID")
    tags: dict[str, str] = Field(
        default_factory=dict, description="Default tags for all resources"
    )


class OrchestratorConfig(BaseModel):
    """
    Settings for a deployment run.

    Example:
        config = OrchestratorConfig(
            aws=AwsConfig(region="eu-west-1"),
            max_workers=8,
            stage_name="prod",
        )
    """

    aws: AwsConfig = Field(default_factory=AwsConfig)
    max_workers: int = Field(
        default=4, ge=1, le=64, description="Maximum concurrent remote calls"
    )
    stage_name: str = Field(default="dev", description="API stage to deploy")
    function_code: str = Field(
        default="target/lambda-test-1.0-SNAPSHOT.jar",
        description="Path of the function deployment archive",
    )
    function_runtime: str = Field(default="java21", description="Function runtime")


def _config_from_env() -> dict[str, Any]:
    """Collect configuration overrides from environment variables."""
    data: dict[str, Any] = {}
    aws: dict[str, Any] = {}
    if os.getenv("AWS_REGION"):
        aws["region"] = os.environ["AWS_REGION"]
    if os.getenv("AWS_PROFILE"):
        aws["profile"] = os.environ["AWS_PROFILE"]
    if os.getenv("AWS_ACCOUNT_ID"):
        aws["account_id"] = os.environ["AWS_ACCOUNT_ID"]
    if aws:
        data["aws"] = aws
    if os.getenv("CIRRUS_MAX_WORKERS"):
        data["max_workers"] = os.environ["CIRRUS_MAX_WORKERS"]
    if os.getenv("CIRRUS_STAGE"):
        data["stage_name"] = os.environ["CIRRUS_STAGE"]
    return data


def load_config(path: str | Path | None = None) -> OrchestratorConfig:
    """
    Load configuration.

    Values from the YAML file win over environment variables, which win
    over the defaults.

    Args:
        path: Optional YAML file

    Returns:
        Validated OrchestratorConfig

    Raises:
        FileNotFoundError: If path is given but does not exist
        ValueError: If the file is not a YAML mapping
        pydantic.ValidationError: If the merged configuration is invalid
    """
    data = _config_from_env()

    if path is not None:
        path = Path(path)
        with path.open("r", encoding="utf-8") as handle:
            try:
                file_data = yaml.safe_load(handle) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Cannot parse configuration file {path}: {e}") from e
        if not isinstance(file_data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        aws = {**data.get("aws", {}), **file_data.get("aws", {})}
        data.update(file_data)
        if aws:
            data["aws"] = aws

    return OrchestratorConfig.model_validate(data)
