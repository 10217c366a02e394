"""
Tests for property validation and configuration loading.
"""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from cirrus.blueprints.iam import lambda_trust_policy
from cirrus.config.provider import OrchestratorConfig, load_config
from cirrus.config.resources import validate_declaration
from cirrus.core.declaration import Declaration, Reference, ResourceKind
from cirrus.core.errors import DuplicateDeclaration, ValidationError
from cirrus.core.stack import Stack


def _function(**overrides):
    properties = {
        "role": Reference("role", "arn"),
        "runtime": "java21",
        "handler": "org.example.Handler::handleRequest",
        "code": "target/fn.jar",
        "timeout": 29,
    }
    properties.update(overrides)
    return Declaration("fn", ResourceKind.FUNCTION, properties)


class TestPropertyValidation:
    """Tests for per-kind property validation."""

    def test_valid_function(self):
        validate_declaration(_function())

    def test_function_timeout_out_of_bounds(self):
        with pytest.raises(ValidationError) as excinfo:
            validate_declaration(_function(timeout=901))

        assert "timeout" in str(excinfo.value)
        assert excinfo.value.logical_name == "fn"

    def test_reference_values_are_not_checked(self):
        validate_declaration(_function(timeout=Reference("settings", "timeout")))

    def test_missing_required_property(self):
        declaration = Declaration("fn", ResourceKind.FUNCTION, {"runtime": "java21"})

        with pytest.raises(ValidationError) as excinfo:
            validate_declaration(declaration)

        assert "role" in str(excinfo.value)
        assert "handler" in str(excinfo.value)

    def test_role_accepts_json_trust_policy(self):
        declaration = Declaration(
            "role", ResourceKind.ROLE, {"assume_role_policy": json.dumps(lambda_trust_policy())}
        )

        validate_declaration(declaration)

    def test_role_rejects_policy_without_statements(self):
        declaration = Declaration(
            "role", ResourceKind.ROLE, {"assume_role_policy": {"Version": "2012-10-17", "Statement": []}}
        )

        with pytest.raises(ValidationError):
            validate_declaration(declaration)

    def test_table_stream_requires_view_type(self):
        declaration = Declaration(
            "video",
            ResourceKind.TABLE,
            {"hash_key": "id", "attributes": [{"name": "id", "type": "S"}], "stream_enabled": True},
        )

        with pytest.raises(ValidationError):
            validate_declaration(declaration)

    def test_table_range_key_needs_attribute(self):
        declaration = Declaration(
            "video",
            ResourceKind.TABLE,
            {"hash_key": "id", "range_key": "epoch", "attributes": [{"name": "id", "type": "S"}]},
        )

        with pytest.raises(ValidationError) as excinfo:
            validate_declaration(declaration)

        assert "epoch" in str(excinfo.value)

    def test_bucket_name(self):
        with pytest.raises(ValidationError):
            validate_declaration(Declaration("raw", ResourceKind.BUCKET, {"bucket": "Not_A_Bucket"}))

    def test_method_verb(self):
        declaration = Declaration(
            "method",
            ResourceKind.METHOD,
            {
                "rest_api": Reference("api", "id"),
                "resource_id": Reference("resource", "id"),
                "http_method": "FETCH",
                "authorization": "AWS_IAM",
            },
        )

        with pytest.raises(ValidationError):
            validate_declaration(declaration)

    def test_duplicate_logical_name(self):
        stack = Stack(name="dupes")
        stack.declare(ResourceKind.BUCKET, "raw", {"bucket": "raw-bucket"})

        with pytest.raises(DuplicateDeclaration):
            stack.declare(ResourceKind.BUCKET, "raw", {"bucket": "other-bucket"})


class TestLoadConfig:
    """Tests for configuration loading."""

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        for name in ("AWS_REGION", "AWS_PROFILE", "AWS_ACCOUNT_ID", "CIRRUS_MAX_WORKERS", "CIRRUS_STAGE"):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = load_config()

        assert config == OrchestratorConfig()
        assert config.aws.region == "us-east-1"
        assert config.max_workers == 4

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "eu-central-1")
        monkeypatch.setenv("CIRRUS_MAX_WORKERS", "8")

        config = load_config()

        assert config.aws.region == "eu-central-1"
        assert config.max_workers == 8

    def test_file_overrides_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "eu-central-1")
        monkeypatch.setenv("AWS_ACCOUNT_ID", "111111111111")
        path = tmp_path / "cirrus.yaml"
        path.write_text("aws:\n  region: ap-south-1\nstage_name: prod\n")

        config = load_config(path)

        assert config.aws.region == "ap-south-1"
        assert config.aws.account_id == "111111111111"
        assert config.stage_name == "prod"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "cirrus.yaml"
        path.write_text("aws: [unterminated\n")

        with pytest.raises(ValueError):
            load_config(path)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "cirrus.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError):
            load_config(path)

    def test_worker_bound(self, tmp_path):
        path = tmp_path / "cirrus.yaml"
        path.write_text("max_workers: 0\n")

        with pytest.raises(PydanticValidationError):
            load_config(path)
