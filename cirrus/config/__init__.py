"""
Configuration for Cirrus deployments.

Provider settings, orchestrator settings, and per-kind property
validation models.
"""

from cirrus.config.provider import (
    AwsConfig,
    OrchestratorConfig,
    load_config,
)
from cirrus.config.resources import (
    MAX_INTEGRATION_TIMEOUT_MS,
    MAX_FUNCTION_TIMEOUT_S,
    validate_declaration,
    validate_declarations,
)

__all__ = [
    # Provider configs
    "AwsConfig",
    "OrchestratorConfig",
    "load_config",
    # Property validation
    "MAX_INTEGRATION_TIMEOUT_MS",
    "MAX_FUNCTION_TIMEOUT_S",
    "validate_declaration",
    "validate_declarations",
]
