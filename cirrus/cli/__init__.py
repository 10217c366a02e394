"""Command-line interface for Cirrus stacks."""

from cirrus.cli.main import cli

__all__ = [
    "cli",
]
