"""
Cirrus CLI - plan and apply resource stacks.
"""

import click
import importlib
import importlib.util
import json
import logging
import signal
import sys
from typing import Any

from cirrus.config.provider import OrchestratorConfig, load_config
from cirrus.core.errors import CirrusError
from cirrus.core.stack import Stack
from cirrus.execution.records import ApplyReport, Status
from cirrus.execution.scheduler import Scheduler
from cirrus.providers.base import RemoteCallLayer
from cirrus.providers.memory import InMemoryProvider

EXIT_OK = 0
EXIT_FAILED = 1

_SYMBOLS = {
    Status.CREATED: "✓",
    Status.FAILED: "✗",
    Status.UPSTREAM_FAILED: "-",
    Status.PENDING: "-",
}


@click.group()
@click.version_option(version="0.1.0")
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML configuration file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool):
    """
    Cirrus - declarative provisioning for serverless pipelines.

    Declare resources in Python; Cirrus works out the order to create them in.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except (ValueError, OSError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


@cli.command()
@click.argument("stack_file", required=False, type=click.Path(exists=True))
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text")
@click.pass_context
def plan(ctx: click.Context, stack_file: str | None, output_format: str):
    """
    Validate a stack and show the order it would be provisioned in.

    No remote call is made. Without STACK_FILE the built-in video pipeline
    is planned.

    Example:
        cirrus plan
        cirrus plan stacks/video.py --format json
    """
    stack = _load_stack(stack_file, ctx.obj["config"])

    try:
        result = stack.plan()
    except CirrusError as e:
        click.echo(f"✗ Planning failed: {e}", err=True)
        sys.exit(EXIT_FAILED)

    if output_format == "json":
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
        return

    click.echo(f"\n Stack: {stack.name}")
    click.echo(f"{'=' * 50}")
    click.echo(f"\n Declarations: {len(result.order)}")
    for i, level in enumerate(result.levels, 1):
        click.echo(f"\n Level {i}:")
        for name in level:
            declaration = result.graph.nodes[name].declaration
            click.echo(f"  - {name} ({declaration.kind.value})")


@cli.command()
@click.argument("stack_file", required=False, type=click.Path(exists=True))
@click.option("--workers", "-w", type=click.IntRange(1, 64), help="Maximum concurrent remote calls")
@click.option(
    "--provider",
    "provider_path",
    help="Remote call layer factory as 'module:callable'; defaults to the in-memory provider",
)
@click.option("--fail", "failures", multiple=True, help="Make NAME's remote call fail (in-memory provider only)")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text")
@click.pass_context
def apply(
    ctx: click.Context,
    stack_file: str | None,
    workers: int | None,
    provider_path: str | None,
    failures: tuple[str, ...],
    output_format: str,
):
    """
    Provision a stack.

    Exits non-zero if any declaration fails or is skipped.

    Example:
        cirrus apply
        cirrus apply stacks/video.py --workers 8
        cirrus apply --fail video
    """
    config: OrchestratorConfig = ctx.obj["config"]
    stack = _load_stack(stack_file, config)
    provider = _load_provider(provider_path, config, failures)
    scheduler = Scheduler(provider, max_workers=workers or config.max_workers)

    previous_handler = signal.signal(signal.SIGINT, lambda *_: scheduler.cancel())
    try:
        report = stack.apply(provider, scheduler=scheduler)
    except CirrusError as e:
        click.echo(f"✗ Apply aborted: {e}", err=True)
        sys.exit(EXIT_FAILED)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if output_format == "json":
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        _print_report(stack, report)

    sys.exit(EXIT_OK if report.succeeded else EXIT_FAILED)


@cli.command()
@click.argument("stack_file", required=False, type=click.Path(exists=True))
@click.option("--format", "output_format", type=click.Choice(["text", "json", "mermaid"]), default="text")
@click.pass_context
def graph(ctx: click.Context, stack_file: str | None, output_format: str):
    """
    Show the dependency graph of a stack.

    Example:
        cirrus graph --format mermaid
    """
    stack = _load_stack(stack_file, ctx.obj["config"])

    try:
        dag = stack.plan().graph
    except CirrusError as e:
        click.echo(f"✗ Planning failed: {e}", err=True)
        sys.exit(EXIT_FAILED)

    if output_format == "json":
        click.echo(json.dumps(dag.to_dict(), indent=2))
    elif output_format == "mermaid":
        click.echo("```mermaid")
        click.echo("graph TD")
        for node_name, node in dag.nodes.items():
            for dep in node.dependencies:
                click.echo(f"  {dep} --> {node_name}")
        click.echo("```")
    else:
        for node_name, node in dag.nodes.items():
            deps = ", ".join(node.dependencies) or "-"
            click.echo(f"{node_name} <- {deps}")


def _print_report(stack: Stack, report: ApplyReport) -> None:
    click.echo(f"\n Stack: {stack.name}")
    click.echo(f"{'=' * 50}")
    for name, record in report.records.items():
        click.echo(f"  {_SYMBOLS.get(record.status, '?')} {name}: {record.outcome()}")

    click.echo(
        f"\n {len(report.created)} created, {len(report.failed)} failed, "
        f"{len(report.upstream_failed) + len(report.pending)} skipped"
    )
    if report.cancelled:
        click.echo(" Apply was cancelled; rerun to continue.")


def _load_stack(stack_file: str | None, config: OrchestratorConfig) -> Stack:
    """
    Load a stack from a Python file.

    The module may define build_stack(config) returning a Stack, or a
    module-level Stack instance.
    """
    if stack_file is None:
        from cirrus.blueprints.video import video_pipeline

        return video_pipeline(config)

    spec = importlib.util.spec_from_file_location("cirrus_stack_module", stack_file)
    if spec is None or spec.loader is None:
        raise click.ClickException(f"Cannot load {stack_file}")
    module = importlib.util.module_from_spec(spec)
    sys.modules["cirrus_stack_module"] = module
    spec.loader.exec_module(module)

    build = getattr(module, "build_stack", None)
    if callable(build):
        stack = build(config)
        if isinstance(stack, Stack):
            return stack

    for attr_name in dir(module):
        obj = getattr(module, attr_name)
        if isinstance(obj, Stack):
            return obj

    raise click.ClickException(f"No Stack found in {stack_file}")


def _load_provider(
    provider_path: str | None, config: OrchestratorConfig, failures: tuple[str, ...]
) -> RemoteCallLayer:
    if provider_path is None:
        return InMemoryProvider(
            config.aws, failures={name: "injected failure" for name in failures}
        )

    module_name, _, attr = provider_path.partition(":")
    if not attr:
        raise click.ClickException("--provider must look like 'module:callable'")
    try:
        factory: Any = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise click.ClickException(f"Cannot load provider {provider_path}: {e}") from e

    provider = factory(config)
    if not isinstance(provider, RemoteCallLayer):
        raise click.ClickException(f"{provider_path} did not return a RemoteCallLayer")
    return provider


if __name__ == "__main__":
    cli()
