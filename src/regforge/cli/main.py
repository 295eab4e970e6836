"""Click CLI group: validate, plan, preview and diff commands."""

from __future__ import annotations

import json
from pathlib import Path

import click

from regforge.config import RunContext, get_settings, validate_settings_for_env
from regforge.errors import RegforgeError
from regforge.graph import ResourceGraph, diff_graphs
from regforge.logging import configure_from_settings
from regforge.planner import load_config, plan_registry
from regforge.provisioning import DryRunEngine, apply_graph
from regforge.reuse import TransitionAction
from regforge.toggles import ResolvedConfig

_CONFIG_PATH = click.Path(exists=True, dir_okay=False, path_type=Path)


def _context(ctx: click.Context) -> RunContext:
    return ctx.obj["context"]


def _plan(ctx: click.Context, path: Path) -> tuple[ResolvedConfig, ResourceGraph]:
    try:
        return plan_registry(load_config(path), _context(ctx))
    except RegforgeError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option("--region", type=str, default=None, help="Override AWS_REGION.")
@click.option("--account-id", type=str, default=None, help="Override AWS_ACCOUNT_ID.")
@click.pass_context
def cli(ctx: click.Context, region: str | None, account_id: str | None) -> None:
    """Compose container registry resources from a JSON config."""
    settings = get_settings()
    configure_from_settings(settings)
    try:
        validate_settings_for_env(settings)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    context = RunContext.from_settings(settings)
    context = RunContext(
        region=region or context.region,
        account_id=account_id or context.account_id,
        partition=context.partition,
    )
    ctx.ensure_object(dict)
    ctx.obj["context"] = context


@cli.command()
@click.argument("config_path", type=_CONFIG_PATH)
@click.pass_context
def validate(ctx: click.Context, config_path: Path) -> None:
    """Check a config and print the resolved toggle set."""
    config, _graph = _plan(ctx, config_path)
    click.echo(f"config ok: {config.name}")
    for key, value in config.toggles.to_dict().items():
        click.echo(f"  {key}: {value}")


@cli.command()
@click.argument("config_path", type=_CONFIG_PATH)
@click.option("--json", "json_output", is_flag=True, help="Print the full plan as JSON.")
@click.pass_context
def plan(ctx: click.Context, config_path: Path, json_output: bool) -> None:
    """Print the ordered resource intents for a config."""
    _config, graph = _plan(ctx, config_path)
    if json_output:
        click.echo(graph.to_json())
        return
    for intent in graph.intents:
        marker = "+" if intent.cardinality else " "
        deps = f" <- {', '.join(intent.depends_on)}" if intent.depends_on else ""
        guard = " [retain]" if intent.lifecycle.prevent_destroy else ""
        click.echo(f"{marker} {intent.address}{deps}{guard}")
    click.echo(f"{len(graph.created())} of {len(graph.intents)} resources will be created")


@cli.command()
@click.argument("config_path", type=_CONFIG_PATH)
@click.pass_context
def preview(ctx: click.Context, config_path: Path) -> None:
    """Apply the plan to the dry-run engine and print resolved outputs."""
    _config, graph = _plan(ctx, config_path)
    report = apply_graph(graph, DryRunEngine(_context(ctx)))
    click.echo(json.dumps(report.resolve_outputs(graph.outputs), indent=2))
    if not report.ok:
        raise click.ClickException("dry run reported failures")


@cli.command()
@click.argument("previous_path", type=_CONFIG_PATH)
@click.argument("current_path", type=_CONFIG_PATH)
@click.pass_context
def diff(ctx: click.Context, previous_path: Path, current_path: Path) -> None:
    """Show the transitions between two configs of the same registry."""
    _prev_config, previous = _plan(ctx, previous_path)
    _config, current = _plan(ctx, current_path)
    transitions = [
        item for item in diff_graphs(previous, current) if item.action is not TransitionAction.KEEP
    ]
    if not transitions:
        click.echo("no changes")
        return
    for item in transitions:
        click.echo(f"{item.action.value:8} {item.address}")


def main() -> None:
    cli(obj={})
