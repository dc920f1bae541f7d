"""Command-line interface for Stheno.

This module defines the CLI commands using Click framework. Every build
target is its own command, so ``stheno build:prod`` runs the production
build and a bare ``stheno`` runs ``default`` (build, watch and serve).

Commands:
- <target>: Run the task graph of a target (see ``stheno tasks``).
- tasks: List targets and the tasks they run.
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from . import __version__
from .config import ConfigError, load_config
from .graph import GraphError
from .reporting import ConsoleReporter
from .scheduler import RunResult, run_graph
from .targets import TARGETS, Target, build_graph, resolve_config


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="stheno")
@click.option(
    "--jobs",
    "-j",
    type=click.IntRange(min=1),
    required=False,
    help="Maximum number of tasks running at once",
)
@click.pass_context
def cli(ctx: click.Context, jobs: int | None):
    """Stheno asset pipeline for Jekyll sites."""
    ctx.ensure_object(dict)
    ctx.obj["jobs"] = jobs
    if ctx.invoked_subcommand is None:
        _run_target(TARGETS["default"], jobs)


@cli.command()
def tasks():
    """List targets and the tasks they run."""
    width = max(len(name) for name in TARGETS)
    for target in TARGETS.values():
        order = " -> ".join(build_graph(target.name).topological_order())
        click.echo(f"{click.style(target.name.ljust(width), fg='cyan')}  {target.description}")
        click.echo(f"{' ' * width}  {click.style(order, fg='bright_black')}")


def _run_target(
    target: Target,
    jobs: int | None,
    port: int | None = None,
    ws_port: int | None = None,
) -> RunResult:
    project_root = Path.cwd()
    try:
        config = resolve_config(target.name, load_config(project_root), os.environ)
        graph = build_graph(target.name)
    except (ConfigError, GraphError) as exc:
        raise click.ClickException(str(exc)) from None
    config = config.with_ports(port, ws_port)

    try:
        result = run_graph(graph, config, max_workers=jobs, reporter=ConsoleReporter())
    except KeyboardInterrupt:
        click.echo(click.style("Interrupted", fg="yellow"), err=True)
        raise SystemExit(130) from None

    if not result.succeeded:
        failure = result.first_failure
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        if failure is not None:
            click.echo(click.style(f"  Task: {failure.name}", fg="yellow"), err=True)
            click.echo(click.style(f"  Error: {failure.error}", fg="white"), err=True)
        raise SystemExit(1)
    return result


def _make_command(target: Target) -> click.Command:
    params: list[click.Parameter] = []
    if target.serves:
        params = [
            click.Option(
                ["--port"],
                type=int,
                required=False,
                help="Port to run the dev server (overrides stheno.yaml)",
            ),
            click.Option(
                ["--ws-port"],
                type=int,
                required=False,
                help="Port for the live reload websocket server",
            ),
        ]

    @click.pass_context
    def callback(ctx: click.Context, port: int | None = None, ws_port: int | None = None):
        _run_target(target, ctx.obj.get("jobs"), port=port, ws_port=ws_port)

    return click.Command(
        target.name,
        callback=callback,
        params=params,
        help=target.description,
    )


for _target in TARGETS.values():
    cli.add_command(_make_command(_target))


def main():
    """Entry point for the CLI application."""
    cli(obj={})
