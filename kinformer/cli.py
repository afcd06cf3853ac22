"""
CLI commands for kinformer.

Provides the `kinformer` command-line interface for replaying change
scenarios against an in-memory store and inspecting configuration.
"""

import asyncio
import json
import logging
import sys
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kinformer import __version__
from kinformer.cache.memory import InMemoryCluster
from kinformer.config import ConfigurationLoader
from kinformer.errors import InformerError
from kinformer.models.config import InformerConfig, InformerSettings
from kinformer.models.events import EventType
from kinformer.models.objects import ResourceObject
from kinformer.sync.engine import DispatchContext, Informer

console = Console()


def _setup_logging(settings: InformerSettings, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)
    logging.basicConfig(level=level, format=settings.log_format)


@click.group()
@click.version_option(version=__version__, prog_name="kinformer")
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """
    kinformer CLI.

    Replay resource change scenarios through the informer dispatch queue.
    """
    settings = InformerSettings()
    _setup_logging(settings, verbose)
    ctx.obj = {"settings": settings}


def _load_config(ctx: click.Context, config_file: Optional[Path]) -> InformerConfig:
    settings: InformerSettings = ctx.obj["settings"]
    try:
        return ConfigurationLoader().load(config_file or settings.config_file)
    except InformerError as e:
        console.print(f"[red]❌ {escape(str(e))}[/red]")
        sys.exit(1)


@main.command()
@click.argument('scenario', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--config', 'config_file', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='JSON configuration file')
@click.option('--max-retries', type=int, default=None, help='Override max retries (negative = unlimited)')
@click.option('--fail-times', type=int, default=0, show_default=True,
              help='Make the handler fail this many times for every event before succeeding')
@click.pass_context
def replay(ctx: click.Context, scenario: Path, config_file: Optional[Path],
           max_retries: Optional[int], fail_times: int):
    """Replay a JSON change scenario against an in-memory store."""
    config = _load_config(ctx, config_file)
    if max_retries is not None:
        config.max_retries = max_retries

    try:
        with open(scenario, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]❌ Cannot read scenario {scenario}: {escape(str(e))}[/red]")
        sys.exit(1)

    try:
        rows, metrics = asyncio.run(run_scenario(data, config, fail_times))
    except (InformerError, KeyError, ValueError) as e:
        console.print(f"[red]❌ Replay failed: {escape(str(e))}[/red]")
        sys.exit(1)

    table = Table(title=f"Handler calls ({len(rows)})")
    table.add_column("Watch", style="cyan")
    table.add_column("Event", style="magenta")
    table.add_column("Object")
    table.add_column("Version", justify="right")
    table.add_column("Retry", justify="right")
    table.add_column("Result")
    for row in rows:
        table.add_row(*row)
    console.print(table)

    summary = Table(title="Metrics")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", justify="right")
    for name, value in metrics.items():
        if name != "queue":
            summary.add_row(name, str(value))
    for name, value in metrics["queue"].items():
        summary.add_row(f"queue.{name}", str(value))
    console.print(summary)


async def run_scenario(data: Dict[str, Any], config: InformerConfig, fail_times: int = 0):
    """Run one scenario and return (handler call rows, metrics)"""
    cluster = InMemoryCluster()
    for obj in data.get("objects", []):
        cluster.apply(obj)

    rows: List[List[str]] = []
    attempts: Dict[Any, int] = defaultdict(int)

    async def handler(ctx: DispatchContext, event: EventType, obj: ResourceObject, num_retries: int) -> None:
        attempts[ctx.event_key] += 1
        failing = attempts[ctx.event_key] <= fail_times
        rows.append([
            ctx.watch, event.value, f"{obj.namespace}/{obj.name}" if obj.namespace else obj.name,
            obj.resource_version or "", str(num_retries), "fail" if failing else "ok"
        ])
        if failing:
            raise RuntimeError(f"simulated failure {attempts[ctx.event_key]}/{fail_times}")

    informer = Informer(handler, config=config, client_factory=cluster.client_for)
    for entry in data.get("watches", []):
        informer.watch(
            entry["apiVersion"], entry["kind"],
            namespace=entry.get("namespace", ""),
            selector=entry.get("selector", ""),
            resync=entry.get("resync"),
        )

    stop_event = asyncio.Event()
    runner = asyncio.create_task(informer.run(stop_event))
    while not all(watch.cache.has_synced() for watch in informer.watches):
        if runner.done():
            await runner
        await asyncio.sleep(0.01)

    try:
        for operation in data.get("operations", []):
            await asyncio.sleep(float(operation.get("delay", 0)))
            _apply_operation(cluster, operation)
        await asyncio.sleep(float(data.get("settle", 0.5)))
    finally:
        stop_event.set()
        await runner
    return rows, informer.get_metrics()


def _apply_operation(cluster: InMemoryCluster, operation: Dict[str, Any]) -> None:
    op = operation.get("op")
    if op == "delete":
        cluster.delete(
            operation["apiVersion"], operation["kind"],
            operation["name"], namespace=operation.get("namespace", "")
        )
    elif op in ("create", "update", "apply"):
        getattr(cluster, op)(operation["object"])
    else:
        raise ValueError(f"unknown operation: {op!r}")


@main.command()
@click.option('--config', 'config_file', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='JSON configuration file')
@click.pass_context
def config(ctx: click.Context, config_file: Optional[Path]):
    """Print the effective configuration."""
    effective = _load_config(ctx, config_file)
    click.echo(json.dumps(effective.model_dump(), indent=2))


@main.command()
def resources():
    """List the resource kinds known to the builtin resolver."""
    cluster = InMemoryCluster()
    table = Table(title="Known resources")
    table.add_column("apiVersion", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Resource")
    table.add_column("Namespaced")
    for resource in cluster.resolver.known_resources():
        api_version = f"{resource.group}/{resource.version}" if resource.group else resource.version
        table.add_row(api_version, resource.kind, resource.name, "yes" if resource.namespaced else "no")
    console.print(table)


if __name__ == '__main__':
    main()
