"""CLI commands for inspecting and testing the telemetry pipeline.

Example:
    $ pizzametrics sample
    $ pizzametrics preview --source jwt-pizza-service-dev
    $ pizzametrics push --config telemetry.yaml
    $ pizzametrics validate --config telemetry.yaml

Environment Variables:
    PIZZA_METRICS_CONFIG: Default configuration file path
    PIZZA_METRICS_*: Collector overrides (see TelemetryConfig.from_env)
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from pizzametrics.config import TelemetryConfig
from pizzametrics.exceptions import ConfigurationError, TelemetryError
from pizzametrics.metrics.exporter import MetricsExporter
from pizzametrics.metrics.payload import build_payload, serialize_payload
from pizzametrics.metrics.registry import MetricRegistry
from pizzametrics.metrics.sampler import SystemSampler

console = Console()
err_console = Console(stderr=True)

config_option = click.option(
    "--config", "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="PIZZA_METRICS_CONFIG",
    help="Path to YAML configuration file",
)


def _load_config(config: Optional[Path]) -> TelemetryConfig:
    if config:
        return TelemetryConfig.from_yaml(config)
    return TelemetryConfig.from_env()


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """Pizza service telemetry tools.

    Available Commands:
        sample    - Show current host CPU and memory readings
        preview   - Print the payload a flush would send
        push      - Send one payload to the collector now
        validate  - Validate a configuration file
    """
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--precision", default=2, type=click.IntRange(0, 6), help="Decimal places")
def sample(precision: int) -> None:
    """Show current host CPU and memory readings."""
    reading = SystemSampler(precision=precision).sample()

    table = Table(title="Host sample")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("cpu", f"{reading.cpu_percent}%")
    table.add_row("memory", f"{reading.memory_percent}%")
    console.print(table)


@cli.command()
@config_option
@click.option("--source", help="Override the source attribute")
def preview(config: Optional[Path], source: Optional[str]) -> None:
    """Print the payload a flush would send for a fresh registry."""
    try:
        telemetry_config = _load_config(config)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    collector = telemetry_config.collector
    resource = {"service.name": collector.service_name} if collector.service_name else None
    payload = build_payload(
        MetricRegistry().snapshot(),
        SystemSampler(precision=telemetry_config.sampler.precision).sample(),
        {"source": source or collector.source},
        resource_attributes=resource,
    )
    console.print_json(json.dumps(payload))


@cli.command()
@config_option
def push(config: Optional[Path]) -> None:
    """Send one payload to the collector now.

    Exits with status 1 if the collector cannot be reached or rejects the
    payload.
    """
    try:
        telemetry_config = _load_config(config)
        telemetry_config.validate()
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    collector = telemetry_config.collector
    exporter = MetricsExporter(
        collector,
        MetricRegistry(),
        sampler=SystemSampler(precision=telemetry_config.sampler.precision),
    )
    try:
        payload = exporter.builder.build(exporter.registry.snapshot(), exporter.sampler.sample())
        exporter.push(serialize_payload(payload))
    except TelemetryError as e:
        err_console.print(f"[red]Push failed: {e}[/red]")
        sys.exit(1)
    finally:
        exporter.shutdown()

    console.print(f"[green]Pushed metrics to {collector.url}[/green]")


@cli.command()
@click.option(
    "--config", "-c",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to YAML configuration file",
)
def validate(config: Path) -> None:
    """Validate a configuration file."""
    try:
        telemetry_config = TelemetryConfig.from_yaml(config)
        telemetry_config.validate()
    except ConfigurationError as e:
        err_console.print(f"[red]Invalid configuration: {e}[/red]")
        sys.exit(1)

    collector = telemetry_config.collector
    table = Table(title=str(config))
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("export enabled", str(collector.enabled))
    table.add_row("collector url", collector.url or "-")
    table.add_row("source", collector.source)
    table.add_row("period", f"{collector.period_ms} ms")
    table.add_row("timeout", f"{collector.timeout} s")
    table.add_row("log level", telemetry_config.logging.level)
    console.print(table)
    console.print("[green]Configuration is valid[/green]")


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
