"""CLI entry point for inspecting the retry harness.

Provides ``unique-id``, ``discover``, and ``config`` sub-commands using
Click and Rich for output formatting.

Usage::

    retryharness unique-id myassembly tests.test_upload.TestUpload test_rows
    retryharness discover tests.test_upload --method-display method -v
    retryharness config --env-file .env.local
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from retryharness.bus import CollectingSink, SynchronousMessageBus
from retryharness.cases import RetryTestCase
from retryharness.config import HarnessConfig
from retryharness.discovery import RetryDiscoverer, discover_module
from retryharness.errors import ConfigurationError
from retryharness.identity import compute_unique_id
from retryharness.messages import TestCaseDiscovered
from retryharness.models import DiscoveryOptions, MethodDisplay

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(env_file: str | None) -> HarnessConfig:
    try:
        return HarnessConfig.from_env(env_file)
    except ConfigurationError as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        raise SystemExit(1) from exc


@click.group()
@click.version_option(package_name="retryharness")
def main() -> None:
    """retryharness: retry-capable test cases with buffered reporting."""


@main.command("unique-id")
@click.argument("assembly")
@click.argument("class_name")
@click.argument("method")
@click.option(
    "--display-name",
    default=None,
    help="Display name of a parameterized case.",
)
def unique_id(
    assembly: str, class_name: str, method: str, display_name: str | None
) -> None:
    """Print the unique id of a test case."""
    click.echo(compute_unique_id(assembly, class_name, method, display_name))


@main.command()
@click.argument("module_name")
@click.option("--assembly", default=None, help="Assembly name (defaults to top package).")
@click.option(
    "--method-display",
    type=click.Choice([m.value for m in MethodDisplay]),
    default=None,
    help="Display strategy for case names.",
)
@click.option("--env-file", type=click.Path(), default=".env", help="Dotenv file to load.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def discover(
    module_name: str,
    assembly: str | None,
    method_display: str | None,
    env_file: str,
    verbose: bool,
) -> None:
    """List the test cases discovered in MODULE_NAME."""
    _setup_logging(verbose)
    config = _load_config(env_file)

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        console.print(f"[red]Failed to import module:[/red] {exc}")
        raise SystemExit(1) from exc

    options = DiscoveryOptions(
        method_display=(
            MethodDisplay(method_display) if method_display else config.method_display
        )
    )
    sink = CollectingSink()
    discover_module(
        module,
        SynchronousMessageBus(sink),
        options,
        discoverer=RetryDiscoverer(config),
        assembly_name=assembly,
    )

    discovered = [m.test_case for m in sink.of_type(TestCaseDiscovered)]  # type: ignore[attr-defined]
    if not discovered:
        console.print("[yellow]No test cases found.[/yellow]")
        return

    table = Table(title=f"Test cases in {module_name}")
    table.add_column("Display name", style="cyan")
    table.add_column("Kind")
    table.add_column("Retry")
    table.add_column("Unique id", style="dim")

    for case in discovered:
        table.add_row(case.display_name, case.kind, _retry_label(case), case.unique_id)

    console.print(table)


def _retry_label(case: Any) -> str:
    if not isinstance(case, RetryTestCase):
        return "-"
    if case.retry_disabled:
        return "[yellow]disabled[/yellow]"
    return f"[green]up to {case.max_retries}[/green]"


@main.command()
@click.option("--env-file", type=click.Path(), default=".env", help="Dotenv file to load.")
def config(env_file: str) -> None:
    """Show the effective harness configuration."""
    cfg = _load_config(env_file)

    table = Table(title="Harness configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("max_retries", str(cfg.max_retries))
    table.add_row("method_display", cfg.method_display.value)
    console.print(table)


if __name__ == "__main__":
    main()
