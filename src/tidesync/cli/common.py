"""Shared utilities for tidesync CLI commands."""
import sys
from contextlib import contextmanager
from typing import Iterator

import click

from ..config import CONFIG_FILENAME, SyncConfig, get_base_path, load_config
from ..errors import ConfigError
from ..factory import build_orchestrator
from ..models import SyncResult
from ..orchestrator import SyncOrchestrator

# Verbosity levels
VERBOSITY_QUIET = 0
VERBOSITY_NORMAL = 1
VERBOSITY_VERBOSE = 2


def should_print(verbosity: int, message_level: int) -> bool:
    """Determine if a message should be printed based on verbosity settings."""
    return verbosity >= message_level


def echo_verbose(message: str, verbosity: int) -> None:
    """Print a message only in verbose mode."""
    if should_print(verbosity, VERBOSITY_VERBOSE):
        click.echo(message, err=False)


def echo_normal(message: str, verbosity: int) -> None:
    """Print a message in normal and verbose modes."""
    if should_print(verbosity, VERBOSITY_NORMAL):
        click.echo(message, err=False)


def echo_quiet(message: str, verbosity: int) -> None:
    """Print a message that is shown even in quiet mode."""
    click.echo(message, err=False)


def fail(message: str, verbosity: int) -> None:
    """Print an error and exit with status 1."""
    echo_quiet(click.style(f"Error: {message}", fg="red"), verbosity)
    sys.exit(1)


def require_config(ctx) -> SyncConfig:
    """Load config for the selected base path, exiting if not initialized."""
    base_path = get_base_path(ctx.obj.get('data_dir'))
    verbosity = ctx.obj.get('verbosity', VERBOSITY_NORMAL)
    if not (base_path / CONFIG_FILENAME).exists():
        fail("tidesync not initialized. Run 'tidesync init' first.", verbosity)
    try:
        return load_config(base_path)
    except ConfigError as e:
        fail(str(e), verbosity)


@contextmanager
def open_orchestrator(ctx) -> Iterator[SyncOrchestrator]:
    """Build an orchestrator from config and close its stores afterwards."""
    config = require_config(ctx)
    orchestrator = build_orchestrator(config)
    try:
        yield orchestrator
    finally:
        orchestrator.close()
        orchestrator.local.close()
        orchestrator.remote.close()


def report_result(result: SyncResult, verbosity: int) -> None:
    """Print an operation outcome; exits 1 if it failed."""
    label = result.operation.replace("_", " ")
    if result.offline:
        echo_normal(click.style(f"Offline: {label} not attempted (sync unavailable)", fg="yellow"), verbosity)
        return
    if result.skipped:
        echo_normal(click.style("Skipped: another sync is in progress", fg="yellow"), verbosity)
        return

    counts = f"pushed={result.pushed} pulled={result.pulled} processed={result.processed}"
    if result.success:
        echo_normal(click.style(f"✓ {label} complete", fg="green"), verbosity)
        echo_verbose(f"  {counts}", verbosity)
        return

    echo_quiet(click.style(f"✗ {label} failed: {result.error}", fg="red"), verbosity)
    echo_verbose(f"  {counts} failed={result.failed}", verbosity)
    sys.exit(1)


__all__ = [
    'VERBOSITY_QUIET',
    'VERBOSITY_NORMAL',
    'VERBOSITY_VERBOSE',
    'get_base_path',
    'echo_verbose',
    'echo_normal',
    'echo_quiet',
    'fail',
    'require_config',
    'open_orchestrator',
    'report_result',
]
