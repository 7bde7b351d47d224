"""tidesync CLI - offline-first sync engine command line interface

Command groups are organized into separate modules:
- sync.py: init, status, push, pull, sync, process-pending
- queue.py: queue list, add, evict
- config.py: config set, get, show
- common.py: shared utilities
"""
from pathlib import Path
import logging
import click

from .. import __version__

# Local imports
from .common import get_base_path
from .sync import sync_group
from .queue import queue_group
from .config import config_group

LOG_LEVELS = {0: logging.ERROR, 1: logging.WARNING, 2: logging.DEBUG}


@click.group()
@click.version_option(version=__version__, prog_name="tidesync")
@click.option('--data-dir', type=click.Path(), default=None, envvar='TIDESYNC_BASE_PATH',
              help='Base directory for tidesync data (default: ~/.tidesync)')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Enable verbose output')
@click.option('--quiet', '-q', is_flag=True, default=False,
              help='Suppress non-essential output')
@click.pass_context
def cli(ctx, data_dir, verbose, quiet):
    """tidesync - offline-first record synchronization

    Keeps a local record store and a remote store in step: local changes
    are queued while offline and sent when the remote is reachable.

    \b
    Key Commands:
        init              Create config.yaml
        status            Show sync status and counts
        sync              Pull, then push
        push / pull       One direction only
        process-pending   Send queued changes one by one
        queue             Inspect or edit the pending change queue
        config            Configuration management

    \b
    Examples:
        tidesync init --url https://sync.example.com/api
        tidesync config set remote.token <token>
        tidesync queue add entries update abc123
        tidesync sync
    """
    from .common import VERBOSITY_QUIET, VERBOSITY_NORMAL, VERBOSITY_VERBOSE

    ctx.ensure_object(dict)

    # Validate mutually exclusive flags
    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")

    if quiet:
        ctx.obj['verbosity'] = VERBOSITY_QUIET
    elif verbose:
        ctx.obj['verbosity'] = VERBOSITY_VERBOSE
    else:
        ctx.obj['verbosity'] = VERBOSITY_NORMAL

    logging.basicConfig(
        level=LOG_LEVELS[ctx.obj['verbosity']],
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    ctx.obj['data_dir'] = Path(data_dir) if data_dir else None


# Register sync commands
for name in ('init', 'status', 'push', 'pull', 'sync', 'process-pending'):
    cli.add_command(sync_group.commands[name])

# Register queue command group (queue list, add, evict)
cli.add_command(queue_group, name='queue')

# Register config command group (config set, get, show)
cli.add_command(config_group, name='config')


def main():
    """Entry point for the CLI."""
    cli()


__all__ = [
    'cli',
    'main',
    'get_base_path',
]
