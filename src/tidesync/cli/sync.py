"""Sync commands for tidesync CLI: init, status, push, pull, sync, process-pending."""
import json
import click

from ..config import CONFIG_FILENAME, default_config_data, get_base_path, write_config_data
from ..errors import LocalStoreError

# Local CLI imports
from .common import (
    echo_normal,
    echo_quiet,
    echo_verbose,
    fail,
    open_orchestrator,
    report_result,
)


@click.group()
def sync_group():
    """Synchronization commands."""
    pass


@sync_group.command('init')
@click.option('--url', default=None, help='Remote API base URL')
@click.option('--record-type', 'record_types', multiple=True,
              help='Record type to sync (repeatable, default: entries)')
@click.option('--force', is_flag=True, help='Overwrite an existing config.yaml')
@click.pass_context
def init(ctx, url, record_types, force) -> None:
    """Initialize the tidesync data directory.

    Creates config.yaml with default settings. The auth token is read from
    TIDESYNC_REMOTE_TOKEN or set later with 'tidesync config set remote.token'.

    \b
    Examples:
        tidesync init --url https://sync.example.com/api
        tidesync init --record-type entries --record-type journals
    """
    base_path = get_base_path(ctx.obj.get('data_dir'))
    verbosity = ctx.obj.get('verbosity', 1)
    config_path = base_path / CONFIG_FILENAME

    echo_normal(click.style("Initializing tidesync...", fg="cyan", bold=True), verbosity)
    base_path.mkdir(parents=True, exist_ok=True)
    echo_verbose(f" ✓ Directory: {base_path}", verbosity)

    if config_path.exists() and not force:
        echo_normal(f" ⚠ Config exists: {config_path}", verbosity)
        return

    data = default_config_data()
    if url:
        data['remote']['url'] = url
    if record_types:
        data['record_types'] = list(record_types)
    write_config_data(base_path, data)
    echo_normal(f" ✓ Created config: {config_path}", verbosity)


@sync_group.command('status')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
def status(ctx, as_json) -> None:
    """Show sync status, record counts and pending changes."""
    verbosity = ctx.obj.get('verbosity', 1)
    with open_orchestrator(ctx) as orchestrator:
        stats = orchestrator.get_sync_stats()
        config_url = getattr(orchestrator.remote, 'base_url', None)

    if as_json:
        echo_quiet(json.dumps(stats, indent=2), verbosity)
        return

    echo_normal(click.style("=== Sync Status ===", fg="cyan", bold=True), verbosity)
    echo_quiet(f"Status: {stats['status']}", verbosity)
    echo_normal(f"Pending changes: {stats['pending_changes']}", verbosity)
    echo_normal(f"Local records: {stats['local_count']}", verbosity)
    remote_count = stats['remote_count']
    echo_normal(f"Remote records: {remote_count if remote_count is not None else 'n/a'}", verbosity)
    echo_normal(f"Last sync: {stats['last_sync_at'] or 'never'}", verbosity)
    echo_verbose(f"Remote: {config_url or 'not configured'}", verbosity)


def _run_operation(ctx, name: str) -> None:
    verbosity = ctx.obj.get('verbosity', 1)
    try:
        with open_orchestrator(ctx) as orchestrator:
            result = getattr(orchestrator, name)()
    except LocalStoreError as e:
        fail(f"Local store failure: {e}", verbosity)
    report_result(result, verbosity)


@sync_group.command('push')
@click.pass_context
def push(ctx) -> None:
    """Upload all local records to the remote."""
    _run_operation(ctx, 'push')


@sync_group.command('pull')
@click.pass_context
def pull(ctx) -> None:
    """Download remote changes since the last pull."""
    _run_operation(ctx, 'pull')


@sync_group.command('sync')
@click.pass_context
def sync(ctx) -> None:
    """Full sync: pull, then push."""
    _run_operation(ctx, 'full_sync')


@sync_group.command('process-pending')
@click.pass_context
def process_pending(ctx) -> None:
    """Apply queued local changes to the remote one by one."""
    _run_operation(ctx, 'process_pending_changes')
