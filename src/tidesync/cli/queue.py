"""Pending change queue commands for tidesync CLI."""
import json
from datetime import timedelta
import click

from ..config import get_base_path
from ..models import ChangeAction, PendingChange
from ..pending import FileQueueStorage, PendingChangeQueue

# Local CLI imports
from .common import echo_normal, echo_quiet, echo_verbose, fail, require_config


def _open_queue(ctx) -> PendingChangeQueue:
    config = require_config(ctx)
    return PendingChangeQueue(
        FileQueueStorage(get_base_path(ctx.obj.get('data_dir'))),
        max_size=config.queue_max_size,
    )


@click.group()
def queue_group():
    """Pending change queue commands."""
    pass


@queue_group.command('list')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
def queue_list(ctx, as_json) -> None:
    """List pending changes, oldest first."""
    verbosity = ctx.obj.get('verbosity', 1)
    changes = _open_queue(ctx).dequeue_all()

    if as_json:
        echo_quiet(json.dumps([c.to_dict() for c in changes], indent=2), verbosity)
        return

    if not changes:
        echo_normal(click.style("No pending changes.", fg="green"), verbosity)
        return

    echo_normal(click.style(f"Pending changes ({len(changes)})", fg="cyan", bold=True), verbosity)
    for change in changes:
        echo_quiet(f"  {change.timestamp}  {change.action.value:<6}  {change.record_type}:{change.id}", verbosity)


@queue_group.command('add')
@click.argument('record_type')
@click.argument('action', type=click.Choice([a.value for a in ChangeAction]))
@click.argument('record_id')
@click.pass_context
def queue_add(ctx, record_type, action, record_id) -> None:
    """Queue a local change for the next sync.

    \b
    Examples:
        tidesync queue add entries update abc123
        tidesync queue add entries delete abc123
    """
    verbosity = ctx.obj.get('verbosity', 1)
    queue = _open_queue(ctx)
    evicted = queue.enqueue(PendingChange.create(record_type, action, record_id))

    echo_normal(click.style(f"✓ Queued {action} {record_type}:{record_id}", fg="green"), verbosity)
    if evicted:
        echo_normal(click.style(
            f"⚠ Queue full, dropped oldest change {evicted.record_type}:{evicted.id}", fg="yellow"
        ), verbosity)
    echo_verbose(f"  Pending: {queue.size()}", verbosity)


@queue_group.command('evict')
@click.option('--days', type=float, default=None,
              help='Evict changes older than this (default: sync.stale_after_days)')
@click.pass_context
def queue_evict(ctx, days) -> None:
    """Drop pending changes older than the staleness threshold."""
    verbosity = ctx.obj.get('verbosity', 1)
    config = require_config(ctx)
    if days is not None and days < 0:
        fail("--days must not be negative", verbosity)
    max_age = timedelta(days=days if days is not None else config.stale_after_days)

    evicted = _open_queue(ctx).evict_stale(max_age)
    echo_normal(click.style(f"✓ Evicted {evicted} stale change(s)", fg="green"), verbosity)
