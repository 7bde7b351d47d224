"""Configuration management commands for tidesync CLI."""
import sys
import click
import yaml

from ..config import CONFIG_FILENAME, SyncConfig, get_base_path, parse_value, write_config_data
from ..errors import ConfigError

# Local CLI imports
from .common import echo_normal, echo_quiet, fail

# Values never echoed back in full
SECRET_KEYS = {"remote.token"}


def _load_raw(ctx):
    base_path = get_base_path(ctx.obj.get('data_dir'))
    config_path = base_path / CONFIG_FILENAME
    verbosity = ctx.obj.get('verbosity', 1)
    if not config_path.exists():
        fail("tidesync not initialized. Run 'tidesync init' first.", verbosity)
    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        fail(f"Invalid YAML in {config_path}: {e}", verbosity)
    if not isinstance(data, dict):
        fail(f"{config_path} must contain a mapping", verbosity)
    return base_path, data


def _mask(key: str, value):
    if key in SECRET_KEYS and value:
        text = str(value)
        return f"{text[:4]}..." if len(text) > 8 else "****"
    return value


@click.group()
def config_group():
    """Configuration management commands."""
    pass


@config_group.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_context
def config_set(ctx, key: str, value: str) -> None:
    """Set a configuration value.

    Values are parsed as YAML, so numbers, booleans and [a, b] lists keep
    their types.

    \b
    Examples:
        tidesync config set remote.url https://sync.example.com/api
        tidesync config set sync.timeout_seconds 30
        tidesync config set record_types "[entries, journals]"
    """
    verbosity = ctx.obj.get('verbosity', 1)
    base_path, config_data = _load_raw(ctx)

    # Parse nested keys (e.g., 'sync.timeout_seconds')
    keys = key.split('.')
    current = config_data
    for k in keys[:-1]:
        if not isinstance(current.get(k), dict):
            current[k] = {}
        current = current[k]
    current[keys[-1]] = parse_value(value)

    try:
        SyncConfig.from_dict(config_data, base_path)
    except ConfigError as e:
        fail(f"Refusing to write invalid config: {e}", verbosity)

    write_config_data(base_path, config_data)
    echo_normal(click.style(f"✓ Set {key} = {_mask(key, value)}", fg="green"), verbosity)


@config_group.command('get')
@click.argument('key')
@click.pass_context
def config_get(ctx, key: str) -> None:
    """Get a configuration value.

    \b
    Examples:
        tidesync config get remote.url
        tidesync config get sync.queue_max_size
    """
    verbosity = ctx.obj.get('verbosity', 1)
    _, config_data = _load_raw(ctx)

    current = config_data
    for k in key.split('.'):
        if not isinstance(current, dict) or k not in current:
            echo_quiet(click.style(f"Key '{key}' not found", fg="yellow"), verbosity)
            sys.exit(1)
        current = current[k]

    if isinstance(current, (dict, list)):
        echo_quiet(yaml.dump(current, default_flow_style=False).rstrip(), verbosity)
    else:
        echo_quiet(str(_mask(key, current)), verbosity)


@config_group.command('show')
@click.pass_context
def config_show(ctx) -> None:
    """Display full configuration."""
    verbosity = ctx.obj.get('verbosity', 1)
    _, config_data = _load_raw(ctx)

    remote = config_data.get('remote')
    if isinstance(remote, dict) and remote.get('token'):
        remote['token'] = _mask('remote.token', remote['token'])

    echo_normal(click.style("Current configuration:", fg="cyan", bold=True), verbosity)
    echo_quiet(yaml.dump(config_data, default_flow_style=False, sort_keys=False).rstrip(), verbosity)
