#!/usr/bin/env python3
"""
Renderfarm CLI
Validate a deployment profile and dispatch TURN server action batches.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

import click
from pydantic import ValidationError

from renderfarm.core.config import RenderFarmConfig, setup_logging
from renderfarm.core.errors import ConfigurationError, DispatchError
from renderfarm.core.models import ActionBatch
from renderfarm.dispatch.batch import ActionBatchDispatcher, RedisMessageChannel, build_batch

logger = logging.getLogger(__name__)


def parse_item(value: str) -> Dict[str, Any]:
    """Parse ACTION:TURN_SERVER_ID:VM_ID,VM_ID into a wire-format item"""
    parts = value.split(":")
    if len(parts) != 3:
        raise click.BadParameter(f"expected ACTION:TURN_SERVER_ID:VM_IDS, got {value!r}")

    action, turn_server_id, vm_ids = parts
    try:
        return {
            "action": action.strip().lower(),
            "turnServerId": int(turn_server_id),
            "vmIds": [int(vm_id) for vm_id in vm_ids.split(",") if vm_id.strip()],
        }
    except ValueError:
        raise click.BadParameter(f"turn server and VM ids must be integers in {value!r}")


def load_batch(batch_file: Optional[str], items: Tuple[str, ...]) -> ActionBatch:
    payload: List[Dict[str, Any]] = []
    if batch_file:
        with open(batch_file, 'r') as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise click.BadParameter("batch file must contain a JSON array", param_hint="BATCH_FILE")
        payload.extend(data)
    payload.extend(parse_item(item) for item in items)

    try:
        return build_batch(payload)
    except ValidationError as e:
        raise click.BadParameter(f"invalid action batch: {e}")


@click.group()
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML deployment profile')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.version_option(version='0.1.0', prog_name='renderfarm')
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], verbose: bool):
    """Renderfarm - pool & job orchestration for cloud rendering farms"""
    try:
        config = RenderFarmConfig.from_yaml(config_path) if config_path else RenderFarmConfig()
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    if verbose:
        config.log_level = 'DEBUG'
    setup_logging(config)
    ctx.obj = config


@cli.command()
@click.pass_obj
def validate(config: RenderFarmConfig):
    """Check the deployment profile for missing or inconsistent settings"""
    problems = config.find_violations()
    if not problems:
        click.echo("✓ Configuration is valid")
        return

    click.echo("❌ Configuration is invalid:")
    for problem in problems:
        click.echo(f"  • {problem}")
    sys.exit(1)


@cli.command()
@click.argument('batch_file', required=False, type=click.Path(exists=True, dir_okay=False))
@click.option('--item', '-i', 'items', multiple=True,
              help='Action item as ACTION:TURN_SERVER_ID:VM_IDS, e.g. up:1:1,2,3,4')
@click.option('--queue', help='Override the action queue name')
@click.pass_obj
def dispatch(config: RenderFarmConfig, batch_file: Optional[str], items: Tuple[str, ...], queue: Optional[str]):
    """Send one TURN server action batch to the action queue"""
    batch = load_batch(batch_file, items)
    if not batch.items:
        raise click.UsageError("no action items given")

    if queue:
        config.action_queue = queue
    asyncio.run(_dispatch(config, batch))


async def _dispatch(config: RenderFarmConfig, batch: ActionBatch):
    channel = RedisMessageChannel.from_config(config)
    dispatcher = ActionBatchDispatcher(channel)
    try:
        await dispatcher.dispatch(batch)
        click.echo(f"🚀 Dispatched {len(batch)} action(s) to {config.action_queue}")
    except DispatchError as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)
    finally:
        await channel.close()


def main():
    cli()


if __name__ == '__main__':
    main()
