#!/usr/bin/env python3
"""
Vegov CLI

Command-line interface for inspecting configuration and replaying
operation files against an in-memory host.

Usage:
    vegov show-config [--config FILE]
    vegov replay <ops_file> [--host HOST_FILE] [--config FILE] [--stop-on-error]

An operation file is a JSON list of steps:

    [{"sender": "admin", "time": 0, "height": 1,
      "funds": [{"denom": "ugov", "amount": "100"}],
      "op": "LOCK", "app_id": 1, "tier": "T1"}, ...]
"""

import json
from pathlib import Path
from typing import Optional

import click

from vegov import __version__
from vegov.coins import Coin
from vegov.config import load_config
from vegov.context import ExecContext
from vegov.engine import GovernanceEngine, operation_from_dict
from vegov.exceptions import VegovException
from vegov.host import StaticHost

_CONTEXT_KEYS = {"sender", "time", "height", "funds"}


def _load_json(path: str):
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path}: invalid JSON: {e}")


@click.group()
@click.version_option(version=__version__, prog_name="vegov")
def cli():
    """Vote-escrow governance engine tools."""
    pass


@cli.command("show-config")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to vegov.toml")
def show_config_cmd(config_path: Optional[str]):
    """Print the resolved configuration as JSON.

    Examples:

        vegov show-config

        vegov show-config --config deploy/vegov.toml
    """
    try:
        cfg = load_config(config_path)
    except VegovException as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(cfg.to_dict(), indent=2))


@cli.command("replay")
@click.argument("ops_file", type=click.Path(exists=True))
@click.option("--host", "host_file", type=click.Path(exists=True), help="JSON description of the host state")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to vegov.toml")
@click.option("--stop-on-error", is_flag=True, help="Stop at the first rejected operation")
def replay_cmd(ops_file: str, host_file: Optional[str], config_path: Optional[str], stop_on_error: bool):
    """Replay an operation file and print every result.

    Examples:

        vegov replay ops.json --host host.json
    """
    try:
        cfg = load_config(config_path)
    except VegovException as e:
        raise click.ClickException(str(e))
    host = StaticHost.from_dict(_load_json(host_file)) if host_file else StaticHost()
    engine = GovernanceEngine(cfg, host)

    steps = _load_json(ops_file)
    if not isinstance(steps, list):
        raise click.ClickException("Operation file must contain a JSON list")

    failures = 0
    for i, step in enumerate(steps, 1):
        try:
            op = operation_from_dict({k: v for k, v in step.items() if k not in _CONTEXT_KEYS})
            ctx = ExecContext(
                sender=str(step["sender"]),
                time=int(step["time"]),
                height=int(step["height"]),
                funds=tuple(Coin.from_dict(c) for c in step.get("funds", [])),
            )
        except (KeyError, ValueError, VegovException) as e:
            raise click.ClickException(f"Step {i}: {e}")

        result = engine.process(op, ctx)
        click.echo(json.dumps({"step": i, **result.to_dict()}))
        if not result.success:
            failures += 1
            if stop_on_error:
                break

    click.echo(click.style(f"State root: {engine.state_root()}", fg="green"))
    if failures:
        click.echo(click.style(f"{failures} operation(s) rejected", fg="yellow"))


if __name__ == "__main__":
    cli()
