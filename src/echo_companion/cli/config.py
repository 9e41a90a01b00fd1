"""
Configuration commands for the Echo Companion CLI.
"""

import json
from typing import Optional

import click
import yaml

from ..core.config import Config


@click.group()
def config_commands() -> None:
    """Configuration management commands."""
    pass


@config_commands.command()
@click.option(
    "--format",
    type=click.Choice(["json", "yaml", "table"]),
    default="table",
    help="Output format",
)
@click.option("--section", help="Show specific configuration section")
@click.pass_context
def show(ctx: click.Context, format: str, section: Optional[str]) -> None:
    """Show the resolved configuration (secrets redacted)."""
    config: Config = ctx.obj["config"]
    data = config.to_dict()

    if section:
        if section not in data or not isinstance(data[section], dict):
            raise click.BadParameter(f"Unknown section: {section}", param_hint="--section")
        data = {section: data[section]}

    if format == "json":
        click.echo(json.dumps(data, indent=2, default=str))
    elif format == "yaml":
        click.echo(yaml.dump(data, default_flow_style=False))
    else:
        click.echo("Echo Companion Configuration")
        click.echo("=" * 40)
        for key, value in data.items():
            if isinstance(value, dict):
                click.echo(f"\n[{key}]")
                for field_name, field_value in value.items():
                    click.echo(f"  {field_name}: {field_value}")
            else:
                click.echo(f"{key}: {value}")


@config_commands.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.pass_context
def save(ctx: click.Context, path: str) -> None:
    """Write the resolved configuration to a YAML file."""
    config: Config = ctx.obj["config"]
    config.save(path)
    click.echo(f"Configuration written to {path}")
