"""``mcpengine check`` — validate a server YAML file."""

from __future__ import annotations

import sys

import click

from mcpengine.cli_commands._output import console, load_settings


@click.command()
@click.argument("config", type=click.Path(exists=True))
def check(config: str) -> None:
    """Validate CONFIG and resolve its tool references."""
    from mcpengine.config.loader import resolve_tool

    try:
        settings = load_settings(config)
        for reference in settings.tools:
            resolve_tool(reference)
    except Exception as exc:
        console.print(f"[red]Validation error:[/red] {exc}")
        sys.exit(1)

    console.print("[green]Configuration is valid.[/green]")
    console.print(f"  Server: {settings.name} {settings.version}")
    console.print(f"  Tools: {', '.join(settings.tools) or '(none)'}")
    console.print(f"  Capabilities: {settings.capabilities.to_capabilities().to_wire()}")
