"""``mcpengine tools`` — list the tools a server config registers."""

from __future__ import annotations

import sys

import click

from mcpengine.cli_commands._output import console, load_settings, print_tools_table


@click.command()
@click.argument("config", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def tools(config: str, as_json: bool) -> None:
    """List the tools CONFIG registers, as ``tools/list`` would report them."""
    from mcpengine.config.loader import build_service

    try:
        service = build_service(load_settings(config))
    except Exception as exc:
        console.print(f"[red]Error loading tools:[/red] {exc}")
        sys.exit(1)

    listing = service.list_tools().tools
    if not listing:
        console.print("[yellow]No tools registered.[/yellow]")
        return

    print_tools_table(listing, as_json=as_json)
