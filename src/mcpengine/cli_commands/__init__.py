"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from mcpengine.cli_commands.check import check
    from mcpengine.cli_commands.limits import limits
    from mcpengine.cli_commands.serve import serve
    from mcpengine.cli_commands.tools import tools

    cli.add_command(serve)
    cli.add_command(check)
    cli.add_command(limits)
    cli.add_command(tools)
