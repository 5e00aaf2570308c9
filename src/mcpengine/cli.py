"""mcpengine CLI entrypoint."""

from __future__ import annotations

import click

from mcpengine import __version__


@click.group()
@click.version_option(version=__version__, prog_name="mcpengine")
def main() -> None:
    """mcpengine — serve tools over the Model Context Protocol."""


# Register subcommands
from mcpengine.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
