"""``mcpengine limits`` — show the effective rate limit tiers."""

from __future__ import annotations

import sys

import click

from mcpengine.cli_commands._output import console, load_settings, print_limits_table


@click.command()
@click.argument("config", type=click.Path(exists=True), required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def limits(config: str | None, as_json: bool) -> None:
    """Print the global, method and tool rate limits.

    Uses CONFIG when given, the reference defaults otherwise.
    """
    from mcpengine.protocol.ratelimit import RateLimiter

    try:
        settings = load_settings(config)
    except Exception as exc:
        console.print(f"[red]Error loading config:[/red] {exc}")
        sys.exit(1)

    print_limits_table(RateLimiter(settings.rate_limits).snapshot(), as_json=as_json)
