"""Shared CLI output formatters."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from mcpengine.config.loader import SettingsLoader
from mcpengine.config.models import ServerSettings
from mcpengine.protocol.models import ToolInfo  # noqa: TC001
from mcpengine.protocol.ratelimit import LimitSnapshot  # noqa: TC001

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Send log records to stderr; stdout may be the protocol channel."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
        force=True,
    )


def load_settings(config: str | None) -> ServerSettings:
    """Load *config*, or return defaults when no file is given."""
    if config is None:
        return ServerSettings()
    return SettingsLoader(Path(config)).load()


def print_limits_table(rows: list[LimitSnapshot], *, as_json: bool = False) -> None:
    """Pretty-print rate limiter buckets as a table."""
    if as_json:
        console.print_json(json.dumps([asdict(row) for row in rows]))
        return

    table = Table(title="Rate Limits")
    table.add_column("Tier", style="cyan")
    table.add_column("Key")
    table.add_column("RPS", justify="right")
    table.add_column("Burst", justify="right")

    for row in rows:
        table.add_row(row.tier, row.key or "-", f"{row.rate:g}", str(row.burst))

    console.print(table)


def print_tools_table(tools: list[ToolInfo], *, as_json: bool = False) -> None:
    """Pretty-print tool metadata as a table."""
    if as_json:
        console.print_json(json.dumps([tool.to_wire() for tool in tools]))
        return

    table = Table(title="Registered Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Arguments")

    for tool in tools:
        properties = tool.input_schema.get("properties", {})
        table.add_row(
            tool.name,
            _truncate(tool.description),
            ", ".join(properties) if isinstance(properties, dict) else "-",
        )

    console.print(table)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
