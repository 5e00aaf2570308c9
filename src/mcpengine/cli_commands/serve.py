"""``mcpengine serve`` — run a server over stdio."""

from __future__ import annotations

import asyncio
import sys

import click

from mcpengine.cli_commands._output import configure_logging, err_console, load_settings


@click.command()
@click.argument("config", type=click.Path(exists=True), required=False)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.option("--echo", "with_echo", is_flag=True, help="Also register the example 'echo' tool.")
def serve(config: str | None, log_level: str | None, with_echo: bool) -> None:
    """Serve tools over stdin/stdout.

    CONFIG is a server YAML file; defaults apply when omitted.
    """
    from mcpengine.config.loader import build_service
    from mcpengine.protocol.transport import serve_stdio

    try:
        settings = load_settings(config)
        configure_logging((log_level or settings.log_level).upper())
        service = build_service(settings)
        if with_echo and "echo" not in service.registry:
            from mcpengine.tools.echo import echo_tool

            service.register_tool(echo_tool)
    except Exception as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    if settings.telemetry is not None and settings.telemetry.enabled:
        from mcpengine.utils.telemetry import configure_telemetry

        configure_telemetry(
            service_name=settings.name,
            console=settings.telemetry.console,
            otlp_endpoint=settings.telemetry.otlp_endpoint,
        )

    try:
        asyncio.run(serve_stdio(service))
    except KeyboardInterrupt:
        pass
