"""CLI commands for xtwallet.

``serve`` runs a privileged context on a websocket host, ``ping`` probes it
through the bus the way a page relay does, and ``config`` shows the
effective configuration.
"""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from xtwallet import __logo__, __version__
from xtwallet.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file

app = typer.Typer(
    name="xtwallet",
    help=f"{__logo__} xtwallet - wallet extension message bus",
    no_args_is_help=True,
)

console = Console()

# Fallback deadline for `ping` when the config sets no request timeout.
PING_TIMEOUT_SECONDS = 5.0


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} xtwallet v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """xtwallet - wallet extension message bus."""
    pass


# ============================================================================
# Privileged host
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option(None, "--host", "-h", help="Bind host (defaults to host.host from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (defaults to host.port from config)"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Run the privileged context and answer relays over websockets."""
    from xtwallet.background import CapabilitySet, Dispatcher
    from xtwallet.config.access import get_config
    from xtwallet.intercom import IntercomServer, XTMessageType
    from xtwallet.intercom.transport import WebSocketRuntime

    config = get_config(config_path=config_path)
    level = "DEBUG" if verbose else config.logging.level
    configure_console_logging(level)
    log_path = ensure_rotating_log_file("serve", level=level)

    host = host or config.host.host
    port = port or config.host.port
    runtime = WebSocketRuntime(host, port, manifest_version=config.host.manifest_version)
    server = IntercomServer(runtime)
    capabilities = CapabilitySet()

    async def get_state(req, req_port):
        return {"state": {"version": __version__, "contexts": len(server.ports)}}

    capabilities.register(
        XTMessageType.GET_STATE_REQUEST.value,
        XTMessageType.GET_STATE_RESPONSE.value,
        get_state,
    )
    dispatcher = Dispatcher(server, capabilities)

    console.print(f"{__logo__} Starting xtwallet privileged context on {runtime.url}...")
    console.print(f"[dim]Logs: {log_path}[/dim]")

    async def run():
        await runtime.serve()
        try:
            await asyncio.Future()
        finally:
            dispatcher.close()
            server.close()
            await runtime.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
    except OSError as e:
        console.print(f"[red]Could not listen on {host}:{port}:[/red] {e}")
        raise typer.Exit(1) from e


# ============================================================================
# Probe
# ============================================================================


@app.command()
def ping(
    host: str = typer.Option(None, "--host", "-h", help="Privileged host (defaults to host.host from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Privileged port (defaults to host.port from config)"),
    timeout: float = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait for PONG (defaults to intercom.requestTimeoutSeconds, else 5)"
    ),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Wake the privileged context and send it a page PING."""
    from xtwallet.config.access import get_config
    from xtwallet.intercom import IntercomClient, IntercomError, WAKEUP, XTMessageType
    from xtwallet.intercom.transport import ReceivingEndMissing, WebSocketRuntime
    from xtwallet.intercom.types import PING

    config = get_config(config_path=config_path)
    configure_console_logging(config.logging.level)
    if timeout is None:
        timeout = config.intercom.request_timeout_seconds or PING_TIMEOUT_SECONDS
    runtime = WebSocketRuntime(
        host or config.host.host, port or config.host.port, manifest_version=config.host.manifest_version
    )

    async def run():
        try:
            await runtime.send_message(WAKEUP)
        except ReceivingEndMissing as e:
            console.print(f"[red]✗[/red] {e.message}")
            return None
        client = IntercomClient(runtime, name="cli", request_timeout=timeout)
        try:
            return await client.request({"type": XTMessageType.PAGE_REQUEST.value, "payload": PING})
        except IntercomError as e:
            console.print(f"[red]✗[/red] {e.message}")
            return None
        finally:
            client.destroy()

    reply = asyncio.run(run())
    if reply is None:
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {runtime.url} replied {json.dumps(reply)}")


# ============================================================================
# Config
# ============================================================================


@app.command("config")
def show_config(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    as_json: bool = typer.Option(False, "--json", help="Print the effective config as camelCase JSON"),
    init: bool = typer.Option(False, "--init", help="Write defaults when no config file exists"),
):
    """Show the effective configuration."""
    from xtwallet.config.loader import convert_to_camel, get_config_path, load_config, save_config

    path = config_path or get_config_path()
    try:
        config = load_config(path)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    if init:
        if path.exists():
            console.print(f"[yellow]Config already exists at {path}[/yellow]")
        else:
            save_config(config, path)
            console.print(f"[green]✓[/green] Created config at {path}")

    if as_json:
        console.print_json(json.dumps(convert_to_camel(config.model_dump())))
        return

    table = Table(title=f"xtwallet config ({path})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for section, values in config.model_dump().items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", json.dumps(value))
    table.add_row("keepalive (effective)", json.dumps(config.keepalive_enabled))
    console.print(table)


if __name__ == "__main__":
    app()
