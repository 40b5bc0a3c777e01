"""
WA Gateway CLI.

Command-line interface for running and probing the gateway.
"""

import asyncio
import json
import sys
import time

import httpx
import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="wa-gateway",
    help="WhatsApp broadcast gateway CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Server Commands
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Interface to bind"),
    port: int = typer.Option(0, help="Port to bind (0: use the PORT setting)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the gateway with uvicorn."""
    import uvicorn

    from shared.config.settings import settings

    uvicorn.run(
        "wa_gateway.main:app",
        host=host,
        port=port or settings.port,
        reload=reload,
    )


@app.command()
def config():
    """Show effective settings and configuration problems."""
    from shared.config.settings import get_settings

    cfg = get_settings()

    table = Table(title="WA Gateway Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name, value in cfg.model_dump().items():
        table.add_row(name.upper(), str(value))
    console.print(table)

    problems = cfg.validate_runtime()
    if problems:
        for problem in problems:
            console.print(f"[yellow]! {problem}[/yellow]")
    else:
        console.print("[green]✓ No configuration problems[/green]")


# =============================================================================
# Probe Commands
# =============================================================================

@app.command()
def health(
    url: str = typer.Option("http://localhost:3000", help="Gateway base URL"),
):
    """Check gateway health."""

    async def _health() -> bool:
        table = Table(title="Gateway Health")
        table.add_column("Endpoint", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Response Time", style="yellow")

        healthy = True
        async with httpx.AsyncClient(base_url=url, timeout=5.0) as client:
            for path in ("/healthz", "/health"):
                try:
                    start = time.time()
                    response = await client.get(path)
                    elapsed = (time.time() - start) * 1000
                except httpx.HTTPError as e:
                    healthy = False
                    table.add_row(path, f"✗ {type(e).__name__}", "-")
                    continue

                if response.status_code == 200:
                    table.add_row(path, "✓ Healthy", f"{elapsed:.0f}ms")
                else:
                    healthy = False
                    table.add_row(path, f"✗ Status {response.status_code}", f"{elapsed:.0f}ms")

                if path == "/health" and response.status_code == 200:
                    body = response.json()
                    table.add_row("  connections", str(body.get("total_connections", "?")), "")
                    table.add_row("  logged in", str(body.get("transport_logged_in", "?")), "")
                    table.add_row("  scheduled", str(body.get("scheduled_pending", "?")), "")

        console.print(table)
        return healthy

    if not asyncio.run(_health()):
        raise typer.Exit(1)


@app.command()
def ws_test(
    url: str = typer.Option("ws://localhost:3000/ws", help="WebSocket URL"),
):
    """Test WebSocket connectivity with a ping."""
    import websockets

    async def _test() -> bool:
        console.print(f"[blue]Testing WebSocket: {url}[/blue]")
        try:
            async with websockets.connect(url, close_timeout=5) as ws:
                await ws.send(json.dumps({"type": "ping"}))
                # The greeting may arrive before the pong
                while True:
                    response = await asyncio.wait_for(ws.recv(), timeout=5)
                    if json.loads(response).get("type") == "pong":
                        break
                    console.print(f"[dim]received: {response}[/dim]")
            console.print("[green]✓ Connected! Received pong[/green]")
            return True
        except asyncio.TimeoutError:
            console.print("[red]✗ Connection timed out[/red]")
        except (OSError, websockets.WebSocketException) as e:
            console.print(f"[red]✗ Connection failed: {e}[/red]")
        return False

    if not asyncio.run(_test()):
        raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    from importlib.metadata import PackageNotFoundError, version as pkg_version

    try:
        gateway_version = pkg_version("wa-gateway")
    except PackageNotFoundError:
        gateway_version = "dev"

    table = Table(title="WA Gateway Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("Gateway", gateway_version)
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
