from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_devices, render_status


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for inspecting and driving the HealthPod dispenser.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show the serial connection state and latest sensor data."""
    state = _get_state(ctx)
    render_status(state.client.get_status())


@app.command("reset")
def reset_command(ctx: typer.Context) -> None:
    """Close and reopen the serial connection."""
    state = _get_state(ctx)
    payload = state.client.reset()
    if payload.get("isConnected"):
        typer.secho("Dispenser reconnected.", fg=typer.colors.GREEN)
    else:
        typer.secho("Dispenser is still disconnected.", fg=typer.colors.YELLOW)
    render_status(payload)


@app.command("refresh")
def refresh_command(ctx: typer.Context) -> None:
    """Reapply the latest sensor reading to the stored stock levels."""
    state = _get_state(ctx)
    payload = state.client.refresh()
    if not payload.get("success"):
        typer.secho("No sensor reading received yet.", fg=typer.colors.YELLOW)
    render_status(payload.get("status") or {})


@app.command("devices")
def devices_command(ctx: typer.Context) -> None:
    """List registered dispensers and their containers."""
    state = _get_state(ctx)
    render_devices(state.client.list_devices())


@app.command("dispense")
def dispense_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Identifier of the registered dispenser."),
    container: int = typer.Argument(..., min=1, max=3, help="Container number (1-3)."),
    command: Optional[str] = typer.Option(
        None,
        "--command",
        "-c",
        help="Raw command to send instead of the container number.",
    ),
) -> None:
    """Release medication from a container."""
    state = _get_state(ctx)
    payload = state.client.dispense(device_id, container, command)
    typer.secho(f"Dispensed with command {payload.get('command')!r}.", fg=typer.colors.GREEN)
