from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_triplet(values: Dict[str, Any] | None) -> str:
    if not values:
        return "n/a"
    return " ".join(f"{key}={values.get(key)}" for key in ("c1", "c2", "c3"))


def render_status(payload: Dict[str, Any]) -> None:
    echo_heading("Dispenser Connection")
    echo_key_values(
        [
            ("port", payload.get("port")),
            ("baud_rate", payload.get("baudRate")),
            ("state", payload.get("state")),
            ("connected", payload.get("isConnected")),
            ("mock", payload.get("isMock")),
            ("last_error", payload.get("lastError") or "none"),
            ("last_line", payload.get("lastLine") or "none"),
        ]
    )
    typer.echo()
    echo_heading("Sensors")
    echo_key_values(
        [
            ("readings", _format_triplet(payload.get("sensorReadings"))),
            ("stock_levels", _format_triplet(payload.get("stockLevels"))),
        ]
    )


def render_devices(devices: List[Dict[str, Any]]) -> None:
    echo_heading("Devices")
    if not devices:
        typer.echo("No dispenser registered.")
        return
    for device in devices:
        echo_key_values(
            [
                ("id", device.get("id")),
                ("name", device.get("name")),
                ("connected", device.get("isConnected")),
            ]
        )
        for container in device.get("containers") or []:
            medication = container.get("medicationName") or "empty"
            typer.echo(
                f"  - container {container.get('number')}: {medication} ({container.get('stockLevel')})"
            )
