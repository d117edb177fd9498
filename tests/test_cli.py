from __future__ import annotations

from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from cli.app import app


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.status_payload: Dict[str, Any] = {
            "isConnected": True,
            "isMock": False,
            "port": "/dev/ttyACM0",
            "baudRate": 115200,
            "state": "connected",
            "lastError": None,
            "lastLine": "Raw: 100 300 180",
            "sensorReadings": {"c1": 100, "c2": 300, "c3": 180},
            "stockLevels": {"c1": "FULL", "c2": "LOW", "c3": "MED"},
        }
        self.dispensed: List[tuple[str, int, str | None]] = []
        self.reset_calls = 0
        self.closed = False

    def get_status(self) -> Dict[str, Any]:
        return self.status_payload

    def reset(self) -> Dict[str, Any]:
        self.reset_calls += 1
        return self.status_payload

    def refresh(self) -> Dict[str, Any]:
        return {"success": False, "stockLevels": None, "status": self.status_payload}

    def list_devices(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": "dev-1",
                "name": "Bedroom",
                "isConnected": True,
                "containers": [
                    {"number": 1, "stockLevel": "FULL", "medicationName": "Aspirin"},
                    {"number": 2, "stockLevel": "LOW"},
                ],
            }
        ]

    def dispense(self, device_id: str, container: int, command: str | None = None) -> Dict[str, Any]:
        self.dispensed.append((device_id, container, command))
        return {"ok": True, "command": command or str(container)}

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    holder = StubClient(config=None)

    def factory(config):
        holder.config = config
        return holder

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return holder


def test_status_renders_connection_and_sensors(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Dispenser Connection" in result.stdout
    assert "port: /dev/ttyACM0" in result.stdout
    assert "stock_levels: c1=FULL c2=LOW c3=MED" in result.stdout
    assert stub.closed is True


def test_base_url_option_reaches_client(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--base-url", "http://pod.local:9000/", "status"])

    assert result.exit_code == 0
    assert stub.config.base_url == "http://pod.local:9000"


def test_reset_reports_reconnection(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["reset"])

    assert result.exit_code == 0
    assert "Dispenser reconnected." in result.stdout
    assert stub.reset_calls == 1


def test_refresh_without_reading_warns(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["refresh"])

    assert result.exit_code == 0
    assert "No sensor reading received yet." in result.stdout


def test_devices_lists_containers(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["devices"])

    assert result.exit_code == 0
    assert "container 1: Aspirin (FULL)" in result.stdout
    assert "container 2: empty (LOW)" in result.stdout


def test_dispense_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["dispense", "dev-1", "2", "--command", "D2"])

    assert result.exit_code == 0
    assert stub.dispensed == [("dev-1", 2, "D2")]
    assert "Dispensed with command 'D2'." in result.stdout


def test_dispense_rejects_unknown_container(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["dispense", "dev-1", "7"])

    assert result.exit_code != 0
    assert stub.dispensed == []
