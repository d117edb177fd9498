"""Pydantic schemas for persisted devices and the HTTP API layer."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.records import ConnectionState, ConnectionStatus, StockLevel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Container(CamelModel):
    """One of the dispenser's three pill containers."""

    number: int = Field(..., ge=1, le=3)
    stock_level: StockLevel = StockLevel.LOW
    medication_id: Optional[str] = None
    medication_name: Optional[str] = None
    dosage: Optional[str] = None
    reminder_time: Optional[str] = None
    reminder_days: Optional[List[str]] = None
    reminder_enabled: Optional[bool] = None


class Device(CamelModel):
    """The dispenser as stored in the JSON database."""

    id: str
    type: Literal["healthpod_dispenser"] = "healthpod_dispenser"
    name: str
    serial_number: Optional[str] = None
    containers: List[Container] = Field(default_factory=list)


class DeviceView(Device):
    is_connected: bool = False


class DeviceCreate(CamelModel):
    name: str = "HealthPod Dispenser"
    serial_number: Optional[str] = None


class DeviceUpdate(CamelModel):
    name: Optional[str] = None
    serial_number: Optional[str] = None


class ContainerUpdate(CamelModel):
    medication_id: Optional[str] = None
    medication_name: Optional[str] = None
    dosage: Optional[str] = None
    reminder_time: Optional[str] = None
    reminder_days: Optional[List[str]] = None
    reminder_enabled: Optional[bool] = None
    stock_level: Optional[StockLevel] = None


class DispenseRequest(CamelModel):
    command: Optional[str] = None


class DispenseResponse(CamelModel):
    ok: bool = True
    command: str


class SensorReadingsPayload(BaseModel):
    c1: int
    c2: int
    c3: int


class StockLevelsPayload(BaseModel):
    c1: StockLevel
    c2: StockLevel
    c3: StockLevel


class ArduinoStatus(CamelModel):
    """Connection status as exposed to API consumers."""

    is_connected: bool
    is_mock: bool
    port: str
    baud_rate: int
    state: ConnectionState
    last_error: Optional[str] = None
    last_line: Optional[str] = None
    sensor_readings: Optional[SensorReadingsPayload] = None
    stock_levels: Optional[StockLevelsPayload] = None

    @classmethod
    def from_status(cls, status: ConnectionStatus) -> "ArduinoStatus":
        readings = None
        if status.last_reading is not None:
            reading = status.last_reading
            readings = SensorReadingsPayload(c1=reading.c1, c2=reading.c2, c3=reading.c3)
        levels = None
        if status.last_stock_levels is not None:
            stock = status.last_stock_levels
            levels = StockLevelsPayload(c1=stock.c1, c2=stock.c2, c3=stock.c3)
        return cls(
            is_connected=status.connected,
            is_mock=status.mock,
            port=status.port_path,
            baud_rate=status.baud_rate,
            state=status.state,
            last_error=status.last_error,
            last_line=status.last_line,
            sensor_readings=readings,
            stock_levels=levels,
        )


class RefreshResponse(CamelModel):
    success: bool
    stock_levels: Optional[StockLevelsPayload] = None
    status: ArduinoStatus
