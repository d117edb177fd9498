"""HTTP route definitions for the service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.schemas import (
    ArduinoStatus,
    ContainerUpdate,
    Device,
    DeviceCreate,
    DeviceUpdate,
    DeviceView,
    DispenseRequest,
    DispenseResponse,
    RefreshResponse,
    StockLevelsPayload,
)
from datastore.json_db import JsonDeviceStore, build_default_store
from services.connection import (
    ConnectionManager,
    DispenseError,
    NotConnectedError,
    build_default_connection_manager,
)

router = APIRouter(prefix="/api")


def get_connection_manager() -> ConnectionManager:
    return build_default_connection_manager()


def get_store() -> JsonDeviceStore:
    return build_default_store()


def _require_device(store: JsonDeviceStore, device_id: str) -> Device:
    device = store.get_device_by_id(device_id)
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return device


@router.get("/health", summary="Health check endpoint.")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok", "service": "HealthPod API"}


@router.get(
    "/arduino/status",
    response_model=ArduinoStatus,
    summary="Current serial connection and sensor state.",
)
def get_arduino_status(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> ArduinoStatus:
    manager.force_refresh()
    return ArduinoStatus.from_status(manager.snapshot())


@router.post(
    "/arduino/reset",
    response_model=ArduinoStatus,
    summary="Close and reopen the serial connection.",
)
def reset_arduino_connection(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> ArduinoStatus:
    manager.reset_connection()
    return ArduinoStatus.from_status(manager.snapshot())


@router.post(
    "/arduino/refresh",
    response_model=RefreshResponse,
    summary="Reapply the latest sensor reading to the stored stock levels.",
)
def refresh_stock_levels(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> RefreshResponse:
    levels = manager.force_refresh()
    payload = None
    if levels is not None:
        payload = StockLevelsPayload(c1=levels.c1, c2=levels.c2, c3=levels.c3)
    return RefreshResponse(
        success=levels is not None,
        stock_levels=payload,
        status=ArduinoStatus.from_status(manager.snapshot()),
    )


@router.get("/devices", response_model=list[DeviceView])
def list_devices(
    store: JsonDeviceStore = Depends(get_store),
    manager: ConnectionManager = Depends(get_connection_manager),
) -> list[DeviceView]:
    connected = manager.snapshot().connected
    return [
        DeviceView(**device.model_dump(), is_connected=connected)
        for device in store.list_devices()
    ]


@router.post("/devices", response_model=Device, status_code=status.HTTP_201_CREATED)
def create_device(
    body: DeviceCreate,
    store: JsonDeviceStore = Depends(get_store),
) -> Device:
    name = body.name.strip() or "HealthPod Dispenser"
    serial_number = (body.serial_number or "").strip() or None
    try:
        return store.create_device(name=name, serial_number=serial_number)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.put("/devices/{device_id}", response_model=Device)
def update_device(
    device_id: str,
    body: DeviceUpdate,
    store: JsonDeviceStore = Depends(get_store),
) -> Device:
    _require_device(store, device_id)

    def apply(device: Device) -> bool:
        if body.name and body.name.strip():
            device.name = body.name.strip()
        if body.serial_number is not None:
            device.serial_number = body.serial_number.strip() or None
        return True

    store.update_device(device_id, apply)
    return _require_device(store, device_id)


@router.delete("/devices/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_device(device_id: str, store: JsonDeviceStore = Depends(get_store)) -> Response:
    try:
        store.delete_device(device_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found") from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/devices/{device_id}/containers/{number}", response_model=Device)
def update_container(
    device_id: str,
    number: int,
    body: ContainerUpdate,
    store: JsonDeviceStore = Depends(get_store),
) -> Device:
    device = _require_device(store, device_id)
    if not any(container.number == number for container in device.containers):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Container not found")

    changes = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if not (key == "stock_level" and value is None)
    }

    def apply(target: Device) -> bool:
        for container in target.containers:
            if container.number != number:
                continue
            for key, value in changes.items():
                setattr(container, key, value.strip() if isinstance(value, str) else value)
        return bool(changes)

    store.update_device(device_id, apply)
    return _require_device(store, device_id)


@router.post(
    "/devices/{device_id}/containers/{number}/dispense",
    response_model=DispenseResponse,
    summary="Ask the dispenser to release medication from a container.",
)
def dispense_from_container(
    device_id: str,
    number: int,
    body: DispenseRequest | None = None,
    store: JsonDeviceStore = Depends(get_store),
    manager: ConnectionManager = Depends(get_connection_manager),
) -> DispenseResponse:
    _require_device(store, device_id)
    command = ((body.command if body else None) or "").strip() or str(number)
    try:
        manager.dispense(command)
    except NotConnectedError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    except DispenseError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return DispenseResponse(command=command)
