from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from app.schemas import Container, Device
from models.records import StockLevel
from settings import get_settings

logger = logging.getLogger(__name__)

CONTAINER_NUMBERS = (1, 2, 3)

DeviceMutator = Callable[[Device], bool]

_DEVICE_LIST = TypeAdapter(List[Device])


class JsonDeviceStore:
    """Flat JSON file holding the single dispenser and its medications.

    The file keeps the ``{"devices": [...], "medications": [...]}`` shape; the
    medications list belongs to other parts of the backend and is written back
    untouched.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self.persistence_path = persistence_path
        self._devices: List[Device] = []
        self._medications: List[Any] = []
        self._lock = RLock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def get_device(self) -> Optional[Device]:
        with self._lock:
            if not self._devices:
                return None
            return self._devices[0].model_copy(deep=True)

    def get_device_by_id(self, device_id: str) -> Optional[Device]:
        with self._lock:
            device = self._find(device_id)
            return device.model_copy(deep=True) if device is not None else None

    def list_devices(self) -> list[Device]:
        with self._lock:
            return [device.model_copy(deep=True) for device in self._devices]

    def create_device(self, name: str, serial_number: Optional[str] = None) -> Device:
        with self._lock:
            if self._devices:
                raise ValueError("A dispenser is already registered.")
            device = Device(
                id=str(uuid4()),
                name=name,
                serial_number=serial_number or None,
                containers=[
                    Container(number=number, stock_level=StockLevel.LOW)
                    for number in CONTAINER_NUMBERS
                ],
            )
            self._devices.append(device)
            try:
                self._persist()
            except OSError:
                self._devices.remove(device)
                raise
            logger.info("Registered dispenser", extra={"device_id": device.id})
            return device.model_copy(deep=True)

    def update_device(self, device_id: str, mutator: DeviceMutator) -> bool:
        """Run ``mutator`` on a copy; install and persist it if it reports a change.

        If the write fails the stored record is left as it was and the
        ``OSError`` propagates.
        """

        with self._lock:
            device = self._find(device_id)
            if device is None:
                raise KeyError(f"Device {device_id!r} not found.")
            working = device.model_copy(deep=True)
            if not mutator(working):
                return False
            index = self._devices.index(device)
            self._devices[index] = working
            try:
                self._persist()
            except OSError:
                # Memory must never run ahead of the file.
                self._devices[index] = device
                raise
            return True

    def delete_device(self, device_id: str) -> None:
        with self._lock:
            device = self._find(device_id)
            if device is None:
                raise KeyError(f"Device {device_id!r} not found.")
            index = self._devices.index(device)
            del self._devices[index]
            try:
                self._persist()
            except OSError:
                self._devices.insert(index, device)
                raise

    def _find(self, device_id: str) -> Optional[Device]:
        for device in self._devices:
            if device.id == device_id:
                return device
        return None

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload: Dict[str, Any] = {
            "devices": [
                device.model_dump(mode="json", by_alias=True, exclude_none=True)
                for device in self._devices
            ],
            "medications": self._medications,
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable device database",
                extra={"reason": str(self.persistence_path)},
            )
            data = {}

        if not isinstance(data, dict):
            data = {}
        try:
            self._devices = _DEVICE_LIST.validate_python(data.get("devices") or [])
        except ValidationError as exc:
            logger.warning(
                "Ignoring device database with invalid records: %s",
                exc.errors()[0].get("msg"),
                extra={"reason": str(self.persistence_path)},
            )
            self._devices = []
        medications = data.get("medications")
        self._medications = list(medications) if isinstance(medications, list) else []


@lru_cache
def build_default_store(path: Optional[str] = None) -> JsonDeviceStore:
    settings = get_settings()
    store_path = settings.db_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return JsonDeviceStore(persistence_path=persistence)
