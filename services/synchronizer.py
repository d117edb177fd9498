"""Merge classified stock levels into the persisted dispenser record."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from app.schemas import Device
from models.records import StockLevelSet

logger = logging.getLogger(__name__)


class DeviceStore(Protocol):
    def get_device(self) -> Optional[Device]: ...

    def update_device(self, device_id: str, mutator: Callable[[Device], bool]) -> bool: ...


class DeviceStateSynchronizer:
    """Writes stock levels to the stored device only when one of them moved.

    Telemetry arrives far more often than stock actually changes, so an
    unchanged reading must not cost a file write. Only ``stock_level`` fields
    are touched; names and medication details stay with the CRUD layer.
    """

    def __init__(self, store: DeviceStore) -> None:
        self.store = store

    def reconcile(self, levels: StockLevelSet) -> bool:
        device = self.store.get_device()
        if device is None:
            logger.warning("No dispenser registered; skipping stock update")
            return False

        def apply(target: Device) -> bool:
            changed = False
            for container in target.containers:
                level = levels.for_container(container.number)
                if level is None or container.stock_level == level:
                    continue
                logger.info(
                    "Stock level changed from %s to %s",
                    container.stock_level.value,
                    level.value,
                    extra={"device_id": target.id, "container": container.number},
                )
                container.stock_level = level
                changed = True
            return changed

        try:
            return self.store.update_device(device.id, apply)
        except KeyError:
            # Removed by the CRUD layer between the read and the update.
            logger.warning(
                "Dispenser disappeared during stock update",
                extra={"device_id": device.id},
            )
            return False
