"""Value types shared by the hardware integration services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class StockLevel(str, Enum):
    """Estimated amount of medication left in a container.

    Ordered by amount present: ``FULL > MED > LOW``.
    """

    FULL = "FULL"
    MED = "MED"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _STOCK_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, StockLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, StockLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, StockLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, StockLevel):
            return NotImplemented
        return self.rank >= other.rank


_STOCK_RANK: Dict[StockLevel, int] = {
    StockLevel.LOW: 0,
    StockLevel.MED: 1,
    StockLevel.FULL: 2,
}


class ConnectionState(str, Enum):
    """Lifecycle states of the serial connection."""

    disconnected = "disconnected"
    opening = "opening"
    connected = "connected"
    closed = "closed"
    errored = "errored"
    mock = "mock"


@dataclass(frozen=True, slots=True)
class SensorReading:
    """One raw sensor value per container, as sent on a telemetry line."""

    c1: int
    c2: int
    c3: int


@dataclass(frozen=True, slots=True)
class StockLevelSet:
    """Classified stock level for each of the three containers."""

    c1: StockLevel
    c2: StockLevel
    c3: StockLevel

    def for_container(self, number: int) -> Optional[StockLevel]:
        return {1: self.c1, 2: self.c2, 3: self.c3}.get(number)


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    """Point-in-time view of the connection, replaced on every event."""

    connected: bool
    mock: bool
    port_path: str
    baud_rate: int
    state: ConnectionState = ConnectionState.disconnected
    last_error: Optional[str] = None
    last_line: Optional[str] = None
    last_reading: Optional[SensorReading] = None
    last_stock_levels: Optional[StockLevelSet] = None
