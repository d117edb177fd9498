from __future__ import annotations

import queue
import threading
import time
from typing import Callable, List, Optional

import pytest
import serial


class FakeSerial:
    """In-memory stand-in exposing the parts of pyserial's API the manager uses."""

    def __init__(self, open_error: Optional[Exception] = None) -> None:
        self.is_open = False
        self.open_error = open_error
        self.write_error: Optional[Exception] = None
        self.flush_error: Optional[Exception] = None
        self.io_delay = 0.0
        self.close_calls = 0
        self.wire: List[tuple[str, bytes]] = []
        self._wire_lock = threading.Lock()
        self._incoming: "queue.Queue[bytes | Exception]" = queue.Queue()

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    def close(self) -> None:
        self.close_calls += 1
        self.is_open = False

    def feed(self, line: str) -> None:
        self._incoming.put(line.encode("utf-8") + b"\n")

    def feed_bytes(self, data: bytes) -> None:
        self._incoming.put(data)

    def fail_next_read(self, error: Exception) -> None:
        self._incoming.put(error)

    def readline(self) -> bytes:
        try:
            item = self._incoming.get(timeout=0.02)
        except queue.Empty:
            return b""
        if isinstance(item, Exception):
            raise item
        return item

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        with self._wire_lock:
            self.wire.append(("write", data))
        time.sleep(self.io_delay)
        return len(data)

    def flush(self) -> None:
        if self.flush_error is not None:
            raise self.flush_error
        time.sleep(self.io_delay)
        with self._wire_lock:
            self.wire.append(("flush", b""))


class FakeSerialFactory:
    """Builds a fresh FakeSerial per call and remembers every handle."""

    def __init__(self) -> None:
        self.handles: List[FakeSerial] = []
        self.open_error: Optional[Exception] = None

    def __call__(self) -> FakeSerial:
        handle = FakeSerial(open_error=self.open_error)
        self.handles.append(handle)
        return handle

    @property
    def current(self) -> FakeSerial:
        return self.handles[-1]


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    pytest.fail("Condition was not met before the timeout.")


@pytest.fixture()
def serial_factory() -> FakeSerialFactory:
    return FakeSerialFactory()


@pytest.fixture()
def port_unavailable() -> serial.SerialException:
    return serial.SerialException("could not open port 'COM14': FileNotFoundError")
