"""Serial link to the dispenser: connection lifecycle, telemetry and dispensing."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import lru_cache, partial
from typing import Any, Callable, Optional

import serial

from datastore.json_db import build_default_store
from models.records import ConnectionState, ConnectionStatus, StockLevelSet
from services.classifier import DEFAULT_THRESHOLDS, StockThresholds, classify_reading
from services.line_parser import parse_line
from services.synchronizer import DeviceStateSynchronizer
from settings import get_settings

logger = logging.getLogger(__name__)

SerialFactory = Callable[[], serial.SerialBase]

_TRANSPORT_ERRORS = (serial.SerialException, OSError, ValueError)

# Longest partial line kept while waiting for a newline.
MAX_LINE_BYTES = 4096


class DispenseError(Exception):
    """A dispense command could not be delivered to the device."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class NotConnectedError(DispenseError):
    """No open serial handle is available for dispensing."""


class _EventKind(str, Enum):
    opening = "opening"
    opened = "opened"
    closed = "closed"
    errored = "errored"
    line = "line"
    refresh = "refresh"
    stop = "stop"


@dataclass(eq=False)
class _Event:
    kind: _EventKind
    line: Optional[str] = None
    error: Optional[str] = None
    phase: Optional[str] = None
    done: threading.Event = field(default_factory=threading.Event)
    result: Any = None


def build_serial_port(port: str, baud_rate: int, timeout: float) -> serial.SerialBase:
    """Create an unopened pyserial handle; ``port`` may be a path or a pyserial URL."""
    return serial.serial_for_url(
        port, baudrate=baud_rate, timeout=timeout, do_not_open=True
    )


class ConnectionManager:
    """Owns the one serial handle to the dispenser.

    All status changes happen on a single event thread that consumes a FIFO
    queue fed by the reader thread and by the public operations, so hardware
    events are applied one at a time in arrival order. Public operations that
    change the handle (``connect``, ``reset_connection``, ``shutdown``) and
    ``dispense`` share one lock, which keeps commands from interleaving on the
    wire and keeps a reopen from racing a write.
    """

    def __init__(
        self,
        port_path: str,
        baud_rate: int,
        mock: bool = False,
        synchronizer: Optional[DeviceStateSynchronizer] = None,
        thresholds: StockThresholds = DEFAULT_THRESHOLDS,
        serial_factory: Optional[SerialFactory] = None,
        read_timeout: float = 1.0,
    ) -> None:
        self.port_path = port_path
        self.baud_rate = baud_rate
        self.mock = mock
        self.synchronizer = synchronizer
        self.thresholds = thresholds
        self._serial_factory = serial_factory or partial(
            build_serial_port, port_path, baud_rate, read_timeout
        )
        self._status = ConnectionStatus(
            connected=mock,
            mock=mock,
            port_path=port_path,
            baud_rate=baud_rate,
            state=ConnectionState.mock if mock else ConnectionState.disconnected,
        )
        self._handle: Optional[serial.SerialBase] = None
        self._reader: Optional[threading.Thread] = None
        self._reader_stop = threading.Event()
        self._io_lock = threading.RLock()
        self._events: "queue.Queue[_Event]" = queue.Queue()
        self._running = True
        self._worker = threading.Thread(
            target=self._run, name="serial-events", daemon=True
        )
        self._worker.start()

    # Public operations -------------------------------------------------

    def connect(self) -> None:
        """Open the serial port unless it is already open or mocked.

        Failures are recorded in the status; they never raise.
        """
        if self.mock:
            logger.info(
                "Mock mode enabled; skipping serial connection",
                extra={"port": self.port_path},
            )
            return

        with self._io_lock:
            if not self._running:
                logger.warning("Connection manager is shut down; ignoring connect")
                return
            if self._handle is not None and self._handle.is_open:
                return

            self._stop_reader()
            self._post(_Event(_EventKind.opening), wait=True)
            try:
                handle = self._serial_factory()
                self._handle = handle
                handle.open()
            except _TRANSPORT_ERRORS as exc:
                self._post(
                    _Event(_EventKind.errored, error=str(exc), phase="open"), wait=True
                )
                return

            self._post(_Event(_EventKind.opened), wait=True)
            self._start_reader(handle)

    def reset_connection(self) -> None:
        """Close the current handle, waiting for the close, then connect again."""
        if self.mock:
            return
        with self._io_lock:
            self._close_handle()
            self.connect()

    def force_refresh(self) -> Optional[StockLevelSet]:
        """Reclassify the latest reading and resynchronize stored stock levels.

        Returns ``None`` when no reading has been received yet.
        """
        if not self._running:
            return None
        return self._post(_Event(_EventKind.refresh), wait=True)

    def dispense(self, command: str) -> None:
        """Send ``command`` and return once it has been flushed to the device.

        Raises ``NotConnectedError`` when the port is not open and
        ``DispenseError`` when the write or the drain fails.
        """
        text = command.rstrip("\r\n")
        if self.mock:
            logger.info("Mock dispense; nothing sent", extra={"command": text})
            return

        payload = f"{text}\n".encode("utf-8")
        with self._io_lock:
            handle = self._handle
            if handle is None or not handle.is_open:
                raise NotConnectedError("Arduino is not connected.")
            try:
                handle.write(payload)
            except _TRANSPORT_ERRORS as exc:
                logger.error(
                    "Serial write failed: %s", exc, extra={"command": text, "port": self.port_path}
                )
                raise DispenseError(f"Failed to send command {text!r}: {exc}", cause=exc) from exc
            try:
                handle.flush()
            except _TRANSPORT_ERRORS as exc:
                logger.error(
                    "Serial drain failed: %s", exc, extra={"command": text, "port": self.port_path}
                )
                raise DispenseError(f"Failed to send command {text!r}: {exc}", cause=exc) from exc

        logger.info("Dispense command sent", extra={"command": text, "port": self.port_path})

    def snapshot(self) -> ConnectionStatus:
        # ConnectionStatus is frozen and replaced wholesale on every event.
        return self._status

    def shutdown(self) -> None:
        """Close the port and stop the event thread."""
        with self._io_lock:
            if not self._running:
                return
            self._close_handle()
            self._post(_Event(_EventKind.stop), wait=True)
            self._running = False
        self._worker.join()

    # Handle ownership --------------------------------------------------

    def _start_reader(self, handle: serial.SerialBase) -> None:
        self._reader_stop = threading.Event()
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(handle, self._reader_stop),
            name="serial-reader",
            daemon=True,
        )
        self._reader.start()

    def _stop_reader(self) -> None:
        reader = self._reader
        self._reader_stop.set()
        if reader is not None and reader is not threading.current_thread():
            reader.join()
        self._reader = None

    def _close_handle(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._stop_reader()
        self._handle = None
        if not handle.is_open:
            return
        try:
            handle.close()
        except _TRANSPORT_ERRORS as exc:
            self._post(_Event(_EventKind.errored, error=str(exc), phase="close"), wait=True)
            return
        self._post(_Event(_EventKind.closed, phase="requested"), wait=True)

    def _read_loop(self, handle: serial.SerialBase, stop: threading.Event) -> None:
        buffer = bytearray()
        while not stop.is_set():
            try:
                chunk = handle.readline()
            except _TRANSPORT_ERRORS as exc:
                if stop.is_set():
                    return
                try:
                    handle.close()
                except _TRANSPORT_ERRORS as close_exc:
                    logger.debug("Closing failed handle raised: %s", close_exc)
                self._post(_Event(_EventKind.errored, error=str(exc), phase="read"))
                return
            if not chunk:
                continue
            # readline() returns a partial line when the read timeout expires.
            buffer.extend(chunk)
            if not buffer.endswith(b"\n"):
                if len(buffer) > MAX_LINE_BYTES:
                    logger.warning(
                        "Discarding %d bytes received without a newline",
                        len(buffer),
                        extra={"port": self.port_path},
                    )
                    buffer.clear()
                continue
            line = buffer.decode("utf-8", errors="replace").strip()
            buffer.clear()
            if line:
                self._post(_Event(_EventKind.line, line=line))

    # Event thread ------------------------------------------------------

    def _post(self, event: _Event, wait: bool = False) -> Any:
        self._events.put(event)
        if not wait:
            return None
        event.done.wait()
        return event.result

    def _run(self) -> None:
        while True:
            event = self._events.get()
            try:
                if event.kind is _EventKind.stop:
                    return
                event.result = self._handle_event(event)
            except Exception:  # pragma: no cover - keep the event thread alive
                logger.exception("Unhandled error processing %s event", event.kind.value)
            finally:
                event.done.set()

    def _handle_event(self, event: _Event) -> Any:
        if event.kind is _EventKind.line:
            self._on_line(event.line or "")
        elif event.kind is _EventKind.opening:
            self._transition(ConnectionState.opening, connected=False)
        elif event.kind is _EventKind.opened:
            self._transition(ConnectionState.connected, connected=True, last_error=None)
            logger.info(
                "Serial port opened",
                extra={"port": self.port_path, "baud_rate": self.baud_rate},
            )
        elif event.kind is _EventKind.closed:
            self._transition(ConnectionState.closed, connected=False)
            logger.info("Serial port closed", extra={"port": self.port_path})
        elif event.kind is _EventKind.errored:
            self._transition(ConnectionState.errored, connected=False, last_error=event.error)
            if event.phase == "read":
                logger.warning("Serial port closed unexpectedly", extra={"port": self.port_path})
            if event.phase == "open":
                logger.warning(
                    "Failed to open serial port: %s", event.error, extra={"port": self.port_path}
                )
            else:
                logger.error(
                    "Serial error: %s",
                    event.error,
                    extra={"port": self.port_path, "reason": event.phase},
                )
        elif event.kind is _EventKind.refresh:
            return self._on_refresh()
        return None

    def _transition(self, state: ConnectionState, **changes: Any) -> None:
        self._status = replace(self._status, state=state, **changes)

    def _on_line(self, line: str) -> None:
        logger.debug("Received line", extra={"line": line})
        self._status = replace(self._status, last_line=line)
        reading = parse_line(line)
        if reading is None:
            logger.debug("Ignoring non-telemetry line", extra={"line": line})
            return
        levels = classify_reading(reading, self.thresholds)
        self._status = replace(self._status, last_reading=reading, last_stock_levels=levels)
        self._synchronize(levels)

    def _on_refresh(self) -> Optional[StockLevelSet]:
        reading = self._status.last_reading
        if reading is None:
            return None
        levels = classify_reading(reading, self.thresholds)
        self._status = replace(self._status, last_stock_levels=levels)
        self._synchronize(levels)
        return levels

    def _synchronize(self, levels: StockLevelSet) -> None:
        if self.synchronizer is None:
            return
        try:
            self.synchronizer.reconcile(levels)
        except OSError as exc:
            logger.error("Failed to persist stock levels: %s", exc)


@lru_cache
def build_default_connection_manager() -> ConnectionManager:
    """Factory that wires the manager to the configured port and device store."""
    settings = get_settings()
    synchronizer = DeviceStateSynchronizer(build_default_store())
    return ConnectionManager(
        port_path=settings.arduino_port,
        baud_rate=settings.arduino_baud_rate,
        mock=settings.arduino_mock,
        synchronizer=synchronizer,
        thresholds=StockThresholds(
            low=settings.low_threshold, empty=settings.empty_threshold
        ),
        read_timeout=settings.arduino_read_timeout,
    )
