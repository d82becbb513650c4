"""Serial connection to the MagPro.

Connect a straight serial cable to the device's COM2 port. The port runs
at 38400 baud, 8N1. Received bytes are delivered from a background reader
thread together with their arrival time.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable

import serial

from ..errors import TransportError

logger = logging.getLogger(__name__)

BAUD_RATE = 38400
READ_TIMEOUT_S = 0.05
JOIN_TIMEOUT_S = 1.0

DataCallback = Callable[[bytes, datetime], None]


class SerialConnection:
    """Owns the serial port and its reader thread.

    Usage::

        conn = SerialConnection("/dev/ttyUSB0")
        conn.open()
        conn.start(on_data)
        conn.write(frame_bytes)
        conn.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = BAUD_RATE,
        read_timeout: float = READ_TIMEOUT_S,
    ) -> None:
        self._port_name = port
        self._baudrate = baudrate
        self._read_timeout = read_timeout
        self._serial: serial.Serial | None = None
        self._reader: threading.Thread | None = None
        self._stop = threading.Event()
        self._write_lock = threading.Lock()

    @property
    def port(self) -> str:
        return self._port_name

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        """Open the serial port.

        Raises:
            TransportError: If the port does not exist or is in use.
        """
        if self.connected:
            return
        try:
            self._serial = serial.Serial(
                port=self._port_name,
                baudrate=self._baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._read_timeout,
            )
        except (serial.SerialException, ValueError) as e:
            self._serial = None
            raise TransportError(
                f"Could not open serial port '{self._port_name}'. "
                f"Ensure it exists and is not in use. Last error: {e}"
            ) from e

        try:
            self._serial.reset_input_buffer()
        except serial.SerialException as e:
            port, self._serial = self._serial, None
            port.close()
            raise TransportError(
                f"Could not reset serial port '{self._port_name}': {e}"
            ) from e
        logger.info("Opened %s at %d baud", self._port_name, self._baudrate)

    def start(self, on_data: DataCallback) -> None:
        """Start delivering received bytes to ``on_data`` from a reader thread."""
        if not self.connected:
            raise TransportError("Not connected to device")
        if self._reader is not None:
            raise RuntimeError("Reader thread already started")

        self._stop.clear()
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(self._serial, on_data),
            name=f"magpro-reader-{self._port_name}",
            daemon=True,
        )
        self._reader.start()

    def _read_loop(self, port: serial.Serial, on_data: DataCallback) -> None:
        while not self._stop.is_set():
            try:
                data = port.read(port.in_waiting or 1)
            except (serial.SerialException, OSError, TypeError) as e:
                # TypeError: pyserial on POSIX when the port is closed mid-read
                if not self._stop.is_set():
                    logger.error("Read error on %s: %s", self._port_name, e)
                return
            if data:
                try:
                    on_data(bytes(data), datetime.now())
                except Exception:
                    logger.exception("Error handling data from %s", self._port_name)

    def write(self, data: bytes) -> int:
        """Write a frame to the device.

        Returns:
            Number of bytes written.

        Raises:
            TransportError: If not connected or the write fails.
        """
        if not self.connected:
            raise TransportError("Not connected to device")
        try:
            with self._write_lock:
                written = self._serial.write(data)
                self._serial.flush()
        except serial.SerialException as e:
            raise TransportError(f"Write to {self._port_name} failed: {e}") from e
        logger.debug("Sent %s", data.hex(" "))
        return written

    def close(self) -> None:
        """Stop the reader thread and close the port."""
        self._stop.set()
        port, self._serial = self._serial, None
        try:
            if port is not None:
                port.close()
        except serial.SerialException as e:
            logger.warning("Error closing %s: %s", self._port_name, e)
        finally:
            reader, self._reader = self._reader, None
            if reader is not None and reader is not threading.current_thread():
                reader.join(JOIN_TIMEOUT_S)
            if port is not None:
                logger.info("Closed %s", self._port_name)
