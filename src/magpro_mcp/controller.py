"""Session controller for a MagVenture MagPro stimulator.

The controller owns the transport and the optional session log. Incoming
bytes are reassembled into frames, decoded, and folded into the device
state on the transport's reader thread; callers issue commands from their
own thread. Both sides share one condition variable.

Usage::

    with MagProController.open("/dev/ttyUSB0", log_path="session.txt") as magpro:
        magpro.set_amplitude(40)
        magpro.enable()
        magpro.trigger()
        print(magpro.get_short_status())
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import ExitStack
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from .errors import ControllerClosedError, MagProError, QueryTimeout
from .models.catalog import Page
from .models.state import DeviceState, PulseRecord
from .protocol.commands import (
    build_query_long_status,
    build_query_short_status,
    build_query_waveform,
    build_set_amplitude,
    build_set_page,
    build_set_status,
    build_set_timing,
    build_set_trigger_delays,
    build_set_waveform,
    build_start,
    build_trigger,
)
from .protocol.framing import FrameReassembler
from .protocol.parser import (
    LongStatus,
    Message,
    ShortStatus,
    WaveformConfig,
    format_log_line,
    parse_message,
)
from .transport.log_file import LogFile
from .transport.serial_connection import SerialConnection

logger = logging.getLogger(__name__)

# The device typically answers within 20-80 ms
QUERY_TIMEOUT_S = 1.0


class Transport(Protocol):
    def start(self, on_data: Callable[[bytes, datetime], None]) -> None: ...

    def write(self, data: bytes) -> int: ...

    def close(self) -> None: ...


class LogSink(Protocol):
    def write_line(self, line: str) -> None: ...

    def close(self) -> None: ...


class MagProController:
    """Drives a MagPro over an already-open transport.

    Queries block for at most ``query_timeout`` seconds; every other
    command returns as soon as it has been written.
    """

    def __init__(
        self,
        transport: Transport,
        log_sink: LogSink | None = None,
        query_timeout: float = QUERY_TIMEOUT_S,
    ) -> None:
        self._transport = transport
        self._log_sink = log_sink
        self._query_timeout = query_timeout
        self._cond = threading.Condition()
        self._reassembler = FrameReassembler()
        self._state = DeviceState()
        self._responses: dict[type, Message | None] = {
            ShortStatus: None,
            LongStatus: None,
            WaveformConfig: None,
        }
        self._closed = False
        transport.start(self.feed)

    @classmethod
    def open(
        cls,
        port: str,
        log_path: str | Path | None = None,
        query_timeout: float = QUERY_TIMEOUT_S,
    ) -> "MagProController":
        """Open ``port`` and, optionally, a session log file.

        If anything fails after the port is open, the port is closed again
        before the error propagates.
        """
        with ExitStack() as stack:
            connection = SerialConnection(port)
            connection.open()
            stack.callback(connection.close)

            log_sink = None
            if log_path is not None:
                log_sink = LogFile(log_path)
                log_sink.open()
                stack.callback(log_sink.close)

            controller = cls(connection, log_sink, query_timeout)
            stack.pop_all()
        return controller

    def __enter__(self) -> "MagProController":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the transport and the log sink.

        Any query still waiting fails with :class:`ControllerClosedError`.
        """
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()

        try:
            self._transport.close()
        finally:
            if self._log_sink is not None:
                self._log_sink.close()
        logger.info("Controller closed")

    # ─── INBOUND ──────────────────────────────────────────────────────

    def feed(self, data: bytes, timestamp: datetime | None = None) -> None:
        """Process bytes received from the device.

        Called by the transport for every arrival; may also be called
        directly to replay recorded traffic.
        """
        if timestamp is None:
            timestamp = datetime.now()

        with self._cond:
            for body in self._reassembler.feed(data):
                message = parse_message(body)
                self._state.apply(message, timestamp)
                if type(message) in self._responses:
                    self._responses[type(message)] = message
                logger.debug("Received %r", message)
                if self._log_sink is not None and not self._closed:
                    try:
                        self._log_sink.write_line(format_log_line(timestamp, body, message))
                    except MagProError:
                        logger.exception("Could not write session log line")
            self._cond.notify_all()

    # ─── OUTBOUND ─────────────────────────────────────────────────────

    def _send(self, frame: bytes) -> None:
        if self._closed:
            raise ControllerClosedError("Controller is closed")
        self._transport.write(frame)

    def _query(self, frame: bytes, response_type: type) -> Message:
        with self._cond:
            if self._closed:
                raise ControllerClosedError("Controller is closed")
            self._responses[response_type] = None

        self._send(frame)

        deadline = time.monotonic() + self._query_timeout
        with self._cond:
            while True:
                if self._closed:
                    raise ControllerClosedError("Controller closed while waiting for the device")
                response = self._responses[response_type]
                if response is not None:
                    return response
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise QueryTimeout(
                        f"No {response_type.__name__} received from the device "
                        f"within {self._query_timeout:g} s"
                    )
                self._cond.wait(remaining)

    def get_short_status(self) -> ShortStatus:
        """Ask for the short status (mode, waveform, enabled, coil, amplitudes)."""
        return self._query(build_query_short_status(), ShortStatus)

    def get_long_status(self) -> LongStatus:
        """Ask for the long status, which adds the 'Protocol' page fields."""
        return self._query(build_query_long_status(), LongStatus)

    def get_waveform(self) -> WaveformConfig:
        """Ask for the waveform settings shown on the 'Main' page."""
        return self._query(build_query_waveform(), WaveformConfig)

    def set_amplitude(self, amplitude_a: float, amplitude_b: float | None = None) -> None:
        self._send(build_set_amplitude(amplitude_a, amplitude_b))

    def set_status(self, enabled: int | bool) -> None:
        self._send(build_set_status(enabled))

    def enable(self) -> None:
        self.set_status(1)

    def disable(self) -> None:
        self.set_status(0)

    def trigger(self) -> None:
        """Fire a single pulse (only if the device is enabled)."""
        self._send(build_trigger())

    def start(self) -> None:
        """Start a pulse train.

        Only runs if the device is enabled and on the 'Timing' page; works
        even when timing control is 'External Trig'.
        """
        self._send(build_start())

    def set_timing(
        self,
        rate: float,
        pulses_in_train: int,
        number_of_trains: int,
        inter_train_interval: float,
    ) -> None:
        """Set train parameters; the device must be on the 'Timing' page."""
        self._send(build_set_timing(rate, pulses_in_train, number_of_trains, inter_train_interval))

    def set_page(self, page: str | Page) -> None:
        self._send(build_set_page(page))

    def set_trigger_delays(self, input_delay: float, output_delay: float, charge_delay: float) -> None:
        self._send(build_set_trigger_delays(input_delay, output_delay, charge_delay))

    def set_waveform(self, **options) -> None:
        """Change waveform settings, keeping the ones not given.

        Reads the current configuration first, so this can raise
        :class:`QueryTimeout`. See
        :func:`~magpro_mcp.protocol.commands.build_set_waveform` for the
        accepted options.
        """
        current = self.get_waveform()
        self._send(build_set_waveform(current, **options))

    # ─── STATE SNAPSHOTS ──────────────────────────────────────────────

    @property
    def amplitudes(self) -> tuple[int, int]:
        with self._cond:
            return self._state.amplitudes

    @property
    def coil_temperature_and_type(self) -> tuple[int, int]:
        with self._cond:
            return self._state.coil_temperature, self._state.coil_type

    @property
    def pulses(self) -> tuple[PulseRecord, ...]:
        with self._cond:
            return tuple(self._state.pulses)

    @property
    def pending_second_pulse(self) -> bool:
        with self._cond:
            return self._state.pending_second_pulse

    @property
    def discarded_bytes(self) -> int:
        """Bytes dropped while resynchronizing the inbound stream."""
        with self._cond:
            return self._reassembler.discarded
