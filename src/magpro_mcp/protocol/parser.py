"""Decoding of device message bodies.

The first body byte is the message ID. Numeric fields a message does not
carry are reported as -1 (integers) or NaN (intervals and ratios).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from datetime import datetime
from enum import IntEnum

from ..models.catalog import Mode, Waveform
from .quantize import (
    BURST_INTERVAL_MENU,
    PULSE_BA_RATIO_MENU,
    PULSE_INTERVAL_MENU,
    menu_value,
)

logger = logging.getLogger(__name__)

NOT_PRESENT = -1
BURST_PULSES = {0: 5, 1: 4, 2: 3, 3: 2}

LOG_HEADER = (
    "Time                   \tRaw data\tInterpreted message "
    "(type SO(A) SO(B) di/dt(A) di/dt(B) temperature coiltype mode waveform)"
)


class MessageType(IntEnum):
    """Device-to-host message IDs."""

    SHORT_STATUS = 0
    AMPLITUDE = 1
    PULSE = 2
    COIL_TEMPERATURE = 3
    LONG_STATUS = 5
    WAVEFORM = 9


def _mode_bits(value: int) -> tuple[int, int]:
    """Split a status byte into (mode, waveform)."""
    return value & 0b11, (value & 0b1100) >> 2


@dataclass(frozen=True)
class Message:
    """Base class for decoded messages."""

    raw: bytes

    @property
    def message_type(self) -> int:
        return self.raw[0] if self.raw else NOT_PRESENT

    def log_fields(self) -> list[int]:
        """Nine-column summary used by the session log.

        Columns: type, SO(A), SO(B), di/dt(A), di/dt(B), temperature,
        coil type, mode, waveform.
        """
        row = [NOT_PRESENT] * 9
        row[0] = self.message_type
        return row

    def to_dict(self) -> dict:
        result: dict = {"type": self.message_type}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bytes):
                value = value.hex(" ")
            elif isinstance(value, float) and math.isnan(value):
                value = None
            result[f.name] = value
        return result


@dataclass(frozen=True)
class _EventMessage(Message):
    """Types 1-3 share a layout: two data bytes and an optional mode byte."""

    mode: int = NOT_PRESENT
    waveform: int = NOT_PRESENT

    def log_fields(self) -> list[int]:
        row = super().log_fields()
        row[7] = self.mode
        row[8] = self.waveform
        return row


@dataclass(frozen=True)
class AmplitudeUpdate(_EventMessage):
    amplitude_a: int = NOT_PRESENT
    amplitude_b: int = NOT_PRESENT

    def log_fields(self) -> list[int]:
        row = super().log_fields()
        row[1:3] = [self.amplitude_a, self.amplitude_b]
        return row


@dataclass(frozen=True)
class PulseEvent(_EventMessage):
    didt_a: int = NOT_PRESENT
    didt_b: int = NOT_PRESENT

    def log_fields(self) -> list[int]:
        row = super().log_fields()
        row[3:5] = [self.didt_a, self.didt_b]
        return row


@dataclass(frozen=True)
class CoilTemperature(_EventMessage):
    temperature: int = NOT_PRESENT
    coil_type: int = NOT_PRESENT

    def log_fields(self) -> list[int]:
        row = super().log_fields()
        row[5:7] = [self.temperature, self.coil_type]
        return row


@dataclass(frozen=True)
class ShortStatus(Message):
    """Response to the short status query (ID 0)."""

    mode: int = NOT_PRESENT
    waveform: int = NOT_PRESENT
    enabled: bool = False
    model: int = NOT_PRESENT
    serial_number: int = NOT_PRESENT
    temperature: int = NOT_PRESENT
    coil_type: int = NOT_PRESENT
    amplitude_a: int = NOT_PRESENT
    amplitude_b: int = NOT_PRESENT


@dataclass(frozen=True)
class LongStatus(ShortStatus):
    """Response to the long status query (ID 5).

    The amplitude settings and factors relate to the 'Protocol' page.
    """

    amplitude_setting_a: int = NOT_PRESENT
    amplitude_setting_b: int = NOT_PRESENT
    amplitude_factor_a: float = math.nan
    amplitude_factor_b: float = math.nan
    page_number: int = NOT_PRESENT
    ongoing_sequence: int = NOT_PRESENT


@dataclass(frozen=True)
class WaveformConfig(Message):
    """Response to the waveform query (ID 9, read).

    ``inter_pulse_interval`` is in milliseconds. ``pulse_ba_ratio`` applies
    to Twin mode and ``pulse_b_amplitude`` to Dual mode; both are NaN
    otherwise.
    """

    model: int = NOT_PRESENT
    mode: int = NOT_PRESENT
    current_direction: int = NOT_PRESENT
    waveform: int = NOT_PRESENT
    burst_pulses: int = NOT_PRESENT
    inter_pulse_interval: float = math.nan
    pulse_ba_ratio: float = math.nan
    pulse_b_amplitude: float = math.nan


@dataclass(frozen=True)
class Unrecognized(Message):
    """A valid frame whose body could not be interpreted."""


def _parse_event(body: bytes) -> Message:
    if len(body) < 3:
        return Unrecognized(raw=body)

    mode, waveform = _mode_bits(body[3]) if len(body) > 3 else (NOT_PRESENT, NOT_PRESENT)
    first, second = body[1], body[2]
    kind = body[0]
    if kind == MessageType.AMPLITUDE:
        return AmplitudeUpdate(body, mode, waveform, amplitude_a=first, amplitude_b=second)
    if kind == MessageType.PULSE:
        return PulseEvent(body, mode, waveform, didt_a=first, didt_b=second)
    return CoilTemperature(body, mode, waveform, temperature=first, coil_type=second)


def _status_fields(body: bytes) -> dict:
    mode, waveform = _mode_bits(body[1])
    return {
        "raw": body,
        "mode": mode,
        "waveform": waveform,
        "enabled": bool(body[1] & 0b10000),
        "model": body[1] >> 5,
        "serial_number": int.from_bytes(body[2:5], "big"),
        "temperature": body[5],
        "coil_type": body[6],
        "amplitude_a": body[7],
        "amplitude_b": body[8],
    }


def parse_short_status(body: bytes) -> Message:
    if len(body) < 9:
        return Unrecognized(raw=body)
    return ShortStatus(**_status_fields(body))


def parse_long_status(body: bytes) -> Message:
    if len(body) < 15:
        return Unrecognized(raw=body)
    return LongStatus(
        **_status_fields(body),
        amplitude_setting_a=body[9],
        amplitude_setting_b=body[10],
        amplitude_factor_a=body[11] / 100,
        amplitude_factor_b=body[12] / 100,
        page_number=body[13],
        ongoing_sequence=body[14],
    )


def parse_waveform(body: bytes) -> Message:
    """Parse a waveform read response.

    The inter-pulse interval and the B/A ratio are reported as menu
    positions, and which menu applies depends on the waveform and mode.
    """
    if len(body) != 10 or body[1] != 0:
        return Unrecognized(raw=body)

    mode = body[3]
    waveform = body[5]
    if waveform == Waveform.BIPHASIC_BURST:
        interval = menu_value(BURST_INTERVAL_MENU, body[7], 10)
    else:
        interval = menu_value(PULSE_INTERVAL_MENU, int.from_bytes(body[7:9], "little"), 10)

    ratio = math.nan
    b_amplitude = math.nan
    if mode == Mode.TWIN:
        ratio = menu_value(PULSE_BA_RATIO_MENU, body[9], 100)
    elif mode == Mode.DUAL:
        b_amplitude = float(100 - body[9])

    return WaveformConfig(
        raw=body,
        model=body[2],
        mode=mode,
        current_direction=body[4],
        waveform=waveform,
        burst_pulses=BURST_PULSES.get(body[6], NOT_PRESENT),
        inter_pulse_interval=interval,
        pulse_ba_ratio=ratio,
        pulse_b_amplitude=b_amplitude,
    )


def parse_message(body: bytes) -> Message:
    """Decode a validated frame body.

    Never raises; bodies that cannot be interpreted come back as
    :class:`Unrecognized` so they can still be logged.
    """
    body = bytes(body)
    if not body:
        return Unrecognized(raw=body)

    parsers = {
        MessageType.SHORT_STATUS: parse_short_status,
        MessageType.AMPLITUDE: _parse_event,
        MessageType.PULSE: _parse_event,
        MessageType.COIL_TEMPERATURE: _parse_event,
        MessageType.LONG_STATUS: parse_long_status,
        MessageType.WAVEFORM: parse_waveform,
    }
    parser = parsers.get(body[0])
    if parser is None:
        logger.debug("Unknown message ID %d: %s", body[0], body.hex(" "))
        return Unrecognized(raw=body)

    message = parser(body)
    if isinstance(message, Unrecognized):
        logger.warning("Malformed message ID %d: %s", body[0], body.hex(" "))
    return message


def format_log_line(timestamp: datetime, body: bytes, message: Message) -> str:
    """Format one session-log line: time, raw hex, interpreted columns."""
    time_str = timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    columns = "\t".join(str(v) for v in message.log_fields())
    return f"{time_str}\t{body.hex().upper()}\t{columns}"
