"""Command IDs and command builders.

Each builder validates and quantizes its parameters, then returns a
complete frame ready to write to the serial port. Nothing is built if
validation fails. Multi-byte fields are big-endian.
"""

from __future__ import annotations

import math
import struct
from enum import IntEnum
from numbers import Integral

from ..errors import ValidationError
from ..models.catalog import CurrentDirection, Mode, Page, Waveform
from .framing import build_frame
from .parser import WaveformConfig
from .quantize import (
    AMPLITUDES,
    BURST_INTERVALS,
    CHARGE_DELAYS,
    INPUT_DELAYS,
    INTER_TRAIN_INTERVALS,
    NUMBER_OF_TRAINS,
    OUTPUT_DELAYS,
    PULSE_BA_RATIOS,
    PULSE_INTERVALS,
    PULSES_IN_TRAIN,
    REPETITION_RATES,
    ensure_number,
    nearest_allowed_value,
)


class Command(IntEnum):
    """Host-to-device command IDs."""

    QUERY_SHORT_STATUS = 0
    SET_AMPLITUDE = 1
    SET_STATUS = 2
    TRIGGER = 3
    START = 4
    QUERY_LONG_STATUS = 5
    SET_TIMING = 6
    SET_PAGE = 7
    SET_TRIGGER = 8
    WAVEFORM = 9


class WaveformAccess(IntEnum):
    """Second byte of the waveform command."""

    READ = 0
    WRITE = 1


# Burst pulse count -> wire code
BURST_CODES = {5: 0, 4: 1, 3: 2, 2: 3}


def build_command(command: Command, payload: bytes = b"") -> bytes:
    """Build a frame for a command ID and its parameter bytes."""
    return build_frame(bytes([command]) + payload)


def build_query_short_status() -> bytes:
    """Build the short status query; the device answers with message 0."""
    return build_command(Command.QUERY_SHORT_STATUS)


def build_query_long_status() -> bytes:
    """Build the long status query; the device answers with message 5."""
    return build_command(Command.QUERY_LONG_STATUS)


def build_query_waveform() -> bytes:
    """Build the waveform query; the device answers with message 9."""
    return build_command(Command.WAVEFORM, bytes([WaveformAccess.READ]))


def build_set_amplitude(amplitude_a: float, amplitude_b: float | None = None) -> bytes:
    """Build a command setting the stimulator output.

    Args:
        amplitude_a: Output for pulse A, % MSO (0-100).
        amplitude_b: Output for pulse B, % MSO (0-100); 0 if omitted.
    """
    a = nearest_allowed_value(ensure_number(amplitude_a, "Amplitude A"), AMPLITUDES)
    b = 0
    if amplitude_b is not None:
        b = nearest_allowed_value(ensure_number(amplitude_b, "Amplitude B"), AMPLITUDES)
    return build_command(Command.SET_AMPLITUDE, bytes([a, b]))


def build_set_status(enabled: int | bool) -> bytes:
    """Build a command enabling (1) or disabling (0) the stimulator."""
    if enabled not in (0, 1) or not isinstance(enabled, (bool, int)):
        raise ValidationError(f"Status must be either 0 or 1, got {enabled!r}")
    return build_command(Command.SET_STATUS, bytes([int(enabled)]))


def build_trigger() -> bytes:
    """Build a single-pulse trigger. Only fires if the device is enabled."""
    return build_command(Command.TRIGGER)


def build_start() -> bytes:
    """Build a pulse-train start. Only fires if enabled and on the Timing page."""
    return build_command(Command.START)


def build_set_timing(
    rate: float,
    pulses_in_train: int,
    number_of_trains: int,
    inter_train_interval: float,
) -> bytes:
    """Build a command setting pulse-train parameters.

    Values snap to the nearest allowed setting. Rates are validated
    against an X100 in standard mode; other devices and modes may refuse
    the higher rates.

    Args:
        rate: Repetition rate in Hz (0.1-1.0 in 0.1 steps, then 2-100).
        pulses_in_train: 1-1000.
        number_of_trains: 1-500.
        inter_train_interval: Seconds, 0.1-120.0 in 0.1 steps.
    """
    rr = nearest_allowed_value(10 * ensure_number(rate, "Repetition rate"), REPETITION_RATES)
    pit = nearest_allowed_value(ensure_number(pulses_in_train, "Pulses in train"), PULSES_IN_TRAIN)
    trains = nearest_allowed_value(ensure_number(number_of_trains, "Number of trains"), NUMBER_OF_TRAINS)
    iti = nearest_allowed_value(10 * ensure_number(inter_train_interval, "ITI"), INTER_TRAIN_INTERVALS)
    return build_command(Command.SET_TIMING, struct.pack(">HHHH", rr, pit, trains, iti))


def page_number(page: str | Page) -> Page:
    """Resolve a selectable page from a :class:`Page` or its name."""
    try:
        resolved = page if isinstance(page, Page) else Page.from_name(page)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if not resolved.selectable:
        raise ValidationError(f"Page '{resolved.label}' cannot be selected")
    return resolved


def build_set_page(page: str | Page) -> bytes:
    """Build a command switching the device UI page.

    Args:
        page: 'Main', 'Timing', 'Trigger', 'Configure' or 'Protocol'
            (long names such as 'Timing Menu (Timing)' also work).
    """
    return build_command(Command.SET_PAGE, bytes([page_number(page), 0]))


def build_set_trigger_delays(
    input_delay: float,
    output_delay: float,
    charge_delay: float,
) -> bytes:
    """Build a command setting trigger and charge delays.

    Negative output delays only take effect when the device timing is in
    'Sequence' mode; otherwise the device clamps them to zero.

    Args:
        input_delay: ms, 0-1 in 0.1 steps, then 2-100.
        output_delay: ms, -100 to 100; 0.1 ms steps within +/-10 ms.
        charge_delay: ms, 0-100 in 10 steps, 100-1000 in 100 steps,
            1000-10000 in 1000 steps.
    """
    delay_in = nearest_allowed_value(10 * ensure_number(input_delay, "Input delay"), INPUT_DELAYS)
    delay_out = nearest_allowed_value(10 * ensure_number(output_delay, "Output delay"), OUTPUT_DELAYS)
    delay_charge = nearest_allowed_value(ensure_number(charge_delay, "Charge delay"), CHARGE_DELAYS)
    payload = struct.pack(">HhHBB", delay_in, delay_out, delay_charge, 0, 0)
    return build_command(Command.SET_TRIGGER, payload)


def _resolve(enum_cls, value, current: int):
    if value is None:
        try:
            return enum_cls(current)
        except ValueError as e:
            raise ValidationError(f"Device reported an unknown {enum_cls.__name__} {current}") from e
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls.from_name(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def build_set_waveform(
    current: WaveformConfig,
    mode: str | Mode | None = None,
    current_direction: str | CurrentDirection | None = None,
    waveform: str | Waveform | None = None,
    burst_pulses: int | None = None,
    inter_pulse_interval: float | None = None,
    pulse_ba_ratio: float | None = None,
) -> bytes:
    """Build a command changing the pulse waveform settings.

    Settings not given keep their value from ``current``, the device's
    present configuration.

    Args:
        current: The device's current waveform configuration.
        mode: 'Standard', 'Power', 'Twin' or 'Dual'.
        current_direction: 'Normal' or 'Reverse'.
        waveform: 'Monophasic', 'Biphasic', 'Halfsine' or 'Biphasic Burst'.
        burst_pulses: Pulses in a biphasic burst, 2-5.
        inter_pulse_interval: ms; snaps to the menu for the resulting
            waveform.
        pulse_ba_ratio: Twin mode B/A amplitude ratio, 0.20-5.00.
    """
    new_mode = _resolve(Mode, mode, current.mode)
    direction = _resolve(CurrentDirection, current_direction, current.current_direction)
    new_waveform = _resolve(Waveform, waveform, current.waveform)

    if new_mode in (Mode.TWIN, Mode.DUAL) and new_waveform == Waveform.BIPHASIC_BURST:
        raise ValidationError("Cannot use 'Twin' or 'Dual' mode with waveform 'Biphasic Burst'")

    if burst_pulses is None:
        burst_code = current.raw[6]
    elif (
        isinstance(burst_pulses, bool)
        or not isinstance(burst_pulses, Integral)
        or burst_pulses not in BURST_CODES
    ):
        raise ValidationError(f"Burst pulses must be 2-5, got {burst_pulses!r}")
    else:
        burst_code = BURST_CODES[burst_pulses]

    if inter_pulse_interval is None:
        if math.isnan(current.inter_pulse_interval):
            raise ValidationError("Current inter-pulse interval is unknown; provide one")
        inter_pulse_interval = current.inter_pulse_interval
    table = BURST_INTERVALS if new_waveform == Waveform.BIPHASIC_BURST else PULSE_INTERVALS
    interval = nearest_allowed_value(10 * ensure_number(inter_pulse_interval, "Inter-pulse interval"), table)

    second_pulse = 0
    if new_mode == Mode.TWIN:
        if pulse_ba_ratio is None:
            ratio = current.pulse_ba_ratio
            pulse_ba_ratio = 1.0 if math.isnan(ratio) else ratio
        second_pulse = nearest_allowed_value(
            100 * ensure_number(pulse_ba_ratio, "Pulse B/A ratio"), PULSE_BA_RATIOS
        )

    payload = bytes([
        WaveformAccess.WRITE,
        current.model,
        new_mode,
        direction,
        new_waveform,
        burst_code,
    ]) + struct.pack(">HH", interval, second_pulse)
    return build_command(Command.WAVEFORM, payload)
