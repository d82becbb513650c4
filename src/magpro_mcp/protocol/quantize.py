"""Allowed-value tables and nearest-value quantization.

The device accepts only values from fixed menus. All tables here are
ascending and expressed in the integer unit the device uses on the wire.
"""

from __future__ import annotations

import bisect
from numbers import Real

from ..errors import ValidationError


def _steps(start: int, stop: int, step: int = 1) -> tuple[int, ...]:
    """Inclusive integer range."""
    return tuple(range(start, stop + 1, step))


# Stimulator output, % MSO
AMPLITUDES = _steps(0, 100)

# Repetition rate, 0.1 Hz: 0.1 .. 1.0 Hz, then 2 .. 100 Hz
REPETITION_RATES = _steps(1, 9) + _steps(10, 1000, 10)

PULSES_IN_TRAIN = _steps(1, 1000)
NUMBER_OF_TRAINS = _steps(1, 500)

# Inter-train interval, 0.1 s
INTER_TRAIN_INTERVALS = _steps(1, 1200)

# Trigger input delay, 0.1 ms: 0 .. 1 ms, then 2 .. 100 ms
INPUT_DELAYS = _steps(0, 9) + _steps(10, 1000, 10)

# Trigger output delay, 0.1 ms: whole ms beyond +/-10 ms, 0.1 ms inside
OUTPUT_DELAYS = _steps(-1000, -100, 10) + _steps(-99, 99) + _steps(100, 1000, 10)

# Charge delay, ms
CHARGE_DELAYS = _steps(0, 90, 10) + _steps(100, 900, 100) + _steps(1000, 10000, 1000)

# Inter-pulse interval in Biphasic Burst, 0.1 ms
BURST_INTERVALS = _steps(5, 99) + _steps(100, 195, 5) + _steps(200, 1000, 10)

# Inter-pulse interval in Twin/Dual, 0.1 ms
PULSE_INTERVALS = (
    _steps(10, 99)
    + _steps(100, 195, 5)
    + _steps(200, 990, 10)
    + _steps(1000, 4900, 100)
    + _steps(5000, 9500, 500)
    + _steps(10000, 30000, 1000)
)

# Pulse B/A amplitude ratio in Twin, 0.01
PULSE_BA_RATIOS = _steps(20, 500, 5)

# The device reports menu positions counted from the top of its menus,
# which list the largest value first.
BURST_INTERVAL_MENU = BURST_INTERVALS[::-1]
PULSE_INTERVAL_MENU = PULSE_INTERVALS[::-1]
PULSE_BA_RATIO_MENU = PULSE_BA_RATIOS[::-1]


def ensure_number(value, name: str = "value") -> Real:
    """Reject anything that is not a real number.

    Raises:
        ValidationError: For non-numeric input, including ``bool``.
    """
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if value != value:
        raise ValidationError(f"{name} must not be NaN")
    return value


def nearest_allowed_value(value: Real, allowed: tuple[int, ...]) -> int:
    """Return the element of ``allowed`` closest to ``value``.

    Values above the table clamp to its last element, values below it to
    the first. An exact tie between two neighbours resolves to the upper
    one, except for negative input where the lower one wins, so ties round
    away from zero.

    Args:
        value: The requested value.
        allowed: Ascending table of allowed values.
    """
    ensure_number(value)
    if not allowed:
        raise ValidationError("Allowed values must not be empty")

    index = bisect.bisect_left(allowed, value)
    if index == len(allowed):
        return allowed[-1]

    if index > 0:
        previous = value - allowed[index - 1]
        following = allowed[index] - value
        if following > previous or (following == previous and value < 0):
            index -= 1
    return allowed[index]


def menu_value(menu: tuple[int, ...], index: int, scale: float) -> float:
    """Look up a device menu position, returning NaN when out of range."""
    if 0 <= index < len(menu):
        return menu[index] / scale
    return float("nan")
