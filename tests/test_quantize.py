"""Tests for allowed-value tables and nearest-value quantization."""

import math

import pytest

from magpro_mcp.errors import ValidationError
from magpro_mcp.protocol.quantize import (
    BURST_INTERVAL_MENU,
    CHARGE_DELAYS,
    INPUT_DELAYS,
    OUTPUT_DELAYS,
    PULSE_BA_RATIOS,
    PULSE_INTERVAL_MENU,
    REPETITION_RATES,
    ensure_number,
    menu_value,
    nearest_allowed_value,
)


def test_nearest_exact_match():
    assert nearest_allowed_value(20, REPETITION_RATES) == 20


def test_nearest_rounds_to_closer_neighbour():
    assert nearest_allowed_value(4, [0, 10]) == 0
    assert nearest_allowed_value(6, [0, 10]) == 10
    assert nearest_allowed_value(-4, [-10, 0]) == 0
    assert nearest_allowed_value(-6, [-10, 0]) == -10


def test_nearest_tie_positive_rounds_up():
    assert nearest_allowed_value(5, [0, 10]) == 10


def test_nearest_tie_negative_rounds_down():
    assert nearest_allowed_value(-5, [-10, 0]) == -10


def test_nearest_clamps_above_range():
    assert nearest_allowed_value(1000, [0, 10]) == 10


def test_nearest_clamps_below_range():
    assert nearest_allowed_value(-1000, [0, 10]) == 0
    assert nearest_allowed_value(0.05, REPETITION_RATES) == 1


def test_nearest_accepts_floats():
    assert nearest_allowed_value(14.9, INPUT_DELAYS) == 10
    assert nearest_allowed_value(15.1, INPUT_DELAYS) == 20


def test_nearest_rejects_non_numbers():
    for bad in ("5", None, True, [5], float("nan")):
        with pytest.raises(ValidationError):
            nearest_allowed_value(bad, [0, 10])


def test_ensure_number_names_the_parameter():
    with pytest.raises(ValidationError, match="Amplitude"):
        ensure_number("high", "Amplitude")


def test_tables_are_ascending():
    for table in (REPETITION_RATES, INPUT_DELAYS, OUTPUT_DELAYS, CHARGE_DELAYS, PULSE_BA_RATIOS):
        assert list(table) == sorted(set(table))


def test_table_contents():
    assert REPETITION_RATES[:10] == (1, 2, 3, 4, 5, 6, 7, 8, 9, 10)
    assert REPETITION_RATES[-1] == 1000
    assert len(REPETITION_RATES) == 109
    assert OUTPUT_DELAYS[0] == -1000 and OUTPUT_DELAYS[-1] == 1000
    assert -99 in OUTPUT_DELAYS and -105 not in OUTPUT_DELAYS
    assert CHARGE_DELAYS[-1] == 10000 and 150 not in CHARGE_DELAYS


def test_menus_run_from_largest_value():
    assert PULSE_INTERVAL_MENU[0] == 30000
    assert PULSE_INTERVAL_MENU[-1] == 10
    assert len(PULSE_INTERVAL_MENU) == 261
    assert BURST_INTERVAL_MENU[0] == 1000
    assert BURST_INTERVAL_MENU[-1] == 5
    assert len(BURST_INTERVAL_MENU) == 196


def test_menu_value_out_of_range_is_nan():
    assert menu_value(PULSE_INTERVAL_MENU, 0, 10) == 3000.0
    assert math.isnan(menu_value(PULSE_INTERVAL_MENU, 261, 10))
