"""MCP server entry point for MagVenture MagPro stimulators.

Exposes tools and resources via the Model Context Protocol using the
official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from mcp.server.fastmcp import FastMCP

from .controller import MagProController
from .errors import MagProError, ValidationError
from .models.catalog import (
    COIL_TYPES,
    PAGE_LONG_NAMES,
    CurrentDirection,
    Mode,
    Waveform,
    coil_type_name,
    model_name,
    page_name,
)
from .protocol.parser import LongStatus, ShortStatus, WaveformConfig

logger = logging.getLogger(__name__)

PORT_ENV_VAR = "MAGPRO_PORT"

mcp = FastMCP(
    "magpro",
    instructions="MCP server for MagVenture MagPro magnetic stimulators",
)

# Global session state
_controller: MagProController | None = None


def _get_controller() -> MagProController:
    """Get the active controller, raising if not connected."""
    if _controller is None or _controller.closed:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _controller


def _status_dict(status: ShortStatus) -> dict[str, Any]:
    result = status.to_dict()
    result["mode_name"] = Mode.describe(status.mode)
    result["waveform_name"] = Waveform.describe(status.waveform)
    result["model_name"] = model_name(status.model)
    result["coil_type_name"] = coil_type_name(status.coil_type)
    if isinstance(status, LongStatus):
        result["page_name"] = page_name(status.page_number)
    return result


def _waveform_dict(config: WaveformConfig) -> dict[str, Any]:
    result = config.to_dict()
    result["model_name"] = model_name(config.model)
    result["mode_name"] = Mode.describe(config.mode)
    result["current_direction_name"] = CurrentDirection.describe(config.current_direction)
    result["waveform_name"] = Waveform.describe(config.waveform)
    return result


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(port: str | None = None, log_path: str | None = None) -> dict[str, Any]:
    """Open the serial connection to the stimulator.

    Args:
        port: Serial port name (e.g. COM1 or /dev/ttyUSB0). Defaults to
              the MAGPRO_PORT environment variable.
        log_path: Optional file to append one line per device message to.
    """
    global _controller
    if _controller is not None and not _controller.closed:
        return {"connected": True, "message": "Already connected"}

    port = port or os.environ.get(PORT_ENV_VAR)
    if not port:
        return {"error": f"No port given and {PORT_ENV_VAR} is not set"}

    _controller = MagProController.open(port, log_path=log_path)

    result: dict[str, Any] = {"connected": True, "port": port}
    try:
        result["status"] = _status_dict(_controller.get_short_status())
    except MagProError as e:
        result["status_error"] = str(e)
    return result


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial connection and the session log."""
    global _controller
    if _controller is None:
        return {"disconnected": True}
    _controller.close()
    _controller = None
    return {"disconnected": True}


# ─── QUERY TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def get_status() -> dict[str, Any]:
    """Read the short status: mode, waveform, enabled, coil, amplitudes."""
    return _status_dict(_get_controller().get_short_status())


@mcp.tool()
def get_parameters() -> dict[str, Any]:
    """Read the long status, including the current page and protocol factors."""
    return _status_dict(_get_controller().get_long_status())


@mcp.tool()
def get_waveform() -> dict[str, Any]:
    """Read the waveform settings shown on the 'Main' page."""
    return _waveform_dict(_get_controller().get_waveform())


@mcp.tool()
def get_pulses(start: int = 0) -> dict[str, Any]:
    """List the pulses observed in this session.

    Args:
        start: Index of the first pulse to return.
    """
    controller = _get_controller()
    pulses = controller.pulses
    start = max(start, 0)
    return {
        "total": len(pulses),
        "pulses": [
            {"index": i, **p.to_dict()}
            for i, p in enumerate(pulses[start:], start=start)
        ],
    }


# ─── SETTING TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def set_amplitude(amplitude_a: float, amplitude_b: float | None = None) -> dict[str, Any]:
    """Set the stimulator output in % MSO (0-100), rounded to whole percent.

    Args:
        amplitude_a: Output for pulse A.
        amplitude_b: Output for pulse B (Twin/Dual modes).
    """
    try:
        _get_controller().set_amplitude(amplitude_a, amplitude_b)
    except ValidationError as e:
        return {"error": str(e)}
    return {"sent": True}


@mcp.tool()
def enable() -> dict[str, Any]:
    """Enable the stimulator."""
    _get_controller().enable()
    return {"sent": True}


@mcp.tool()
def disable() -> dict[str, Any]:
    """Disable the stimulator."""
    _get_controller().disable()
    return {"sent": True}


@mcp.tool()
def trigger() -> dict[str, Any]:
    """Fire a single pulse. Only fires if the stimulator is enabled."""
    _get_controller().trigger()
    return {"sent": True}


@mcp.tool()
def start_train() -> dict[str, Any]:
    """Start a pulse train. The stimulator must be enabled and on the Timing page."""
    _get_controller().start()
    return {"sent": True}


@mcp.tool()
def set_timing(
    rate: float,
    pulses_in_train: int,
    number_of_trains: int,
    inter_train_interval: float,
) -> dict[str, Any]:
    """Set pulse-train parameters. Values snap to the nearest allowed setting.

    Args:
        rate: Repetition rate in Hz (0.1-1.0 in 0.1 steps, then 2-100).
        pulses_in_train: 1-1000.
        number_of_trains: 1-500.
        inter_train_interval: Seconds between trains (0.1-120.0).
    """
    try:
        _get_controller().set_timing(rate, pulses_in_train, number_of_trains, inter_train_interval)
    except ValidationError as e:
        return {"error": str(e)}
    return {"sent": True}


@mcp.tool()
def set_page(page: str) -> dict[str, Any]:
    """Switch the device UI page.

    Args:
        page: Main, Timing, Trigger, Configure or Protocol.
    """
    try:
        _get_controller().set_page(page)
    except ValidationError as e:
        return {"error": str(e)}
    return {"sent": True, "page": page}


@mcp.tool()
def set_trigger_delays(
    input_delay: float,
    output_delay: float,
    charge_delay: float,
) -> dict[str, Any]:
    """Set trigger input/output delays and the charge delay, in ms.

    Args:
        input_delay: 0-100 ms.
        output_delay: -100 to 100 ms (negative only in 'Sequence' timing).
        charge_delay: 0-10000 ms.
    """
    try:
        _get_controller().set_trigger_delays(input_delay, output_delay, charge_delay)
    except ValidationError as e:
        return {"error": str(e)}
    return {"sent": True}


@mcp.tool()
def set_waveform(
    mode: str | None = None,
    current_direction: str | None = None,
    waveform: str | None = None,
    burst_pulses: int | None = None,
    inter_pulse_interval: float | None = None,
    pulse_ba_ratio: float | None = None,
) -> dict[str, Any]:
    """Change waveform settings; settings not given are kept.

    Args:
        mode: Standard, Power, Twin or Dual.
        current_direction: Normal or Reverse.
        waveform: Monophasic, Biphasic, Halfsine or Biphasic Burst.
        burst_pulses: Pulses per biphasic burst, 2-5.
        inter_pulse_interval: Interval between pulses in ms.
        pulse_ba_ratio: Twin mode B/A amplitude ratio, 0.20-5.00.
    """
    try:
        _get_controller().set_waveform(
            mode=mode,
            current_direction=current_direction,
            waveform=waveform,
            burst_pulses=burst_pulses,
            inter_pulse_interval=inter_pulse_interval,
            pulse_ba_ratio=pulse_ba_ratio,
        )
    except ValidationError as e:
        return {"error": str(e)}
    return {"sent": True}


# ─── MCP RESOURCES ────────────────────────────────────────────────────

@mcp.resource("magpro://device/state")
def resource_device_state() -> str:
    """Last-known amplitudes, coil temperature and pulse count."""
    if _controller is None or _controller.closed:
        return json.dumps({"connected": False})
    temperature, coil_type = _controller.coil_temperature_and_type
    return json.dumps({
        "connected": True,
        "amplitudes": list(_controller.amplitudes),
        "coil_temperature": temperature,
        "coil_type": coil_type,
        "coil_type_name": coil_type_name(coil_type),
        "pulse_count": len(_controller.pulses),
        "pending_second_pulse": _controller.pending_second_pulse,
    })


@mcp.resource("magpro://catalog/coils")
def resource_coil_catalog() -> str:
    """Known coil type numbers."""
    return json.dumps({"coils": [
        {"id": number, "name": name} for number, name in COIL_TYPES.items()
    ]})


@mcp.resource("magpro://catalog/pages")
def resource_page_catalog() -> str:
    """Device UI pages and whether they can be selected."""
    return json.dumps({"pages": [
        {"id": int(page), "name": page.label, "long_name": long_name, "selectable": page.selectable}
        for page, long_name in PAGE_LONG_NAMES.items()
    ]})


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
