"""Tests for the session controller and its synchronous queries."""

import threading
import time
from datetime import datetime

import pytest

from conftest import (
    LONG_STATUS_BODY,
    SHORT_STATUS_BODY,
    TWIN_WAVEFORM_BODY,
    FakeLogSink,
    FakeTransport,
    frame,
)

from magpro_mcp import controller as controller_module
from magpro_mcp.controller import MagProController
from magpro_mcp.errors import (
    ControllerClosedError,
    QueryTimeout,
    TransportError,
    ValidationError,
)
from magpro_mcp.protocol.commands import (
    build_query_long_status,
    build_query_short_status,
    build_query_waveform,
    build_set_amplitude,
    build_trigger,
)
from magpro_mcp.protocol.framing import parse_frame
from magpro_mcp.protocol.parser import LongStatus, ShortStatus, WaveformConfig

REPLIES = {
    build_query_short_status(): frame(SHORT_STATUS_BODY),
    build_query_long_status(): frame(LONG_STATUS_BODY),
    build_query_waveform(): frame(TWIN_WAVEFORM_BODY),
}


def _device(data: bytes):
    return REPLIES.get(data)


def test_get_short_status():
    transport = FakeTransport(responder=_device)
    with MagProController(transport) as magpro:
        status = magpro.get_short_status()
    assert type(status) is ShortStatus
    assert status.serial_number == 0x010203
    assert transport.written == [build_query_short_status()]


def test_get_long_status_and_waveform():
    transport = FakeTransport(responder=_device)
    with MagProController(transport) as magpro:
        assert isinstance(magpro.get_long_status(), LongStatus)
        assert isinstance(magpro.get_waveform(), WaveformConfig)


def test_query_answered_later_from_another_thread(transport, controller):
    """The reply may arrive in pieces after the query was sent."""
    reply = frame(SHORT_STATUS_BODY)

    def answer():
        time.sleep(0.05)
        for i in range(len(reply)):
            transport.deliver(reply[i : i + 1])

    thread = threading.Thread(target=answer)
    thread.start()
    status = controller.get_short_status()
    thread.join()
    assert status.amplitude_a == 40


def test_query_ignores_stale_response(transport, controller):
    """A response received before the query does not satisfy it."""
    transport.deliver(frame(SHORT_STATUS_BODY))
    with pytest.raises(QueryTimeout):
        controller.get_short_status()


def test_query_timeout_after_one_second():
    transport = FakeTransport()
    with MagProController(transport) as magpro:
        started = time.monotonic()
        with pytest.raises(QueryTimeout):
            magpro.get_short_status()
        elapsed = time.monotonic() - started

        assert elapsed >= 0.95
        assert magpro.pulses == ()
        assert magpro.amplitudes == (0, 0)

        # Still usable afterwards
        magpro.trigger()
    assert transport.written[-1] == build_trigger()


def test_close_releases_pending_query():
    transport = FakeTransport()
    magpro = MagProController(transport, query_timeout=5.0)
    errors = []

    def query():
        try:
            magpro.get_short_status()
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=query)
    thread.start()
    time.sleep(0.1)
    magpro.close()
    thread.join(2.0)

    assert not thread.is_alive()
    assert len(errors) == 1
    assert isinstance(errors[0], ControllerClosedError)


def test_close_releases_transport_and_log(transport, log_sink):
    magpro = MagProController(transport, log_sink)
    magpro.close()
    magpro.close()
    assert transport.closed
    assert log_sink.closed
    assert magpro.closed
    with pytest.raises(ControllerClosedError):
        magpro.trigger()
    with pytest.raises(ControllerClosedError):
        magpro.get_short_status()


def test_setters_write_frames(transport, controller):
    controller.set_amplitude(40, 30)
    controller.enable()
    controller.disable()
    controller.trigger()
    controller.start()
    controller.set_timing(10, 20, 1, 5)
    controller.set_page("Timing")
    controller.set_trigger_delays(0, 0, 0)

    bodies = [parse_frame(f) for f in transport.written]
    assert [b[0] for b in bodies] == [1, 2, 2, 3, 4, 6, 7, 8]
    assert bodies[0] == bytes([1, 40, 30])
    assert bodies[1] == b"\x02\x01"
    assert bodies[2] == b"\x02\x00"


def test_validation_failure_sends_nothing(transport, controller):
    with pytest.raises(ValidationError):
        controller.set_amplitude("forty")
    with pytest.raises(ValidationError):
        controller.set_page("Service")
    assert transport.written == []


def test_set_waveform_reads_current_settings_first():
    transport = FakeTransport(responder=_device)
    with MagProController(transport) as magpro:
        magpro.set_waveform(mode="Dual", inter_pulse_interval=2.5)
    assert transport.written[0] == build_query_waveform()
    assert parse_frame(transport.written[1]) == bytes([9, 1, 3, 3, 0, 1, 0, 0x00, 0x19, 0x00, 0x00])


def test_pulses_recorded_from_stream(transport, controller):
    stamp = datetime(2022, 2, 23, 9, 30, 0)
    data = frame([1, 40, 30, 2]) + frame([2, 55, 0, 2]) + frame([2, 33, 0, 2])
    for i in range(len(data)):
        transport.deliver(data[i : i + 1], stamp)

    assert controller.amplitudes == (40, 30)
    assert [(p.amplitude, p.didt) for p in controller.pulses] == [(40, 55), (30, 33)]
    assert controller.pulses[0].timestamp == stamp
    assert controller.pending_second_pulse is False


def test_coil_temperature_snapshot(transport, controller):
    transport.deliver(frame([3, 27, 60, 0]))
    assert controller.coil_temperature_and_type == (27, 60)


def test_corrupt_frame_is_skipped(transport, controller):
    bad = bytearray(frame([1, 40, 30, 0]))
    bad[-2] = (bad[-2] + 1) % 0xFE
    transport.deliver(bytes(bad) + frame([1, 50, 20, 0]))
    assert controller.amplitudes == (50, 20)
    assert controller.discarded_bytes == len(bad)


def test_log_line_per_frame(transport, log_sink, controller):
    stamp = datetime(2022, 2, 23, 9, 30, 0, 250000)
    transport.deliver(frame([1, 40, 30, 6]) + frame([7, 1]), stamp)
    assert log_sink.lines == [
        "2022-02-23 09:30:00.250\t01281E06\t1\t40\t30\t-1\t-1\t-1\t-1\t2\t1",
        "2022-02-23 09:30:00.250\t0701\t7\t-1\t-1\t-1\t-1\t-1\t-1\t-1\t-1",
    ]


def test_feed_without_timestamp(controller):
    controller.feed(frame([2, 10, 0, 0]))
    assert isinstance(controller.pulses[0].timestamp, datetime)


class _FailingLogSink(FakeLogSink):
    def write_line(self, line: str) -> None:
        raise TransportError("disk full")


def test_log_sink_failure_does_not_drop_frames(transport):
    magpro = MagProController(transport, _FailingLogSink(), query_timeout=0.2)
    transport.deliver(frame([1, 40, 30, 0]) + frame([2, 55, 0, 0]))

    assert magpro.amplitudes == (40, 30)
    assert [(p.amplitude, p.didt) for p in magpro.pulses] == [(40, 55)]
    magpro.close()


class _FailingCloseTransport(FakeTransport):
    def close(self) -> None:
        super().close()
        raise TransportError("port vanished")


def test_log_sink_closed_when_transport_close_fails(log_sink):
    magpro = MagProController(_FailingCloseTransport(), log_sink)
    with pytest.raises(TransportError, match="port vanished"):
        magpro.close()
    assert log_sink.closed
    assert magpro.closed


class _FakeSerialConnection:
    instances = []

    def __init__(self, port):
        self.port = port
        self.opened = False
        self.closed = False
        _FakeSerialConnection.instances.append(self)

    def open(self):
        self.opened = True

    def start(self, on_data):
        pass

    def write(self, data):
        return len(data)

    def close(self):
        self.closed = True


def test_open_with_log_file(monkeypatch, tmp_path):
    monkeypatch.setattr(controller_module, "SerialConnection", _FakeSerialConnection)
    log_path = tmp_path / "session.txt"

    with MagProController.open("COM1", log_path=log_path) as magpro:
        magpro.feed(frame([1, 40, 0, 0]))
    connection = _FakeSerialConnection.instances[-1]

    assert connection.opened and connection.closed
    lines = log_path.read_text().splitlines()
    assert lines[0].startswith("Time")
    assert lines[1].endswith("\t1\t40\t0\t-1\t-1\t-1\t-1\t0\t0")


def test_open_closes_port_when_log_file_fails(monkeypatch, tmp_path):
    """A failure midway through setup must not leak the serial port."""
    monkeypatch.setattr(controller_module, "SerialConnection", _FakeSerialConnection)

    with pytest.raises(TransportError):
        MagProController.open("COM1", log_path=tmp_path / "missing" / "session.txt")

    connection = _FakeSerialConnection.instances[-1]
    assert connection.opened
    assert connection.closed


def test_write_failure_propagates(transport, controller):
    def fail(data):
        raise TransportError("cable unplugged")

    transport.write = fail
    with pytest.raises(TransportError):
        controller.set_amplitude(10)
    assert build_set_amplitude(10) not in transport.written
