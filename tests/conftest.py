"""Shared test helpers: an in-memory transport and log sink."""

from __future__ import annotations

from datetime import datetime

import pytest

from magpro_mcp.controller import MagProController
from magpro_mcp.protocol.framing import build_frame


class FakeTransport:
    """Records writes and lets tests deliver device bytes.

    ``responder`` maps a written frame to the device's reply frame (or
    ``None``), delivered synchronously as if the device answered at once.
    """

    def __init__(self, responder=None):
        self.responder = responder
        self.written: list[bytes] = []
        self.on_data = None
        self.closed = False

    def start(self, on_data):
        self.on_data = on_data

    def write(self, data: bytes) -> int:
        self.written.append(data)
        if self.responder is not None:
            reply = self.responder(data)
            if reply:
                self.deliver(reply)
        return len(data)

    def deliver(self, data: bytes, timestamp: datetime | None = None) -> None:
        self.on_data(data, timestamp or datetime.now())

    def close(self) -> None:
        self.closed = True


class FakeLogSink:
    def __init__(self):
        self.lines: list[str] = []
        self.closed = False

    def write_line(self, line: str) -> None:
        self.lines.append(line)

    def close(self) -> None:
        self.closed = True


SHORT_STATUS_BODY = bytes([0, 123, 0x01, 0x02, 0x03, 27, 60, 40, 30])
LONG_STATUS_BODY = bytes([5]) + SHORT_STATUS_BODY[1:] + bytes([41, 31, 150, 50, 7, 1])
TWIN_WAVEFORM_BODY = bytes([9, 0, 3, 2, 0, 1, 0, 0x00, 0x00, 80])


def frame(body) -> bytes:
    return build_frame(bytes(body))


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def log_sink():
    return FakeLogSink()


@pytest.fixture
def controller(transport, log_sink):
    magpro = MagProController(transport, log_sink, query_timeout=0.2)
    yield magpro
    magpro.close()
