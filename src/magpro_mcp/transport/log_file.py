"""Session log: one tab-separated line per decoded device message."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from ..errors import TransportError
from ..protocol.parser import LOG_HEADER

logger = logging.getLogger(__name__)


class LogFile:
    """Appends session-log lines to a text file.

    The header is written every time the file is opened, so a file shared
    by several sessions shows where each one starts.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._file = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        try:
            self._file = self._path.open("a", encoding="utf-8")
        except OSError as e:
            raise TransportError(f"Could not open log file '{self._path}': {e}") from e
        self.write_line(LOG_HEADER)
        logger.info("Logging device messages to %s", self._path)

    def write_line(self, line: str) -> None:
        with self._lock:
            if self._file is None:
                raise TransportError("Log file is not open")
            try:
                self._file.write(line + "\n")
                self._file.flush()
            except OSError as e:
                raise TransportError(f"Could not write to log file '{self._path}': {e}") from e

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
