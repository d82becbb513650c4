"""Exception hierarchy for the MagPro driver.

Every error carries an :class:`ErrorKind` so callers can branch on the
category without matching on classes.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a driver failure."""

    FRAMING = "framing"
    CHECKSUM = "checksum"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    TRANSPORT = "transport"


class MagProError(Exception):
    """Base class for all driver errors."""

    kind: ErrorKind


class FramingError(MagProError):
    """A candidate frame is malformed (e.g. missing end flag)."""

    kind = ErrorKind.FRAMING


class ChecksumError(FramingError):
    """A candidate frame failed CRC validation."""

    kind = ErrorKind.CHECKSUM


class QueryTimeout(MagProError, TimeoutError):
    """The device did not answer a query in time."""

    kind = ErrorKind.TIMEOUT


class ValidationError(MagProError, ValueError):
    """A command parameter was rejected before anything was sent."""

    kind = ErrorKind.VALIDATION


class TransportError(MagProError, ConnectionError):
    """Opening, writing to or closing the serial port failed."""

    kind = ErrorKind.TRANSPORT


class ControllerClosedError(TransportError):
    """The controller was closed, or closed while a query was pending."""
