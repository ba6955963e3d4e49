#!/usr/bin/env python3
"""
datalog_errors.py - Exception taxonomy for datalog decoding and device access

Decode errors are ValueError subclasses so callers that only care about
"bad bytes" can catch ValueError, exactly like the payload codecs do.
Each decode error records the byte offset where parsing stopped.
"""

from contextlib import contextmanager
from typing import Iterator, Optional


class DatalogError(Exception):
    """Root of every error raised by the datalog tools."""


class RegistryError(DatalogError, ValueError):
    """Invalid variable registry definition."""


class DecodeError(DatalogError, ValueError):
    """A datalog packet payload could not be decoded."""

    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)
        self.offset = offset


class UnknownVariableId(DecodeError):
    """A record references a variable id absent from the registry."""

    def __init__(self, variable_id: int, offset: Optional[int] = None):
        super().__init__(f"Unknown variable id: {variable_id}", offset)
        self.variable_id = variable_id


class LengthMismatch(DecodeError):
    """Record value width disagrees with the descriptor's declared width."""

    def __init__(self, variable_id: int, expected: int, actual: int,
                 offset: Optional[int] = None):
        super().__init__(
            f"Variable {variable_id} expects {expected} bytes, record carries {actual}",
            offset)
        self.variable_id = variable_id
        self.expected = expected
        self.actual = actual


class TruncatedPacket(DecodeError):
    """Cursor ran past the end of the payload before a record completed."""


class UnsupportedTypeTag(DecodeError):
    """Record type tag is not one of the recognized tags."""

    def __init__(self, tag: int, offset: Optional[int] = None):
        super().__init__(f"Unsupported type tag: 0x{tag:02X}", offset)
        self.tag = tag


class TransportError(DatalogError):
    """A call into the device transport failed.

    ``operation`` names the transport call; the original exception is
    chained as ``__cause__``.
    """

    def __init__(self, operation: str, message: str = ""):
        text = f"{operation} failed"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)
        self.operation = operation


class ConnectError(TransportError):
    """Connecting to the device failed."""

    def __init__(self, message: str = ""):
        DatalogError.__init__(self, f"Connection failed: {message or 'unknown error'}")
        self.operation = "connect"


class DeviceNotInitialized(DatalogError):
    """Operation needs a transport but the device service has none."""


@contextmanager
def transport_errors(operation: str) -> Iterator[None]:
    """Re-raise any non-datalog exception from the block as TransportError."""
    try:
        yield
    except DatalogError:
        raise
    except Exception as e:
        raise TransportError(operation, str(e) or type(e).__name__) from e
