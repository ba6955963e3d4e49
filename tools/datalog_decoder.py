#!/usr/bin/env python3
"""
datalog_decoder.py - Decoder for device datalog packets

A datalog packet is one entry dequeued from the device-side log queue.
Its payload is a short header followed by tagged variable records:

    Header (2 bytes by default): reserved(1) + bundle_id(1)
    Per record: type_tag(1) + variable_id(1) + value(N)

    type_tag 0xC1 -> 1 value byte
    type_tag 0xC4 -> 4 value bytes

There is no record count or terminator; records run until the payload
is exhausted. The variable id selects a descriptor from the registry,
whose decoder turns the value bytes into a number.

Usage:
    from datalog_decoder import DatalogDecoder, RawPacket
    from variable_registry import DEFAULT_REGISTRY

    decoder = DatalogDecoder(DEFAULT_REGISTRY)
    bundle = decoder.decode(RawPacket(send_time=0, log_time=0,
                                      data=bytes([0x00, 0x05, 0xC1, 0x07, 0x01])))
    bundle.variables[0].value   # -> 1
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from datalog_errors import (
    DecodeError, LengthMismatch, RegistryError, TruncatedPacket,
    UnknownVariableId, UnsupportedTypeTag,
)
from variable_registry import VariableRegistry

logger = logging.getLogger(__name__)


TAG_UINT8 = 0xC1
TAG_UINT32 = 0xC4

# Value byte count carried by each record tag
TAG_WIDTHS = {
    TAG_UINT8: 1,
    TAG_UINT32: 4,
}

# Reverse map for encoding
WIDTH_TAGS = {width: tag for tag, width in TAG_WIDTHS.items()}

RECORD_HEADER_SIZE = 2
BUNDLE_ID_OFFSET = 1


class DecodePolicy(Enum):
    """What the decoder does when a record cannot be decoded."""
    FAIL_FAST = 'fail_fast'
    SKIP_AND_COLLECT = 'skip_and_collect'


@dataclass
class RawPacket:
    """Datalog packet as delivered by the transport.

    ``send_time`` and ``log_time`` are device-clock seconds.
    """
    send_time: float
    log_time: float
    data: bytes

    def __post_init__(self):
        self.data = bytes(self.data)


@dataclass
class DecodedVariable:
    """One record decoded from a packet."""
    id: int
    name: str
    raw_bytes: bytes
    value: Union[int, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'raw': self.raw_bytes.hex().upper(),
            'value': self.value,
        }


@dataclass
class DecodedBundle:
    """Decoded representation of one datalog packet.

    ``log_time`` is host-clock epoch milliseconds.
    """
    bundle_id: int
    variables: List[DecodedVariable] = field(default_factory=list)
    log_time: float = 0.0
    errors: List[DecodeError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    @property
    def log_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.log_time / 1000.0, tz=timezone.utc)

    def values(self) -> Dict[str, Union[int, float]]:
        """Variable name -> value, later records overriding earlier ones."""
        return {v.name: v.value for v in self.variables}

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'bundle_id': self.bundle_id,
            'log_time': self.log_time,
            'variables': [v.to_dict() for v in self.variables],
        }
        if self.errors:
            result['errors'] = [str(e) for e in self.errors]
        return result


class DatalogDecoder:
    """Decodes datalog packet payloads against a variable registry."""

    def __init__(self, registry: VariableRegistry, header_size: Optional[int] = None,
                 policy: DecodePolicy = DecodePolicy.FAIL_FAST):
        self.registry = registry
        self.header_size = registry.header_size if header_size is None else header_size
        if self.header_size <= BUNDLE_ID_OFFSET:
            raise RegistryError(f"header_size must be at least 2, got {self.header_size}")
        self.policy = policy

    def _read_record(self, data: bytes, pos: int) -> Tuple[int, bytes, int]:
        """
        Read the record starting at ``pos``.

        Returns: (variable_id, value_bytes, next_pos)
        """
        tag = data[pos]
        width = TAG_WIDTHS.get(tag)
        if width is None:
            raise UnsupportedTypeTag(tag, pos)

        if pos + RECORD_HEADER_SIZE > len(data):
            raise TruncatedPacket("Record header truncated", pos)
        variable_id = data[pos + 1]

        start = pos + RECORD_HEADER_SIZE
        end = start + width
        if end > len(data):
            raise TruncatedPacket(
                f"Record for variable {variable_id} needs {width} value bytes, "
                f"{len(data) - start} left", pos)

        return variable_id, data[start:end], end

    def _decode_value(self, variable_id: int, raw: bytes, pos: int) -> DecodedVariable:
        descriptor = self.registry.lookup(variable_id, pos)
        if len(raw) != descriptor.width:
            raise LengthMismatch(variable_id, descriptor.width, len(raw), pos)
        return DecodedVariable(
            id=variable_id,
            name=descriptor.name,
            raw_bytes=raw,
            value=descriptor.decoder.decode(raw),
        )

    def decode(self, packet: RawPacket, time_offset: float = 0.0) -> DecodedBundle:
        """
        Decode one packet.

        Args:
            packet: Raw packet from the transport
            time_offset: Host-minus-device clock offset in milliseconds

        Returns:
            DecodedBundle with variables in record order

        Raises:
            DecodeError subclass on the first bad record (FAIL_FAST policy)
        """
        data = packet.data
        if len(data) < self.header_size:
            raise TruncatedPacket(
                f"Packet of {len(data)} bytes is shorter than the "
                f"{self.header_size}-byte header", len(data))

        bundle = DecodedBundle(
            bundle_id=data[BUNDLE_ID_OFFSET],
            log_time=packet.log_time * 1000 + time_offset,
        )

        pos = self.header_size
        while pos < len(data):
            try:
                variable_id, raw, next_pos = self._read_record(data, pos)
            except (UnsupportedTypeTag, TruncatedPacket) as e:
                # Cursor position is unknowable past this point
                if self.policy == DecodePolicy.FAIL_FAST:
                    raise
                logger.warning("Bundle %d: %s, dropping rest of packet", bundle.bundle_id, e)
                bundle.errors.append(e)
                break

            try:
                bundle.variables.append(self._decode_value(variable_id, raw, pos))
            except (UnknownVariableId, LengthMismatch) as e:
                if self.policy == DecodePolicy.FAIL_FAST:
                    raise
                logger.warning("Bundle %d: skipping record: %s", bundle.bundle_id, e)
                bundle.errors.append(e)
            pos = next_pos

        logger.debug("Decoded bundle %d: %d variables, %d errors",
                     bundle.bundle_id, len(bundle.variables), len(bundle.errors))
        return bundle

    def decode_all(self, packets: Iterable[RawPacket],
                   time_offset: float = 0.0) -> List[DecodedBundle]:
        """Decode packets in order. Under FAIL_FAST the first error aborts the batch."""
        return [self.decode(packet, time_offset) for packet in packets]


def encode_packet(bundle_id: int, records: Sequence[Tuple[int, Union[int, float]]],
                  registry: VariableRegistry, header_size: Optional[int] = None,
                  reserved: int = 0x00) -> bytes:
    """
    Build a datalog payload from (variable_id, value) pairs.

    Used for test vectors and the in-memory device; the record tag is
    chosen from the descriptor width.
    """
    if header_size is None:
        header_size = registry.header_size
    out = bytearray([reserved & 0xFF, bundle_id & 0xFF])
    out.extend(b'\x00' * (header_size - len(out)))

    for variable_id, value in records:
        descriptor = registry.lookup(variable_id)
        tag = WIDTH_TAGS.get(descriptor.width)
        if tag is None:
            raise ValueError(f"No record tag for {descriptor.width}-byte values")
        out.append(tag)
        out.append(variable_id)
        out.extend(descriptor.decoder.encode(value))

    return bytes(out)
