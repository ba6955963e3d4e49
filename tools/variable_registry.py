#!/usr/bin/env python3
"""
variable_registry.py - Variable descriptors for datalog decoding

A registry maps the 8-bit variable id found in each datalog record to a
human-readable name and a value decoder. Registries are explicit values
passed to the decoder, so one process can hold a registry per device
model and tests can substitute their own.

Registry YAML format:

    name: sensor_demo
    endian: little          # optional, default little
    header_size: 2          # optional, default 2
    variables:
      - id: 1
        name: Voltage_V
        type: f32
      - id: 7
        name: LEDStatus
        type: u8

Usage:
    from variable_registry import VariableRegistry

    registry = VariableRegistry.from_yaml('registries/sensor_demo.yaml')
    descriptor = registry.lookup(7)
    descriptor.decoder.decode(b'\\x01')   # -> 1
"""

import struct
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import yaml

from datalog_errors import RegistryError, UnknownVariableId


class ValueType(Enum):
    """Numeric kind of a decoded value."""
    UNSIGNED = 'unsigned'
    SIGNED = 'signed'
    FLOAT = 'float'


# Map type strings to (ValueType, size_bytes). Datalog records only carry
# 1- or 4-byte values.
TYPE_MAP = {
    'u8': (ValueType.UNSIGNED, 1),
    'u32': (ValueType.UNSIGNED, 4),
    'i8': (ValueType.SIGNED, 1),
    's8': (ValueType.SIGNED, 1),
    'i32': (ValueType.SIGNED, 4),
    's32': (ValueType.SIGNED, 4),
    'f32': (ValueType.FLOAT, 4),
}

ENDIAN_VALUES = ('little', 'big')
DEFAULT_ENDIAN = 'little'
DEFAULT_HEADER_SIZE = 2


@dataclass(frozen=True)
class ValueDecoder:
    """Converts a fixed-size byte slice into a number."""
    type_name: str
    kind: ValueType
    width: int
    endian: str = DEFAULT_ENDIAN

    @classmethod
    def for_type(cls, type_name: str, endian: str = DEFAULT_ENDIAN) -> 'ValueDecoder':
        if not isinstance(type_name, str) or type_name not in TYPE_MAP:
            raise RegistryError(f"Unknown type: {type_name}")
        if endian not in ENDIAN_VALUES:
            raise RegistryError(f"Unknown endian: {endian}")
        kind, width = TYPE_MAP[type_name]
        return cls(type_name=type_name, kind=kind, width=width, endian=endian)

    def _float_format(self) -> str:
        return '<f' if self.endian == 'little' else '>f'

    def decode(self, raw: bytes) -> Union[int, float]:
        """Decode exactly ``width`` bytes."""
        if len(raw) != self.width:
            raise ValueError(f"{self.type_name} needs {self.width} bytes, got {len(raw)}")
        if self.kind == ValueType.FLOAT:
            return struct.unpack(self._float_format(), bytes(raw))[0]
        return int.from_bytes(raw, self.endian, signed=self.kind == ValueType.SIGNED)

    def encode(self, value: Union[int, float]) -> bytes:
        """Inverse of :meth:`decode`; used to build synthetic packets."""
        if self.kind == ValueType.FLOAT:
            return struct.pack(self._float_format(), value)
        return int(value).to_bytes(self.width, self.endian,
                                   signed=self.kind == ValueType.SIGNED)


@dataclass(frozen=True)
class VariableDescriptor:
    """Static metadata for one datalog variable."""
    id: int
    name: str
    decoder: ValueDecoder

    @property
    def width(self) -> int:
        return self.decoder.width


class VariableRegistry:
    """Immutable id -> VariableDescriptor mapping."""

    def __init__(self, descriptors: List[VariableDescriptor], name: str = 'unnamed',
                 endian: str = DEFAULT_ENDIAN, header_size: int = DEFAULT_HEADER_SIZE):
        if endian not in ENDIAN_VALUES:
            raise RegistryError(f"Unknown endian: {endian}")
        if not isinstance(header_size, int) or isinstance(header_size, bool):
            raise RegistryError(f"header_size must be an integer, got {header_size!r}")
        if header_size < 2:
            raise RegistryError(f"header_size must be at least 2, got {header_size}")

        by_id: Dict[int, VariableDescriptor] = {}
        for descriptor in descriptors:
            if not 0 <= descriptor.id <= 0xFF:
                raise RegistryError(f"Variable id out of range 0..255: {descriptor.id}")
            if descriptor.id in by_id:
                raise RegistryError(f"Duplicate variable id: {descriptor.id}")
            by_id[descriptor.id] = descriptor

        self._by_id = dict(sorted(by_id.items()))
        self.name = name
        self.endian = endian
        self.header_size = header_size

    def get(self, variable_id: int) -> Optional[VariableDescriptor]:
        return self._by_id.get(variable_id)

    def lookup(self, variable_id: int, offset: Optional[int] = None) -> VariableDescriptor:
        """Return the descriptor for ``variable_id`` or raise UnknownVariableId."""
        descriptor = self._by_id.get(variable_id)
        if descriptor is None:
            raise UnknownVariableId(variable_id, offset)
        return descriptor

    def __contains__(self, variable_id: object) -> bool:
        return variable_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[VariableDescriptor]:
        return iter(self._by_id.values())

    def __repr__(self) -> str:
        return f"VariableRegistry(name={self.name!r}, ids={list(self._by_id)})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'endian': self.endian,
            'header_size': self.header_size,
            'variables': [
                {'id': d.id, 'name': d.name, 'type': d.decoder.type_name}
                for d in self
            ],
        }

    @classmethod
    def from_dict(cls, definition: Dict[str, Any]) -> 'VariableRegistry':
        """Build a registry from a parsed registry document."""
        if not isinstance(definition, dict):
            raise RegistryError("Registry definition must be a mapping")

        endian = definition.get('endian', DEFAULT_ENDIAN)
        header_size = definition.get('header_size', DEFAULT_HEADER_SIZE)
        variables = definition.get('variables')
        if not isinstance(variables, list):
            raise RegistryError("Registry needs a 'variables' list")

        descriptors = []
        for i, var_def in enumerate(variables):
            if not isinstance(var_def, dict):
                raise RegistryError(f"Variable entry {i} must be a mapping")
            missing = [k for k in ('id', 'name', 'type') if k not in var_def]
            if missing:
                raise RegistryError(f"Variable entry {i} missing {', '.join(missing)}")
            var_id = var_def['id']
            if not isinstance(var_id, int) or isinstance(var_id, bool):
                raise RegistryError(f"Variable entry {i} id must be an integer")
            descriptors.append(VariableDescriptor(
                id=var_id,
                name=str(var_def['name']),
                decoder=ValueDecoder.for_type(var_def['type'], endian),
            ))

        return cls(descriptors, name=definition.get('name', 'unnamed'),
                   endian=endian, header_size=header_size)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'VariableRegistry':
        """Load a registry YAML document."""
        with open(path) as f:
            try:
                definition = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise RegistryError(f"Invalid registry YAML in {path}: {e}") from e
        return cls.from_dict(definition)


# Demo sensor firmware variables
DEFAULT_REGISTRY_DEFINITION = {
    'name': 'sensor_demo',
    'endian': DEFAULT_ENDIAN,
    'header_size': DEFAULT_HEADER_SIZE,
    'variables': [
        {'id': 1, 'name': 'Voltage_V', 'type': 'f32'},
        {'id': 2, 'name': 'Temperature_C', 'type': 'f32'},
        {'id': 4, 'name': 'Count', 'type': 'u32'},
        {'id': 7, 'name': 'LEDStatus', 'type': 'u8'},
    ],
}

DEFAULT_REGISTRY = VariableRegistry.from_dict(DEFAULT_REGISTRY_DEFINITION)
