"""
pytest configuration and fixtures for datalog tool tests.

Provides reusable fixtures for:
- The demo sensor variable registry and decoders
- Scripted in-memory devices and packet factories
- Event recording
- Hypothesis property-based testing configuration
"""

import os
import sys
from pathlib import Path

import pytest
from hypothesis import settings, Verbosity, Phase

# Add tools to path
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from datalog_decoder import DatalogDecoder, DecodePolicy, RawPacket, encode_packet
from notifications import EventRecorder
from transport import InMemoryTransport
from variable_registry import DEFAULT_REGISTRY


# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture
def registry_dir():
    return Path(__file__).parent.parent / "registries"


@pytest.fixture
def registry():
    """The demo sensor registry: Voltage_V, Temperature_C, Count, LEDStatus."""
    return DEFAULT_REGISTRY


@pytest.fixture
def decoder(registry):
    return DatalogDecoder(registry)


@pytest.fixture
def lenient_decoder(registry):
    return DatalogDecoder(registry, policy=DecodePolicy.SKIP_AND_COLLECT)


@pytest.fixture
def make_packet(registry):
    """
    Factory for synthetic datalog packets.

    Usage:
        def test_x(make_packet):
            packet = make_packet(3, [(7, 1)], send_time=1000, log_time=1000)
    """
    def _make(bundle_id, records, send_time=0, log_time=0):
        return RawPacket(send_time=send_time, log_time=log_time,
                         data=encode_packet(bundle_id, records, registry))
    return _make


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def device():
    """In-memory device with two user profiles and an empty datalog."""
    return InMemoryTransport(users={"alice": "wonderland", "bob": "builder"},
                             serial_number="SN-1234")


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
