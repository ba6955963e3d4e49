"""
test_hypothesis.py - Property-based testing with Hypothesis

Covers:
- Decoder MUST NOT crash on arbitrary payloads: it either returns a
  bundle or raises a DecodeError
- Well-formed packets decode to one variable per record, in order,
  consuming the payload exactly
- Encode/decode consistency for every registry type
- Unknown ids are always reported, never dropped
- First session observation never publishes an event

Run with:
    pytest tests/test_hypothesis.py -v
    HYPOTHESIS_PROFILE=ci pytest tests/test_hypothesis.py
"""

import struct

from hypothesis import given, settings, HealthCheck
from hypothesis import strategies as st

from datalog_decoder import DatalogDecoder, DecodePolicy, RawPacket, TAG_WIDTHS, encode_packet
from datalog_errors import DecodeError, UnknownVariableId
from notifications import EventRecorder
from session_tracker import SessionState, SessionTracker
from variable_registry import DEFAULT_REGISTRY, VariableRegistry


# =============================================================================
# Strategies for generating test data
# =============================================================================

bytes_strategy = st.binary(min_size=0, max_size=256)

u8_values = st.integers(min_value=0, max_value=255)
u32_values = st.integers(min_value=0, max_value=2**32 - 1)
s8_values = st.integers(min_value=-128, max_value=127)
s32_values = st.integers(min_value=-2**31, max_value=2**31 - 1)
f32_values = st.floats(width=32, allow_nan=False, allow_infinity=False)

ALL_TYPES_REGISTRY = VariableRegistry.from_dict({
    'name': 'all_types',
    'variables': [
        {'id': 10, 'name': 'u8_var', 'type': 'u8'},
        {'id': 11, 'name': 's8_var', 'type': 's8'},
        {'id': 12, 'name': 'u32_var', 'type': 'u32'},
        {'id': 13, 'name': 's32_var', 'type': 's32'},
        {'id': 14, 'name': 'f32_var', 'type': 'f32'},
    ],
})

VALUE_STRATEGIES = {
    10: u8_values,
    11: s8_values,
    12: u32_values,
    13: s32_values,
    14: f32_values,
}

record_strategy = st.sampled_from(sorted(VALUE_STRATEGIES)).flatmap(
    lambda var_id: st.tuples(st.just(var_id), VALUE_STRATEGIES[var_id]))

records_strategy = st.lists(record_strategy, min_size=0, max_size=20)

profile_names = st.one_of(
    st.just('anonymous'),
    st.text(alphabet='abcdefghijklmnopqrstuvwxyz', min_size=1, max_size=8).filter(
        lambda name: name != 'anonymous'),
)


# =============================================================================
# Property Tests: Decoder Safety
# =============================================================================

class TestDecoderSafety:
    """Arbitrary bytes never escape as anything but a DecodeError."""

    @given(bytes_strategy)
    @settings(max_examples=1000, suppress_health_check=[HealthCheck.too_slow])
    def test_never_crashes_on_random_bytes(self, data):
        decoder = DatalogDecoder(DEFAULT_REGISTRY)
        try:
            bundle = decoder.decode(RawPacket(0, 0, data))
        except DecodeError:
            return
        assert bundle.bundle_id == data[1]

    @given(bytes_strategy)
    @settings(max_examples=500)
    def test_lenient_decoder_collects_instead_of_raising(self, data):
        decoder = DatalogDecoder(DEFAULT_REGISTRY, policy=DecodePolicy.SKIP_AND_COLLECT)
        if len(data) < 2:
            return
        bundle = decoder.decode(RawPacket(0, 0, data))
        assert bundle.success == (len(bundle.errors) == 0)


# =============================================================================
# Property Tests: Well-formed packets
# =============================================================================

class TestWellFormedPackets:

    @given(u8_values, records_strategy)
    @settings(max_examples=500)
    def test_one_variable_per_record_in_order(self, bundle_id, records):
        payload = encode_packet(bundle_id, records, ALL_TYPES_REGISTRY)
        bundle = DatalogDecoder(ALL_TYPES_REGISTRY).decode(RawPacket(0, 0, payload))

        assert bundle.bundle_id == bundle_id
        assert [v.id for v in bundle.variables] == [r[0] for r in records]

    @given(records_strategy)
    def test_records_consume_payload_exactly(self, records):
        payload = encode_packet(0, records, ALL_TYPES_REGISTRY)
        bundle = DatalogDecoder(ALL_TYPES_REGISTRY).decode(RawPacket(0, 0, payload))

        consumed = 2 + sum(2 + len(v.raw_bytes) for v in bundle.variables)
        assert consumed == len(payload)

    @given(records_strategy)
    @settings(max_examples=500)
    def test_encode_decode_roundtrip(self, records):
        payload = encode_packet(0, records, ALL_TYPES_REGISTRY)
        bundle = DatalogDecoder(ALL_TYPES_REGISTRY).decode(RawPacket(0, 0, payload))

        decoded = [(v.id, v.value) for v in bundle.variables]
        assert len(decoded) == len(records)
        for (want_id, want), (got_id, got) in zip(records, decoded):
            assert got_id == want_id
            assert got == want

    @given(f32_values)
    def test_f32_matches_struct(self, value):
        raw = struct.pack('<f', value)
        payload = bytes([0x00, 0x01, 0xC4, 14]) + raw
        bundle = DatalogDecoder(ALL_TYPES_REGISTRY).decode(RawPacket(0, 0, payload))
        assert bundle.variables[0].value == struct.unpack('<f', raw)[0]


# =============================================================================
# Property Tests: Unknown ids
# =============================================================================

class TestUnknownIds:

    @given(u8_values, st.sampled_from(sorted(TAG_WIDTHS)))
    def test_unknown_id_iff_absent(self, var_id, tag):
        payload = bytes([0x00, 0x01, tag, var_id]) + b'\x00' * TAG_WIDTHS[tag]
        decoder = DatalogDecoder(ALL_TYPES_REGISTRY, policy=DecodePolicy.SKIP_AND_COLLECT)
        bundle = decoder.decode(RawPacket(0, 0, payload))

        unknown = [e for e in bundle.errors if isinstance(e, UnknownVariableId)]
        assert bool(unknown) == (var_id not in ALL_TYPES_REGISTRY)


# =============================================================================
# Property Tests: Session tracking
# =============================================================================

class TestSessionProperties:

    @given(profile_names)
    def test_first_observation_never_publishes(self, name):
        recorder = EventRecorder()
        tracker = SessionTracker(transport=None, sink=recorder)
        tracker.observe(SessionState.from_name(name))
        assert recorder.events == []

    @given(st.lists(profile_names, min_size=1, max_size=20))
    def test_events_match_transitions(self, names):
        recorder = EventRecorder()
        tracker = SessionTracker(transport=None, sink=recorder)
        for name in names:
            tracker.observe(SessionState.from_name(name))

        expected = []
        for prev, cur in zip(names, names[1:]):
            if cur == 'anonymous' and prev != 'anonymous':
                expected.append(('logged-out',))
            elif cur != 'anonymous' and cur != prev:
                expected.append(('logged-in', cur))
        assert recorder.events == expected
