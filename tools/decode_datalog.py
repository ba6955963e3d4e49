#!/usr/bin/env python3
"""
decode_datalog.py - Decode datalog packets from the command line

Usage:
    python tools/decode_datalog.py 0005C10701 0002C4010000803F
    python tools/decode_datalog.py --file packets.txt --registry registries/sensor_demo.yaml
    python tools/decode_datalog.py --file packets.txt --skip-errors --json

Packet files hold one packet per line as ``send_time log_time hex``
(device-clock seconds); blank lines and ``#`` comments are ignored.
Packets given as arguments have both times set to 0.

Exit code is 0 when every packet decoded without errors, 1 otherwise.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional, Tuple

sys.path.insert(0, str(Path(__file__).parent))
from datalog_decoder import DatalogDecoder, DecodedBundle, DecodePolicy, RawPacket
from datalog_errors import DatalogError
from logger_config import setup_logging
from variable_registry import DEFAULT_REGISTRY, VariableRegistry


def parse_hex(text: str) -> bytes:
    """Parse hex allowing spaces, colons and an optional 0x prefix."""
    cleaned = text.strip().replace(' ', '').replace(':', '')
    if cleaned.lower().startswith('0x'):
        cleaned = cleaned[2:]
    return bytes.fromhex(cleaned)


def parse_packet_line(line: str) -> Optional[RawPacket]:
    """Parse a ``send_time log_time hex`` line; None for blanks and comments."""
    line = line.split('#', 1)[0].strip()
    if not line:
        return None
    parts = line.split(None, 2)
    if len(parts) != 3:
        raise ValueError(f"Expected 'send_time log_time hex', got: {line!r}")
    return RawPacket(send_time=float(parts[0]), log_time=float(parts[1]),
                     data=parse_hex(parts[2]))


def load_packets(path: str) -> List[RawPacket]:
    packets = []
    with open(path) as f:
        for lineno, line in enumerate(f, 1):
            try:
                packet = parse_packet_line(line)
            except ValueError as e:
                raise ValueError(f"{path}:{lineno}: {e}") from e
            if packet is not None:
                packets.append(packet)
    return packets


def decode_packets(decoder: DatalogDecoder, packets: List[RawPacket],
                   time_offset: float) -> Tuple[List[DecodedBundle], List[str]]:
    """Decode every packet, reporting packet-level failures instead of stopping."""
    bundles = []
    failures = []
    for i, packet in enumerate(packets):
        try:
            bundles.append(decoder.decode(packet, time_offset))
        except DatalogError as e:
            failures.append(f"packet {i}: {e}")
    return bundles, failures


def print_results(bundles: List[DecodedBundle], failures: List[str], verbose: bool = False):
    for bundle in bundles:
        print(f"Bundle {bundle.bundle_id} @ {bundle.log_datetime.isoformat()}")
        for var in bundle.variables:
            line = f"  {var.name} ({var.id}): {var.value}"
            if verbose:
                line += f"  [{var.raw_bytes.hex().upper()}]"
            print(line)
        for error in bundle.errors:
            print(f"  ERROR: {error}")
    for failure in failures:
        print(f"FAILED {failure}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Decode device datalog packets'
    )
    parser.add_argument('packets', nargs='*', help='Packet payloads as hex')
    parser.add_argument('-f', '--file', help='File of "send_time log_time hex" lines')
    parser.add_argument('-r', '--registry', help='Variable registry YAML (default: demo sensor)')
    parser.add_argument('--header-size', type=int,
                       help='Payload header size in bytes (default: from registry)')
    parser.add_argument('--time-offset', type=float, default=0.0,
                       help='Host-minus-device clock offset in ms (default: 0)')
    parser.add_argument('--skip-errors', action='store_true',
                       help='Skip bad records instead of failing the packet')
    parser.add_argument('--json', action='store_true',
                       help='Output results as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                       help='Show raw value bytes')
    parser.add_argument('--log-level', help='Logging level (default: $DATALOG_LOG_LEVEL or WARNING)')
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    try:
        registry = VariableRegistry.from_yaml(args.registry) if args.registry else DEFAULT_REGISTRY
        packets = [RawPacket(send_time=0, log_time=0, data=parse_hex(p)) for p in args.packets]
        if args.file:
            packets.extend(load_packets(args.file))
        policy = DecodePolicy.SKIP_AND_COLLECT if args.skip_errors else DecodePolicy.FAIL_FAST
        decoder = DatalogDecoder(registry, header_size=args.header_size, policy=policy)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not packets:
        parser.error('no packets given')

    bundles, failures = decode_packets(decoder, packets, args.time_offset)

    if args.json:
        print(json.dumps({
            'registry': registry.name,
            'bundles': [b.to_dict() for b in bundles],
            'failures': failures,
        }, indent=2))
    else:
        print_results(bundles, failures, args.verbose)

    clean = not failures and all(b.success for b in bundles)
    return 0 if clean else 1


if __name__ == '__main__':
    sys.exit(main())
