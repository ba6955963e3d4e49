"""
Tests for the decode_datalog command-line tool.
"""

import json
import logging

import pytest

from datalog_decoder import RawPacket
from decode_datalog import main, parse_hex, parse_packet_line


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


class TestParsing:

    def test_parse_hex_variants(self):
        assert parse_hex('0005C10701') == bytes([0x00, 0x05, 0xC1, 0x07, 0x01])
        assert parse_hex('0x00 05 c1 07 01') == bytes([0x00, 0x05, 0xC1, 0x07, 0x01])
        assert parse_hex('00:05:C1:07:01') == bytes([0x00, 0x05, 0xC1, 0x07, 0x01])

    def test_parse_packet_line(self):
        packet = parse_packet_line('1000 990 0005C10701  # first')
        assert packet == RawPacket(1000.0, 990.0, bytes([0x00, 0x05, 0xC1, 0x07, 0x01]))

    def test_parse_blank_and_comment_lines(self):
        assert parse_packet_line('   ') is None
        assert parse_packet_line('# header') is None

    def test_parse_bad_line(self):
        with pytest.raises(ValueError, match='send_time log_time hex'):
            parse_packet_line('0005C10701')


class TestMain:

    def test_decode_argument_packets(self, capsys):
        assert main(['0005C10701', '0002C4010000803F']) == 0
        out = capsys.readouterr().out
        assert 'Bundle 5' in out
        assert 'LEDStatus (7): 1' in out
        assert 'Voltage_V (1): 1.0' in out

    def test_json_output(self, capsys):
        assert main(['--json', '--time-offset', '5000', '0005C10701']) == 0
        result = json.loads(capsys.readouterr().out)
        assert result['registry'] == 'sensor_demo'
        bundle = result['bundles'][0]
        assert bundle['bundle_id'] == 5
        assert bundle['log_time'] == 5000
        assert bundle['variables'] == [{'id': 7, 'name': 'LEDStatus', 'raw': '01', 'value': 1}]

    def test_failing_packet_exit_code(self, capsys):
        assert main(['0005C10701', '0001C16301']) == 1
        out = capsys.readouterr().out
        assert 'FAILED packet 1: Unknown variable id: 99' in out
        assert 'Bundle 5' in out

    def test_skip_errors(self, capsys):
        assert main(['--skip-errors', '0001C16301C10701']) == 1
        out = capsys.readouterr().out
        assert 'LEDStatus (7): 1' in out
        assert 'ERROR: Unknown variable id: 99' in out

    def test_packet_file_and_registry(self, tmp_path, capsys, registry_dir):
        packets = tmp_path / 'packets.txt'
        packets.write_text(
            "# send_time log_time payload\n"
            "1000 1000 0003C4042A000000\n"
            "\n"
            "1001 1001 0004C10700\n"
        )
        argv = ['--file', str(packets), '--registry', str(registry_dir / 'sensor_demo.yaml'),
                '--json']
        assert main(argv) == 0
        result = json.loads(capsys.readouterr().out)
        assert [b['bundle_id'] for b in result['bundles']] == [3, 4]
        assert result['bundles'][0]['variables'][0]['value'] == 42
        assert result['bundles'][1]['log_time'] == 1001 * 1000

    def test_header_size_option(self, capsys):
        assert main(['--header-size', '3', '0005EEC10701']) == 0
        assert 'LEDStatus (7): 1' in capsys.readouterr().out

    def test_header_size_too_small_option(self, capsys):
        assert main(['--header-size', '1', '0005C10701']) == 1
        assert 'header_size must be at least 2' in capsys.readouterr().err

    def test_registry_with_string_header_size(self, tmp_path, capsys):
        registry_file = tmp_path / 'quoted.yaml'
        registry_file.write_text(
            "name: quoted\n"
            "header_size: '3'\n"
            "variables:\n"
            "  - {id: 7, name: LEDStatus, type: u8}\n"
        )
        assert main(['-r', str(registry_file), '0005C10701']) == 1
        assert 'Error: header_size must be an integer' in capsys.readouterr().err

    def test_missing_registry_file(self, tmp_path, capsys):
        assert main(['--registry', str(tmp_path / 'missing.yaml'), '0005C10701']) == 1
        assert 'Error:' in capsys.readouterr().err

    def test_bad_hex(self, capsys):
        assert main(['zz']) == 1
        assert 'Error:' in capsys.readouterr().err

    def test_no_packets(self):
        with pytest.raises(SystemExit):
            main([])
