"""
Unit tests for the Friend Finder wire format.
"""

import struct

import pytest

from friendfinder.errors import PacketDecodeError
from friendfinder.models import RequestType, Telemetry
from friendfinder.packet import PACKET_FORMAT, PACKET_SIZE, PacketParser
from friendfinder.sim import SimulatedPosition


def test_packet_is_fifteen_bytes():
    assert PACKET_SIZE == 15


def test_encode_layout():
    message = Telemetry(RequestType.ACCEPT, 515074000, -1278000, 9, 77, 1700000000)
    encoded = PacketParser.encode(message)

    assert encoded == struct.pack('<BiiBBI', 2, 515074000, -1278000, 9, 77, 1700000000)
    assert PacketParser.decode(encoded) == message


def test_encode_clamps_out_of_range_fields():
    message = Telemetry(RequestType.NONE, 1, 1, 300, 150, 0)
    decoded = PacketParser.decode(PacketParser.encode(message))

    assert decoded.satellites == 255
    assert decoded.battery_level == 100


@pytest.mark.parametrize("payload", [b"", b"\x00" * 14, b"\x00" * 16])
def test_decode_rejects_wrong_length(payload):
    with pytest.raises(PacketDecodeError):
        PacketParser.decode(payload)


def test_decode_rejects_unknown_type():
    payload = struct.pack(PACKET_FORMAT, 9, 0, 0, 0, 0, 0)
    with pytest.raises(ValueError):
        PacketParser.decode(payload)


def test_decode_caps_battery():
    payload = struct.pack(PACKET_FORMAT, 0, 0, 0, 0, 250, 0)
    assert PacketParser.decode(payload).battery_level == 100


class TestBuildTelemetry:

    def test_with_fix(self):
        position = SimulatedPosition(51.5074, -0.1278, satellites=6, battery=55)
        message = PacketParser.build_telemetry(RequestType.NONE, position, timestamp=42)

        assert message == Telemetry(RequestType.NONE, 515074000, -1278000, 6, 55, 42)
        assert message.has_position
        assert message.latitude == pytest.approx(51.5074)

    def test_without_fix_sends_sentinel(self):
        position = SimulatedPosition(51.5074, -0.1278, satellites=6, battery=55, fix=False)
        message = PacketParser.build_telemetry(RequestType.REQUEST, position, timestamp=42)

        assert (message.latitude_i, message.longitude_i) == (0, 0)
        assert message.satellites == 0
        assert message.battery_level == 55
        assert not message.has_position

    def test_without_source(self):
        message = PacketParser.build_telemetry(RequestType.END_SESSION)
        assert not message.has_position
        assert message.time > 0
