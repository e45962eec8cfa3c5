"""
Packet Parser Module

This module handles the encoding and decoding of Friend Finder messages carried
as the payload of a mesh packet on the Friend Finder application port.
"""

import struct
import time
from typing import Optional

from friendfinder.errors import PacketDecodeError
from friendfinder.models import RequestType, Telemetry

# request_type, latitude_i, longitude_i, satellites, battery_level, time
PACKET_FORMAT = '<BiiBBI'
PACKET_SIZE = struct.calcsize(PACKET_FORMAT)

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


class PacketParser:
    """Parser for Friend Finder packets."""

    @staticmethod
    def build_telemetry(request_type: RequestType, position=None,
                        timestamp: Optional[int] = None) -> Telemetry:
        """
        Build an outgoing message from the current position source.

        When the source has no fix the (0, 0) sentinel is sent with zero
        satellites, so receivers treat the position as unknown.

        Args:
            request_type: Kind of message to send
            position: Object implementing the PositionSource protocol, or None
            timestamp: Unix timestamp, or current time if None

        Returns:
            Telemetry ready for encoding
        """
        if timestamp is None:
            timestamp = int(time.time())

        latitude_i = longitude_i = satellites = 0
        battery = 0
        if position is not None:
            if position.has_fix():
                latitude_i = position.latitude_i()
                longitude_i = position.longitude_i()
                satellites = position.satellite_count()
            battery = position.battery_percent()

        return Telemetry(
            request_type=RequestType(request_type),
            latitude_i=_clamp(latitude_i, INT32_MIN, INT32_MAX),
            longitude_i=_clamp(longitude_i, INT32_MIN, INT32_MAX),
            satellites=_clamp(satellites, 0, 255),
            battery_level=_clamp(battery, 0, 100),
            time=_clamp(timestamp, 0, 2 ** 32 - 1),
        )

    @staticmethod
    def encode(message: Telemetry) -> bytes:
        """
        Encode a message into its binary wire format.

        Format (little endian, 15 bytes):
        - 1 byte: Request type
        - 4 bytes: Latitude (int32, degrees * 1e7)
        - 4 bytes: Longitude (int32, degrees * 1e7)
        - 1 byte: Satellites in view
        - 1 byte: Battery level (0-100)
        - 4 bytes: Timestamp (Unix timestamp as uint32)

        Args:
            message: Message to encode

        Returns:
            Binary packet as bytes
        """
        return struct.pack(
            PACKET_FORMAT,
            int(message.request_type),
            _clamp(message.latitude_i, INT32_MIN, INT32_MAX),
            _clamp(message.longitude_i, INT32_MIN, INT32_MAX),
            _clamp(message.satellites, 0, 255),
            _clamp(message.battery_level, 0, 100),
            _clamp(message.time, 0, 2 ** 32 - 1),
        )

    @staticmethod
    def decode(packet_bytes: bytes) -> Telemetry:
        """
        Decode a binary packet.

        Args:
            packet_bytes: Binary packet data

        Returns:
            The decoded message

        Raises:
            PacketDecodeError: If the packet is invalid
        """
        if len(packet_bytes) != PACKET_SIZE:
            raise PacketDecodeError(
                f"Invalid packet length: {len(packet_bytes)}, expected {PACKET_SIZE} bytes")

        kind, lat, lon, sats, battery, timestamp = struct.unpack(PACKET_FORMAT, packet_bytes)

        try:
            request_type = RequestType(kind)
        except ValueError:
            raise PacketDecodeError(f"Unknown request type: {kind}")

        return Telemetry(
            request_type=request_type,
            latitude_i=lat,
            longitude_i=lon,
            satellites=sats,
            battery_level=min(battery, 100),
            time=timestamp,
        )
