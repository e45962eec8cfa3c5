"""
Navigation Module

This module turns our own position and the peer's last telemetry into the
distance, bearing and age shown on the tracking screen.
"""

import logging
import time
from typing import Dict, Any, Optional, Tuple

from friendfinder import config
from friendfinder.models import Telemetry
from friendfinder.utils import calculate_distance, calculate_bearing

# Set up logging
logger = logging.getLogger(__name__)

METERS_TO_FEET = 3.28084
MILES_TO_FEET = 5280
AGE_DISCONNECTED = 999  # seconds after which the peer is shown as "DC"

CARDINAL_DIRECTIONS = [
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW"
]


class NavigationCalculator:
    """
    Class for calculating navigation parameters between us and the peer.

    Positions carrying the (0, 0) "no fix" sentinel are treated as unknown,
    so no distance or bearing is produced from them.
    """

    def __init__(self, clock=time.monotonic):
        """Initialize the navigation calculator."""
        self.clock = clock

        # Current positions
        self.own_position: Optional[Tuple[float, float]] = None
        self.peer_position: Optional[Tuple[float, float]] = None
        self.peer_telemetry: Optional[Telemetry] = None
        self.peer_heard_at: Optional[float] = None

        # Calculated values
        self.distance: Optional[float] = None
        self.bearing: Optional[float] = None

        # History for trend analysis
        self.distance_history: list = []
        self.max_history_size: int = 20

    def update_own_position(self, position) -> None:
        """
        Update our position from a PositionSource.

        Args:
            position: Object implementing the PositionSource protocol
        """
        if position.has_fix() and (position.latitude_i() or position.longitude_i()):
            self.own_position = (position.latitude_i() / 1e7, position.longitude_i() / 1e7)
        else:
            self.own_position = None
        self._update_calculations()

    def update_peer(self, telemetry: Optional[Telemetry], heard_at: Optional[float]) -> None:
        """
        Update the peer's position from its last telemetry.

        Args:
            telemetry: Last message received from the peer, or None
            heard_at: Monotonic time the message was received
        """
        self.peer_telemetry = telemetry
        self.peer_heard_at = heard_at
        if telemetry is not None and telemetry.has_position:
            self.peer_position = (telemetry.latitude, telemetry.longitude)
        else:
            self.peer_position = None
        self._update_calculations()

    def update_from_session(self, machine) -> None:
        """
        Refresh from a SessionMachine.

        The live session cache is preferred; the directory cache is used when
        tracking has only just started and the peer is a known friend.
        """
        self.update_own_position(machine.position)

        telemetry, heard_at = machine.peer_telemetry, machine.peer_heard_at
        peer = machine.target
        if telemetry is None and peer is not None:
            slot = machine.directory.find(peer)
            if slot is not None:
                record = machine.directory.get(slot)
                telemetry, heard_at = record.last_telemetry, record.last_heard_at
        self.update_peer(telemetry, heard_at)

    def _update_calculations(self) -> None:
        """Update navigation calculations if both positions are available."""
        if self.own_position and self.peer_position:
            self.distance = calculate_distance(
                self.own_position[0], self.own_position[1],
                self.peer_position[0], self.peer_position[1]
            )
            self.bearing = calculate_bearing(
                self.own_position[0], self.own_position[1],
                self.peer_position[0], self.peer_position[1]
            )

            self.distance_history.append((self.clock(), self.distance))
            if len(self.distance_history) > self.max_history_size:
                self.distance_history = self.distance_history[-self.max_history_size:]

            logger.debug(f"Navigation update: Distance: {self.distance:.1f}m, "
                         f"Bearing: {self.bearing:.1f}°")
        else:
            self.distance = None
            self.bearing = None

    def get_navigation_data(self) -> Dict[str, Any]:
        return {
            "own_position": self.own_position,
            "peer_position": self.peer_position,
            "distance": self.distance,
            "bearing": self.bearing,
            "distance_trend": self.distance_trend(),
            "battery": self.peer_telemetry.battery_level if self.peer_telemetry else None,
            "satellites": self.peer_telemetry.satellites if self.peer_telemetry else None,
            "age": self.age(),
        }

    def distance_trend(self) -> Optional[float]:
        """
        Calculate the trend in distance over time.

        Returns:
            Rate of change in meters per second (negative means getting closer),
            or None if insufficient data
        """
        if len(self.distance_history) < 2:
            return None

        points = self.distance_history[-5:]

        # Simple linear regression
        n = len(points)
        sum_x = sum(p[0] for p in points)
        sum_y = sum(p[1] for p in points)
        sum_xy = sum(p[0] * p[1] for p in points)
        sum_xx = sum(p[0] * p[0] for p in points)

        try:
            return (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
        except ZeroDivisionError:
            return None

    def relative_bearing(self, heading_provider=None) -> Optional[float]:
        """
        Bearing to the peer relative to the direction we are facing.

        Args:
            heading_provider: Object implementing HeadingProvider, or None for north-up

        Returns:
            Degrees clockwise from our heading (0-360), or None if unknown
        """
        if self.bearing is None:
            return None
        if heading_provider is None or not heading_provider.has_heading():
            return self.bearing
        return (self.bearing - heading_provider.heading()) % 360

    def age(self) -> Optional[float]:
        if self.peer_heard_at is None:
            return None
        return max(0.0, self.clock() - self.peer_heard_at)

    def format_distance(self, units: Optional[str] = None) -> str:
        """
        Get a formatted string representation of the distance.

        Args:
            units: "metric" or "imperial", defaults to config.DISPLAY_UNITS

        Returns:
            Formatted distance string, or 'Dist --' if not available
        """
        if self.distance is None:
            return "Dist --"

        units = units or config.DISPLAY_UNITS
        if units == "imperial":
            feet = self.distance * METERS_TO_FEET
            if feet < 1000:
                return f"{feet:.0f}ft"
            return f"{feet / MILES_TO_FEET:.1f}mi"

        if self.distance < 1000:
            return f"{self.distance:.0f}m"
        return f"{self.distance / 1000:.1f}km"

    def format_bearing(self) -> str:
        if self.bearing is None:
            return "Brg --"
        return f"{self.bearing:.0f}° ({cardinal(self.bearing)})"

    def format_age(self) -> str:
        age = self.age()
        if age is None:
            return "???"
        if age > AGE_DISCONNECTED:
            return "DC"
        return f"{int(age)}s ago"


def cardinal(bearing: float) -> str:
    """Convert a bearing in degrees to one of 16 compass points."""
    return CARDINAL_DIRECTIONS[round(bearing / 22.5) % 16]
