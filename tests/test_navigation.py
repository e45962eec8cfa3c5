"""
Unit tests for distance, bearing and the tracking screen strings.
"""

import pytest

from conftest import NODE_B
from friendfinder.models import RequestType, Telemetry
from friendfinder.navigation import NavigationCalculator, cardinal
from friendfinder.sim import ManualClock, SimulatedPosition
from friendfinder.utils import calculate_bearing, calculate_distance, format_node_id


class FixedHeading:

    def __init__(self, heading):
        self._heading = heading

    def has_heading(self) -> bool:
        return self._heading is not None

    def heading(self) -> float:
        return self._heading


def peer_at(lat: float, lon: float) -> Telemetry:
    return Telemetry(RequestType.NONE, int(round(lat * 1e7)), int(round(lon * 1e7)), 8, 70, 0)


@pytest.fixture
def nav(clock) -> NavigationCalculator:
    return NavigationCalculator(clock=clock)


def test_haversine_and_bearing():
    assert calculate_distance(51.5, 0.0, 51.501, 0.0) == pytest.approx(111.19, rel=1e-3)
    assert calculate_bearing(51.5, 0.0, 51.501, 0.0) == pytest.approx(0.0, abs=1e-6)
    assert calculate_bearing(0.0, 10.0, 0.0, 10.001) == pytest.approx(90.0, abs=1e-6)


@pytest.mark.parametrize("bearing, point", [
    (0, "N"), (90, "E"), (180, "S"), (270, "W"), (359, "N"), (45, "NE"), (200, "SSW"),
])
def test_cardinal(bearing, point):
    assert cardinal(bearing) == point


def test_format_node_id():
    assert format_node_id(0xA1B2) == "!0000a1b2"


class TestCalculator:

    def test_distance_between_fixes(self, nav, clock):
        nav.update_own_position(SimulatedPosition(51.5, 0.0001))
        nav.update_peer(peer_at(51.501, 0.0001), clock())

        assert nav.distance == pytest.approx(111.19, rel=1e-3)
        assert nav.format_distance() == "111m"
        assert nav.format_bearing() == "0° (N)"

    def test_sentinel_peer_is_unknown(self, nav, clock):
        nav.update_own_position(SimulatedPosition(51.5, 0.0001))
        nav.update_peer(Telemetry(RequestType.NONE, 0, 0, 0, 50, 0), clock())

        assert nav.peer_position is None
        assert nav.distance is None
        assert nav.format_distance() == "Dist --"
        assert nav.format_bearing() == "Brg --"

    def test_no_own_fix(self, nav, clock):
        nav.update_own_position(SimulatedPosition(51.5, 0.0001, fix=False))
        nav.update_peer(peer_at(51.501, 0.0001), clock())
        assert nav.distance is None

    @pytest.mark.parametrize("meters, units, text", [
        (123.4, "metric", "123m"),
        (1234.0, "metric", "1.2km"),
        (100.0, "imperial", "328ft"),
        (1609.34, "imperial", "1.0mi"),
    ])
    def test_format_distance(self, nav, meters, units, text):
        nav.distance = meters
        assert nav.format_distance(units) == text

    def test_format_age(self, nav, clock):
        assert nav.format_age() == "???"

        nav.update_peer(peer_at(51.501, 0.0001), clock())
        clock.advance(12)
        assert nav.format_age() == "12s ago"

        clock.advance(1000)
        assert nav.format_age() == "DC"

    def test_relative_bearing(self, nav, clock):
        nav.update_own_position(SimulatedPosition(51.5, 0.0001))
        nav.update_peer(peer_at(51.501, 0.0001), clock())

        assert nav.relative_bearing() == pytest.approx(0.0, abs=1e-6)
        assert nav.relative_bearing(FixedHeading(None)) == pytest.approx(0.0, abs=1e-6)
        assert nav.relative_bearing(FixedHeading(90.0)) == pytest.approx(270.0)

    def test_distance_trend_closing(self, nav, clock):
        nav.update_own_position(SimulatedPosition(51.5, 0.0001))
        for lat in (51.503, 51.502, 51.501):
            nav.update_peer(peer_at(lat, 0.0001), clock())
            clock.advance(10)

        assert nav.distance_trend() < 0
        data = nav.get_navigation_data()
        assert data["battery"] == 70
        assert data["satellites"] == 8


def test_update_from_session(tracking, alpha, bravo):
    nav = NavigationCalculator(clock=tracking.clock)
    nav.update_from_session(alpha.machine)

    expected = calculate_distance(alpha.position.latitude, alpha.position.longitude,
                                  bravo.position.latitude, bravo.position.longitude)
    assert nav.distance == pytest.approx(expected, rel=1e-4)
    assert nav.age() is not None


def test_update_from_session_uses_directory_cache(alpha, clock):
    alpha.directory.upsert(NODE_B, 1, None)
    alpha.directory.update_telemetry(NODE_B, peer_at(51.51, -0.128), clock())
    alpha.machine.request_tracking(NODE_B)

    nav = NavigationCalculator(clock=clock)
    nav.update_from_session(alpha.machine)
    assert nav.peer_position == pytest.approx((51.51, -0.128))
