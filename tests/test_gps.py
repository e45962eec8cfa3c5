"""
Unit tests for the NMEA position source. Sentences are fed in directly, so
no serial port is needed.
"""

import pytest

from friendfinder.gps import NmeaPositionSource

GGA = "$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*47"
GGA_NO_FIX = "$GPGGA,123519,,,,,0,00,,,M,,M,,"
RMC_VOID = "$GPRMC,123519,V,,,,,,,230394,,"
GSA_NO_FIX = "$GPGSA,A,1,,,,,,,,,,,,,,,"


@pytest.fixture
def gps() -> NmeaPositionSource:
    return NmeaPositionSource(port="/dev/null", battery_reader=lambda: 64)


def test_no_fix_initially(gps):
    assert not gps.has_fix()
    assert gps.latitude_i() == 0
    assert gps.longitude_i() == 0


def test_gga_sets_fix(gps):
    assert gps.handle_sentence(GGA)

    assert gps.has_fix()
    assert gps.satellite_count() == 8
    assert gps.latitude_i() == pytest.approx(481173000, abs=1)
    assert gps.longitude_i() == pytest.approx(115166667, abs=1)
    assert gps.get_all_data()["altitude"] == pytest.approx(545.4)


def test_gga_without_fix(gps):
    gps.handle_sentence(GGA_NO_FIX)
    assert not gps.has_fix()


def test_gsa_clears_fix(gps):
    gps.handle_sentence(GGA)
    assert gps.handle_sentence(GSA_NO_FIX)
    assert not gps.has_fix()


def test_void_rmc_ignored(gps):
    assert not gps.handle_sentence(RMC_VOID)
    assert gps.position is None


def test_too_few_satellites(gps):
    gps.handle_sentence("$GPGGA,123519,4807.038,N,01131.000,E,1,02,0.9,545.4,M,46.9,M,,")
    assert not gps.has_fix()


@pytest.mark.parametrize("line", ["", "hello", "$@@not nmea"])
def test_garbage_ignored(gps, line):
    assert not gps.handle_sentence(line)


def test_battery(gps):
    assert gps.battery_percent() == 64
    assert NmeaPositionSource(battery_reader=lambda: 150).battery_percent() == 100
    assert NmeaPositionSource().battery_percent() == 0


def test_start_requires_connection(gps):
    assert not gps.start()


def test_connect_missing_port():
    gps = NmeaPositionSource(port="/dev/friendfinder-missing-port")
    assert not gps.connect()
    assert not gps.connected


@pytest.mark.parametrize("line", [
    "$GPGGA,123519,4807.038,N,01131.000,E,1,xx,0.9,545.4,M,46.9,M,,",
    "$GPGGA,123519,48x7.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,",
    "$GPRMC,123519,A,48x7.038,N,01131.000,E,022.4,084.4,230394,003.1,W",
])
def test_malformed_field_keeps_previous_fix(gps, line):
    gps.handle_sentence(GGA)

    assert not gps.handle_sentence(line)

    assert gps.has_fix()
    assert gps.satellite_count() == 8
    assert gps.latitude_i() == pytest.approx(481173000, abs=1)


def test_worker_survives_malformed_sentence(gps):
    class FakeSerial:
        lines = [b"$GPGGA,123519,4807.038,N,01131.000,E,1,xx,0.9,545.4,M,46.9,M,,\r\n",
                 (GGA + "\r\n").encode("ascii")]

        @property
        def in_waiting(self):
            return len(self.lines)

        def readline(self):
            line = self.lines.pop(0)
            if not self.lines:
                gps.stop_event.set()
            return line

    gps.serial = FakeSerial()
    gps._gps_worker()

    assert gps.has_fix()
