"""
GPS Module

This module reads NMEA sentences from a serial GPS receiver and exposes the
latest fix through the PositionSource protocol used by the session machine.
"""

import threading
import time
import logging
from typing import Callable, Dict, Any, Optional, Tuple

import pynmea2
import serial

from friendfinder import config

# Set up logging
logger = logging.getLogger(__name__)


class NmeaPositionSource:
    """
    Class for interfacing with a serial NMEA GPS module.

    A background thread parses GGA, RMC and GSA sentences. Sentences can also
    be fed in directly with handle_sentence(), which is what the worker does
    for every line it reads.
    """

    def __init__(self, port: Optional[str] = None, baud_rate: Optional[int] = None,
                 battery_reader: Optional[Callable[[], int]] = None):
        """
        Initialize the GPS receiver.

        Args:
            port: Serial port, defaults to config.GPS_PORT
            baud_rate: Baud rate, defaults to config.GPS_BAUD_RATE
            battery_reader: Callable returning the battery level in percent
        """
        self.port = port or config.GPS_PORT
        self.baud_rate = baud_rate or config.GPS_BAUD_RATE
        self.timeout = config.GPS_TIMEOUT
        self.battery_reader = battery_reader

        self.serial = None
        self.connected = False

        self.position: Optional[Tuple[float, float]] = None  # (latitude, longitude)
        self.altitude = 0.0
        self.satellites = 0
        self.fix_quality = 0
        self.hdop = 0.0
        self.last_update = 0.0
        self.sample_interval: Optional[int] = None

        # Thread control
        self.thread = None
        self.stop_event = threading.Event()

    def connect(self) -> bool:
        """
        Connect to the GPS module.

        Returns:
            bool: True if successfully connected, False otherwise.
        """
        try:
            self.serial = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                timeout=self.timeout
            )
        except serial.SerialException as e:
            logger.error(f"Failed to connect to GPS module: {e}")
            self.connected = False
            return False

        self.connected = True
        logger.info(f"Connected to GPS module at {self.port}")
        return True

    def disconnect(self) -> None:
        """Disconnect from the GPS module."""
        if self.connected and self.serial:
            self.stop()

            try:
                self.serial.close()
            except serial.SerialException as e:
                logger.error(f"Error closing GPS serial port: {e}")

            self.serial = None
            self.connected = False
            logger.info("Disconnected from GPS module")

    def start(self) -> bool:
        """
        Start the GPS reading thread.

        Returns:
            bool: True if successfully started, False otherwise.
        """
        if not self.connected:
            logger.error("Cannot start GPS: not connected")
            return False

        if self.thread is not None and self.thread.is_alive():
            logger.warning("GPS thread already running")
            return True

        self.stop_event.clear()
        self.thread = threading.Thread(target=self._gps_worker, daemon=True)
        self.thread.start()

        logger.info("GPS thread started")
        return True

    def stop(self) -> None:
        """Stop the GPS reading thread."""
        self.stop_event.set()

        if self.thread:
            self.thread.join(timeout=2.0)
            self.thread = None

        logger.info("GPS thread stopped")

    def set_sample_interval(self, seconds: int) -> None:
        """
        HostConfig reload listener.

        A plain NMEA receiver streams at its own rate, so the interval is
        only recorded here; receivers with a configurable rate hook in here.
        """
        self.sample_interval = seconds
        logger.info(f"GPS sample interval now {seconds}s")

    # ---- PositionSource ----

    def has_fix(self) -> bool:
        return (self.position is not None and
                self.fix_quality > 0 and
                self.satellites >= config.GPS_MIN_SATELLITES)

    def latitude_i(self) -> int:
        return int(round(self.position[0] * 1e7)) if self.position else 0

    def longitude_i(self) -> int:
        return int(round(self.position[1] * 1e7)) if self.position else 0

    def satellite_count(self) -> int:
        return self.satellites

    def battery_percent(self) -> int:
        if self.battery_reader is None:
            return 0
        return max(0, min(100, int(self.battery_reader())))

    def get_all_data(self) -> Dict[str, Any]:
        return {
            "latitude": self.position[0] if self.position else None,
            "longitude": self.position[1] if self.position else None,
            "altitude": self.altitude,
            "satellites": self.satellites,
            "fix_quality": self.fix_quality,
            "hdop": self.hdop,
            "timestamp": self.last_update
        }

    # ---- parsing ----

    def handle_sentence(self, line: str) -> bool:
        """
        Process one NMEA sentence.

        Args:
            line: Raw sentence, e.g. "$GPGGA,..."

        Returns:
            bool: True if the sentence updated the fix
        """
        line = line.strip()
        if not line.startswith('$'):
            return False

        try:
            msg = pynmea2.parse(line)
        except pynmea2.ParseError:
            return False  # Ignore invalid NMEA sentences

        try:
            return self._apply_sentence(msg)
        except (ValueError, TypeError) as e:
            # Checksum passed but a field is malformed; keep the previous fix
            logger.warning(f"Ignoring malformed {msg.sentence_type} sentence: {e}")
            return False

    def _apply_sentence(self, msg) -> bool:
        if isinstance(msg, pynmea2.GGA):
            # Global Positioning System Fix Data
            fix_quality = int(msg.gps_qual) if msg.gps_qual else 0
            satellites = int(msg.num_sats) if msg.num_sats else 0
            hdop = float(msg.horizontal_dil) if msg.horizontal_dil else 0.0
            position = None
            if fix_quality > 0 and msg.lat and msg.lon:
                position = (msg.latitude, msg.longitude)
                self.altitude = float(msg.altitude) if msg.altitude else 0.0

            self.fix_quality = fix_quality
            self.satellites = satellites
            self.hdop = hdop
            if position is not None:
                self.position = position
                self.last_update = time.time()
            return True

        if isinstance(msg, pynmea2.RMC):
            # Recommended Minimum Navigation Information
            if msg.status == 'A' and msg.lat and msg.lon:
                self.position = (msg.latitude, msg.longitude)
                self.last_update = time.time()
                return True
            return False

        if isinstance(msg, pynmea2.GSA):
            # GPS DOP and active satellites; mode 1 means no fix
            hdop = float(msg.hdop) if msg.hdop else self.hdop
            if msg.mode_fix_type == '1':
                self.fix_quality = 0
            self.hdop = hdop
            return True

        return False

    def _gps_worker(self) -> None:
        """
        Worker thread function for reading GPS data.
        """
        logger.info("GPS worker thread started")

        while not self.stop_event.is_set():
            try:
                if self.serial and self.serial.in_waiting > 0:
                    line = self.serial.readline().decode('ascii', errors='replace')
                    self.handle_sentence(line)
                else:
                    # Small delay to prevent CPU hogging when no data
                    time.sleep(0.01)

            except serial.SerialException as e:
                logger.error(f"Error reading GPS data: {e}")
                time.sleep(1.0)  # Pause on error to prevent log flooding

        logger.info("GPS worker thread stopped")
