"""
Configuration for Friend Finder

This file contains all configuration parameters for the pairing and tracking
protocol, the host adapters and the simulator. Protocol timings are read through
this module at call time, so values loaded with load_config() take effect.
"""

import os
import json
import logging
from typing import Dict, Any

# Logging configuration
LOG_LEVEL = logging.INFO  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs")
USE_FILE_LOGGING = True

# Application settings
APP_NAME = "Friend Finder"
SHUTDOWN_TIMEOUT = 5  # seconds to wait for the worker thread on shutdown

# Mesh transport
FRIEND_FINDER_PORT = 260        # application port carrying our payloads
NODENUM_BROADCAST = 0xFFFFFFFF
DISCOVERY_HOP_LIMIT = 1         # discovery only reaches direct neighbours
DEFAULT_HOP_LIMIT = None        # None lets the transport pick its default

# Pairing and session timing (seconds)
PAIRING_WINDOW = 30.0                   # single timer for all pairing sub-states
DISCOVERY_REBROADCAST_INTERVAL = 5.0
UPDATE_INTERVAL = 15.0                  # active session beacon
BACKGROUND_UPDATE_INTERVAL = 120.0      # idle fan-out to every friend
TICK_INTERVAL = 0.05                    # scheduler tick, ~20 Hz for the UI

# Friend directory
MAX_FRIENDS = 8
SECRET_SIZE = 16
STORAGE_NAMESPACE = "ffinder"
STORAGE_KEY = "friends"

# GPS power coordination (seconds between position samples)
GPS_BOOSTED_INTERVAL = 2
GPS_DEFAULT_INTERVAL = 120

# Data storage settings
DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data")
STORE_FILE = os.path.join(DATA_DIR, "friendfinder.json")

# GPS configuration for the serial NMEA source
GPS_PORT = "/dev/ttyAMA0"       # Serial port for GPS module
GPS_BAUD_RATE = 9600            # Baud rate for GPS module
GPS_TIMEOUT = 1.0               # Serial timeout for GPS module
GPS_MIN_SATELLITES = 3          # Minimum satellites for a valid fix

# UI event queue used by the threaded service
UI_EVENT_QUEUE_SIZE = 32
INBOUND_QUEUE_SIZE = 64

# Display units for distance formatting ("metric" or "imperial")
DISPLAY_UNITS = "metric"

# Debug settings
DEBUG_MODE = False
SIMULATE_LOCATION_A = (51.5074, -0.1278)  # London coordinates
SIMULATE_LOCATION_B = (51.5094, -0.1250)
SIMULATE_DURATION = 180.0  # seconds of virtual time


def load_config(config_file: str) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    Only keys that already exist in this module are applied; unknown keys
    are logged and ignored.

    Args:
        config_file: Path to the configuration file

    Returns:
        Dict containing the configuration values that were applied
    """
    try:
        with open(config_file, 'r') as f:
            config = json.load(f)
    except (OSError, ValueError) as e:
        logging.error(f"Error loading configuration: {e}")
        return {}

    applied = {}
    for key, value in config.items():
        if key.isupper() and key in globals():
            globals()[key] = value
            applied[key] = value
        else:
            logging.warning(f"Ignoring unknown configuration key: {key}")

    return applied
