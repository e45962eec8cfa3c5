"""
Utility Functions Module

This module provides logging setup and the geodesic helpers used to turn two
positions into a distance and a bearing.
"""

import math
import logging
import os
import time
from typing import Optional

from friendfinder import config

EARTH_RADIUS_M = 6371000


def setup_logging(name: str, log_dir: Optional[str] = None, level: int = logging.INFO,
                  use_file: Optional[bool] = None) -> logging.Logger:
    """
    Set up a logger with file and console handlers.

    The handlers are attached to the named logger, so module loggers under
    the same dotted prefix (e.g. "friendfinder.session") inherit them.

    Args:
        name: Name for the logger
        log_dir: Directory for log files, defaults to config.LOG_DIR
        level: Logging level
        use_file: Write a log file, defaults to config.USE_FILE_LOGGING

    Returns:
        Configured logger instance
    """
    if log_dir is None:
        log_dir = config.LOG_DIR
    if use_file is None:
        use_file = config.USE_FILE_LOGGING

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Clear any existing handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(config.LOG_FORMAT)

    if use_file:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{name.lower().replace(' ', '_')}.log")
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two GPS coordinates in meters using the Haversine formula.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def calculate_bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the initial bearing from point 1 to point 2.

    Returns:
        Bearing in degrees (0-360, where 0 is North)
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    y = math.sin(dlon) * math.cos(lat2_rad)
    x = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlon)
    bearing_deg = math.degrees(math.atan2(y, x))

    # Normalize to 0-360
    return (bearing_deg + 360) % 360


def format_coordinates(latitude: float, longitude: float) -> str:
    return f"{latitude:.6f}, {longitude:.6f}"


def format_node_id(peer_id: int) -> str:
    """Fallback display name for a node, e.g. '!a1b2c3d4'."""
    return f"!{peer_id:08x}"


def get_timestamp_str(timestamp: Optional[int] = None, format_str: str = "%Y-%m-%d %H:%M:%S") -> str:
    """
    Format a Unix timestamp as a human-readable string.

    Args:
        timestamp: Unix timestamp (seconds since epoch), or current time if None
        format_str: strftime format string

    Returns:
        Formatted timestamp string
    """
    if timestamp is None:
        timestamp = int(time.time())

    return time.strftime(format_str, time.localtime(timestamp))
