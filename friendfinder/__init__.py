"""
Friend Finder

Mutual-consent pairing and peer tracking over a lossy mesh radio link.
"""

from friendfinder.directory import FriendDirectory
from friendfinder.gps import NmeaPositionSource
from friendfinder.models import RequestType, SessionState, Telemetry
from friendfinder.navigation import NavigationCalculator
from friendfinder.packet import PacketParser
from friendfinder.power import PowerCoordinator
from friendfinder.service import FriendFinderService
from friendfinder.session import SessionMachine
from friendfinder.storage import JsonFileStore, MemoryStore, StoredHostConfig

__version__ = "0.1.0"

__all__ = [
    'FriendDirectory',
    'FriendFinderService',
    'JsonFileStore',
    'MemoryStore',
    'NavigationCalculator',
    'NmeaPositionSource',
    'PacketParser',
    'PowerCoordinator',
    'RequestType',
    'SessionMachine',
    'SessionState',
    'StoredHostConfig',
    'Telemetry',
]
