"""
Collaborator Interfaces

The session core talks to the radio, the node database, the GPS, the host
configuration and persistent storage only through these protocols. Concrete
implementations live in friendfinder.gps, friendfinder.storage and
friendfinder.sim, or are supplied by the host firmware bridge.
"""

from typing import Optional, Protocol

from friendfinder.models import MeshPacket


class Transport(Protocol):
    """Fire-and-forget access to the mesh radio."""

    def allocate_packet(self) -> Optional[MeshPacket]:
        """Return an empty packet, or None when no buffer is available."""

    def send(self, packet: MeshPacket, destination: int, hop_limit: Optional[int]) -> None:
        """Queue the packet for transmission. None means the default hop limit."""


class NodeDirectory(Protocol):

    def self_id(self) -> int: ...

    def resolve_display_name(self, peer_id: int) -> str: ...


class PositionSource(Protocol):
    """Current GPS and battery readings."""

    def has_fix(self) -> bool: ...

    def latitude_i(self) -> int: ...

    def longitude_i(self) -> int: ...

    def satellite_count(self) -> int: ...

    def battery_percent(self) -> int: ...


class HostConfig(Protocol):
    """Host setting controlling how often the GPS samples a position."""

    def get_sample_interval(self) -> int: ...

    def set_sample_interval(self, seconds: int) -> None: ...

    def reload(self) -> None: ...


class HeadingProvider(Protocol):

    def has_heading(self) -> bool: ...

    def heading(self) -> float: ...


class KeyValueStore(Protocol):
    """Namespaced blob storage. Implementations raise StorageUnavailable."""

    def get(self, namespace: str, key: str) -> Optional[bytes]: ...

    def put(self, namespace: str, key: str, value: bytes) -> None: ...
