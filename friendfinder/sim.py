"""
Simulation Module

In-memory stand-ins for the radio, GPS, host configuration and node database,
used by the --simulate mode and by the tests. The loopback mesh can drop,
duplicate and delay packets to exercise the protocol's tolerance of a lossy
link.
"""

import logging
import random
from typing import Callable, Dict, List, Optional, Tuple

from friendfinder import config
from friendfinder.directory import FriendDirectory
from friendfinder.models import MeshPacket, SessionState
from friendfinder.power import PowerCoordinator
from friendfinder.session import SessionMachine
from friendfinder.storage import MemoryStore
from friendfinder.utils import format_node_id

logger = logging.getLogger(__name__)


class ManualClock:
    """Monotonic clock advanced explicitly."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SimulatedPosition:
    """PositionSource with a fixed, movable location."""

    def __init__(self, latitude: float, longitude: float, satellites: int = 8,
                 battery: int = 90, fix: bool = True):
        self.latitude = latitude
        self.longitude = longitude
        self.satellites = satellites
        self.battery = battery
        self.fix = fix

    def move(self, dlat: float, dlon: float) -> None:
        self.latitude += dlat
        self.longitude += dlon

    def has_fix(self) -> bool:
        return self.fix

    def latitude_i(self) -> int:
        return int(round(self.latitude * 1e7))

    def longitude_i(self) -> int:
        return int(round(self.longitude * 1e7))

    def satellite_count(self) -> int:
        return self.satellites

    def battery_percent(self) -> int:
        return self.battery


class MemoryHostConfig:
    """HostConfig that records every change."""

    def __init__(self, interval: int = None):
        self.interval = config.GPS_DEFAULT_INTERVAL if interval is None else interval
        self.history: List[int] = []
        self.reloads = 0

    def get_sample_interval(self) -> int:
        return self.interval

    def set_sample_interval(self, seconds: int) -> None:
        self.interval = seconds
        self.history.append(seconds)

    def reload(self) -> None:
        self.reloads += 1


class StaticNodeDirectory:

    def __init__(self, node_id: int, names: Optional[Dict[int, str]] = None):
        self.node_id = node_id
        self.names = names if names is not None else {}

    def self_id(self) -> int:
        return self.node_id

    def resolve_display_name(self, peer_id: int) -> str:
        if peer_id == config.NODENUM_BROADCAST:
            return "Broadcast"
        return self.names.get(peer_id) or format_node_id(peer_id)


class LoopbackTransport:
    """Transport handed out by LoopbackMesh.attach()."""

    def __init__(self, mesh: 'LoopbackMesh', node_id: int):
        self.mesh = mesh
        self.node_id = node_id
        self.buffers_available = True
        self.sent: List[MeshPacket] = []

    def allocate_packet(self) -> Optional[MeshPacket]:
        if not self.buffers_available:
            return None
        return MeshPacket(id=self.mesh.next_packet_id())

    def send(self, packet: MeshPacket, destination: int, hop_limit: Optional[int]) -> None:
        self.sent.append(packet)
        self.mesh.submit(self.node_id, packet, destination)


class LoopbackMesh:
    """
    Single-hop broadcast medium connecting every attached node.

    Packets are queued by send() and handed to receivers by deliver().
    A delayed packet is held back for one extra deliver() round, which
    reorders it behind later traffic.
    """

    def __init__(self, drop_rate: float = 0.0, duplicate_rate: float = 0.0,
                 delay_rate: float = 0.0, seed: Optional[int] = None):
        self.drop_rate = drop_rate
        self.duplicate_rate = duplicate_rate
        self.delay_rate = delay_rate
        self.random = random.Random(seed)
        self.names: Dict[int, str] = {}

        self._handlers: Dict[int, Callable[[bytes, int, int], object]] = {}
        self._in_flight: List[Tuple[int, int, int, int, bytes]] = []  # (rounds, receiver, from, to, payload)
        self._packet_id = 0

        self.stats = {
            "tx_packets": 0,
            "delivered": 0,
            "dropped": 0,
            "duplicated": 0,
            "delayed": 0,
        }

    def next_packet_id(self) -> int:
        self._packet_id += 1
        return self._packet_id

    def attach(self, node_id: int, name: Optional[str] = None) -> LoopbackTransport:
        if name:
            self.names[node_id] = name
        return LoopbackTransport(self, node_id)

    def register(self, node_id: int, handler: Callable[[bytes, int, int], object]) -> None:
        """Register the receive callback for a node, called as handler(payload, sender, to)."""
        self._handlers[node_id] = handler

    def submit(self, sender: int, packet: MeshPacket, destination: int) -> None:
        self.stats["tx_packets"] += 1
        if destination == config.NODENUM_BROADCAST:
            receivers = [node for node in self._handlers if node != sender]
        else:
            receivers = [destination] if destination in self._handlers else []

        for receiver in receivers:
            if self.random.random() < self.drop_rate:
                self.stats["dropped"] += 1
                continue
            copies = 1
            if self.random.random() < self.duplicate_rate:
                self.stats["duplicated"] += 1
                copies = 2
            for _ in range(copies):
                rounds = 0
                if self.random.random() < self.delay_rate:
                    self.stats["delayed"] += 1
                    rounds = 1
                self._in_flight.append((rounds, receiver, sender, destination, packet.payload))

    def deliver(self) -> int:
        """
        Deliver every packet that is due.

        Returns:
            Number of packets delivered
        """
        pending, self._in_flight = self._in_flight, []
        delivered = 0
        for rounds, receiver, sender, to, payload in pending:
            if rounds > 0:
                self._in_flight.append((rounds - 1, receiver, sender, to, payload))
                continue
            handler = self._handlers.get(receiver)
            if handler is None:
                continue
            handler(payload, sender, to)
            delivered += 1
        self.stats["delivered"] += delivered
        return delivered

    def pending(self) -> int:
        return len(self._in_flight)


class SimulatedDevice:
    """
    A complete radio: directory, power coordinator and session machine
    wired to simulated collaborators on a LoopbackMesh.

    A real position source or a persistent host config can be passed in to
    replace the simulated ones.
    """

    def __init__(self, mesh: LoopbackMesh, node_id: int, name: str,
                 location: Tuple[float, float], clock: ManualClock,
                 store=None, host_interval: Optional[int] = None,
                 position=None, host_config=None):
        self.node_id = node_id
        self.name = name
        self.mesh = mesh
        self.transport = mesh.attach(node_id, name)
        self.position = position if position is not None else SimulatedPosition(*location)
        self.host_config = host_config if host_config is not None else MemoryHostConfig(host_interval)
        self.store = store if store is not None else MemoryStore()
        self.directory = FriendDirectory(self.store)
        self.directory.load()
        self.power = PowerCoordinator(self.host_config)
        self.nodes = StaticNodeDirectory(node_id, mesh.names)
        self.events: list = []
        self.auto_confirm = False

        self.machine = SessionMachine(
            self.transport, self.directory, self.position, self.power, self.nodes,
            on_ui_event=self.events.append, clock=clock,
        )
        mesh.register(node_id, self.machine.handle_packet)

    def tick(self) -> None:
        self.machine.tick()
        if self.auto_confirm and self.machine.state is SessionState.AWAITING_CONFIRMATION:
            logger.info(f"{self.name}: confirming pairing")
            self.machine.accept_pairing()


def run(devices: List[SimulatedDevice], mesh: LoopbackMesh, clock: ManualClock,
        seconds: float, step: float = None) -> None:
    """
    Advance the simulation.

    Each step advances the clock, delivers in-flight packets and ticks every
    device, so packets sent during a tick arrive on the next step.
    """
    step = step or config.TICK_INTERVAL
    elapsed = 0.0
    while elapsed < seconds:
        clock.advance(step)
        elapsed += step
        mesh.deliver()
        for device in devices:
            device.tick()
