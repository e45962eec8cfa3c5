"""
Pytest configuration and shared fixtures for Friend Finder tests.

Devices are complete simulated radios on a loopback mesh driven by a manual
clock, so every scenario runs deterministically in virtual time.
"""

import sys
from pathlib import Path
from typing import List

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from friendfinder import config
from friendfinder.directory import generate_credentials
from friendfinder.packet import PacketParser
from friendfinder.sim import LoopbackMesh, ManualClock, SimulatedDevice

NODE_A = 0x0000A001
NODE_B = 0x0000B002
NODE_C = 0x0000C003

LOCATION_A = (51.5074, -0.1278)
LOCATION_B = (51.5094, -0.1250)
LOCATION_C = (51.5000, -0.1200)


class Harness:
    """Steps a set of devices through virtual time."""

    def __init__(self, mesh: LoopbackMesh, clock: ManualClock, devices: List[SimulatedDevice]):
        self.mesh = mesh
        self.clock = clock
        self.devices = devices

    def step(self, count: int = 1, dt: float = config.TICK_INTERVAL) -> None:
        """Advance the clock, deliver in-flight packets, tick every device."""
        for _ in range(count):
            self.clock.advance(dt)
            self.mesh.deliver()
            for device in self.devices:
                device.tick()

    def advance(self, seconds: float, dt: float = 1.0) -> None:
        self.step(int(round(seconds / dt)), dt)


def make_friends(a: SimulatedDevice, b: SimulatedDevice) -> None:
    """Pair two devices directly through their directories."""
    a.directory.upsert(b.node_id, *generate_credentials())
    b.directory.upsert(a.node_id, *generate_credentials())


def sent_types(device: SimulatedDevice, destination: int = None):
    """Request types sent by a device, optionally only to one destination."""
    return [PacketParser.decode(packet.payload).request_type
            for packet in device.transport.sent
            if destination is None or packet.to == destination]


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture(autouse=True)
def restore_config():
    """Undo any change a test makes to friendfinder.config."""
    saved = {name: getattr(config, name) for name in dir(config) if name.isupper()}
    yield
    for name, value in saved.items():
        setattr(config, name, value)


# =============================================================================
# Simulation Fixtures
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def mesh() -> LoopbackMesh:
    return LoopbackMesh(seed=1)


@pytest.fixture
def alpha(mesh, clock) -> SimulatedDevice:
    return SimulatedDevice(mesh, NODE_A, "Alpha", LOCATION_A, clock)


@pytest.fixture
def bravo(mesh, clock) -> SimulatedDevice:
    return SimulatedDevice(mesh, NODE_B, "Bravo", LOCATION_B, clock)


@pytest.fixture
def charlie(mesh, clock) -> SimulatedDevice:
    return SimulatedDevice(mesh, NODE_C, "Charlie", LOCATION_C, clock)


@pytest.fixture
def harness(mesh, clock, alpha, bravo) -> Harness:
    return Harness(mesh, clock, [alpha, bravo])


@pytest.fixture
def tracking(harness, alpha, bravo) -> Harness:
    """Alpha tracking Bravo, both sides established."""
    make_friends(alpha, bravo)
    assert alpha.machine.request_tracking(NODE_B)
    harness.step(3)
    return harness
