"""
Unit tests for the threaded service host.
"""

import time

import pytest

from conftest import NODE_A, NODE_B
from friendfinder import config
from friendfinder.directory import FriendDirectory
from friendfinder.models import (
    RegenerateBackground, RegenerateForeground, RequestType, SessionState, Telemetry,
)
from friendfinder.packet import PacketParser
from friendfinder.power import PowerCoordinator
from friendfinder.service import FriendFinderService
from friendfinder.sim import (
    LoopbackMesh, MemoryHostConfig, SimulatedPosition, StaticNodeDirectory,
)
from friendfinder.storage import MemoryStore


def make_service(clock=time.monotonic) -> FriendFinderService:
    mesh = LoopbackMesh()
    mesh.names[NODE_B] = "Bravo"
    return FriendFinderService(
        transport=mesh.attach(NODE_A, "Alpha"),
        directory=FriendDirectory(MemoryStore()),
        position=SimulatedPosition(51.5, -0.12),
        power=PowerCoordinator(MemoryHostConfig()),
        nodes=StaticNodeDirectory(NODE_A, mesh.names),
        clock=clock,
    )


@pytest.fixture
def service(clock) -> FriendFinderService:
    return make_service(clock)


def test_command_applied_on_process(service):
    assert service.submit_command("begin_pairing")
    assert service.machine.state is SessionState.IDLE

    assert service.process_pending() == 1
    assert service.machine.state is SessionState.PAIRING_DISCOVERY
    assert isinstance(service.get_event(), RegenerateForeground)
    assert service.get_event() is None


def test_unknown_command_rejected(service):
    assert not service.submit_command("self_destruct")
    assert service.process_pending() == 0


def test_packets_processed_in_order(service):
    service.machine.directory.upsert(NODE_B, 1, None)
    request = PacketParser.encode(Telemetry(RequestType.REQUEST, 1, 1, 4, 50, 0))
    end = PacketParser.encode(Telemetry(RequestType.END_SESSION, 0, 0, 0, 50, 0))

    service.submit_packet(request, NODE_B)
    service.submit_packet(end, NODE_B)
    assert service.process_pending() == 2

    assert service.machine.state is SessionState.IDLE
    assert service.machine.previous_state is SessionState.BEING_TRACKED
    assert service.stats["packets"] == 2


def test_broadcast_packet_does_not_start_session(service):
    service.machine.directory.upsert(NODE_B, 1, None)
    request = PacketParser.encode(Telemetry(RequestType.REQUEST, 1, 1, 4, 50, 0))

    service.submit_packet(request, NODE_B, config.NODENUM_BROADCAST)
    service.process_pending()

    assert service.machine.state is SessionState.IDLE
    assert service.machine.stats["rx_ignored"] == 1


def test_bad_packet_counted(service):
    service.submit_packet(b"junk", NODE_B)
    service.process_pending()
    assert service.machine.stats["rx_errors"] == 1


def test_inbound_queue_bounded(clock):
    config.INBOUND_QUEUE_SIZE = 2
    service = make_service(clock)

    assert service.submit_command("begin_pairing")
    assert service.submit_command("end_session")
    assert not service.submit_command("begin_pairing")
    assert service.stats["inbound_dropped"] == 1


def test_event_queue_drops_oldest(clock):
    config.UI_EVENT_QUEUE_SIZE = 1
    service = make_service(clock)

    service.submit_command("begin_pairing")
    service.submit_command("end_session")
    service.process_pending()

    assert service.get_event() == RegenerateBackground(message="Pairing cancelled")
    assert service.get_event() is None
    assert service.stats["events_dropped"] == 1


def test_worker_thread():
    service = make_service()
    assert service.start()
    try:
        service.submit_command("begin_pairing")
        event = service.get_event(timeout=2.0)
    finally:
        service.stop()

    assert isinstance(event, RegenerateForeground)
    assert service.machine.state is SessionState.PAIRING_DISCOVERY
    assert service.thread is None
