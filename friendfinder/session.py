"""
Session State Machine Module

This module holds the authoritative Friend Finder state machine. It applies
the protocol engine's decisions, runs the pairing window timer and the beacon
scheduler, and drives the power coordinator as sessions start and end.

The machine is not thread safe. Ticks, received packets and user actions must
reach it from a single thread; see friendfinder.service for a threaded host.
"""

import dataclasses
import logging
import time
from typing import Callable, Dict, Optional

from friendfinder import config
from friendfinder.directory import generate_credentials
from friendfinder.errors import PacketDecodeError
from friendfinder.interfaces import NodeDirectory, PositionSource, Transport
from friendfinder.models import (
    AwaitingConfirmation, AwaitingFinalAcceptance, AwaitingResponse, Idle,
    PairingDiscovery, RegenerateBackground, RegenerateForeground, RequestType,
    Session, SessionState, Telemetry, UIEvent, is_pairing, is_tracking,
    window_open,
)
from friendfinder.packet import PacketParser
from friendfinder.protocol import Decision, decide
from friendfinder.scheduler import BeaconScheduler

# Set up logging
logger = logging.getLogger(__name__)


class SessionMachine:
    """
    Pairing and tracking state machine for one device.

    Every state change goes through _transition(), which is the only place
    the GPS is boosted or restored. Every way a tracking session can end
    goes through _teardown().
    """

    def __init__(self, transport: Transport, directory, position: PositionSource, power,
                 nodes: NodeDirectory,
                 on_ui_event: Optional[Callable[[UIEvent], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the state machine.

        Args:
            transport: Object implementing the Transport protocol
            directory: FriendDirectory holding known peers
            position: Object implementing the PositionSource protocol
            power: PowerCoordinator driving the GPS sampling rate
            nodes: Object implementing the NodeDirectory protocol
            on_ui_event: Callback receiving UI events
            clock: Monotonic clock in seconds
        """
        self.transport = transport
        self.directory = directory
        self.position = position
        self.power = power
        self.nodes = nodes
        self.on_ui_event = on_ui_event
        self.clock = clock

        self.self_id = nodes.self_id()
        self._session: Session = Idle()
        self.previous_state = SessionState.IDLE
        self.last_sent_at: Optional[float] = None
        self.scheduler = BeaconScheduler(now=clock())

        self.stats: Dict[str, int] = {
            "tx_packets": 0,
            "tx_dropped": 0,
            "rx_packets": 0,
            "rx_errors": 0,
            "rx_ignored": 0,
        }

    # ---- read-only view ----

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def target(self) -> Optional[int]:
        """Peer of the current session or pending request, if any."""
        if is_tracking(self._session) or isinstance(self._session, AwaitingResponse):
            return self._session.target
        if isinstance(self._session, (AwaitingConfirmation, AwaitingFinalAcceptance)):
            return self._session.candidate
        return None

    @property
    def peer_telemetry(self) -> Optional[Telemetry]:
        return self._session.telemetry if is_tracking(self._session) else None

    @property
    def peer_heard_at(self) -> Optional[float]:
        return self._session.heard_at if is_tracking(self._session) else None

    def window_remaining(self) -> float:
        """Seconds left in the pairing window, 0 when no window is open."""
        if not is_pairing(self._session):
            return 0.0
        return max(0.0, self._session.expires_at - self.clock())

    # ---- user actions ----

    def begin_pairing(self) -> bool:
        """
        Open a pairing window and start broadcasting discovery requests.

        Returns:
            bool: True if discovery started
        """
        if not isinstance(self._session, Idle):
            logger.warning(f"Cannot start pairing while {self.state.value}")
            return False

        now = self.clock()
        self._transition(PairingDiscovery(expires_at=now + config.PAIRING_WINDOW),
                         RegenerateForeground(focus=True, message="Pairing... press on BOTH devices"))
        self._send(config.NODENUM_BROADCAST, RequestType.REQUEST, config.DISCOVERY_HOP_LIMIT)
        self.scheduler.mark_discovery(now)
        return True

    def request_tracking(self, peer_id: int) -> bool:
        """
        Ask a specific peer, known or not, for a mutual tracking session.

        Args:
            peer_id: Node number of the peer

        Returns:
            bool: True if the request was sent
        """
        if peer_id in (0, self.self_id, config.NODENUM_BROADCAST):
            logger.warning(f"Refusing to track invalid peer 0x{peer_id:08x}")
            return False
        if not isinstance(self._session, Idle):
            logger.warning(f"Cannot request tracking while {self.state.value}")
            return False

        now = self.clock()
        self._transition(AwaitingResponse(expires_at=now + config.PAIRING_WINDOW, target=peer_id),
                         RegenerateForeground(focus=True, message=self._format("Request sent to {name}", peer_id)))
        self._send(peer_id, RequestType.REQUEST, config.DEFAULT_HOP_LIMIT)
        return True

    def accept_pairing(self) -> bool:
        """Confirm the pending pairing proposal."""
        session = self._session
        if not isinstance(session, AwaitingConfirmation):
            return False

        self._transition(AwaitingFinalAcceptance(expires_at=session.expires_at,
                                                 candidate=session.candidate,
                                                 rejected=session.rejected),
                         RegenerateForeground(focus=True, message="Waiting for peer..."))
        self._send(session.candidate, RequestType.ACCEPT, config.DEFAULT_HOP_LIMIT)
        return True

    def reject_pairing(self) -> bool:
        """Decline the pending pairing proposal and keep discovering if time remains."""
        session = self._session
        if not isinstance(session, AwaitingConfirmation):
            return False

        self._send(session.candidate, RequestType.REJECT, config.DEFAULT_HOP_LIMIT)
        if window_open(session, self.clock()):
            self._transition(PairingDiscovery(expires_at=session.expires_at,
                                              rejected=session.rejected | {session.candidate}),
                             RegenerateForeground(focus=True, message="Pairing..."))
        else:
            self._transition(Idle(), RegenerateBackground(message="Pairing timed out"))
        return True

    def end_session(self, notify_peer: bool = True) -> bool:
        """
        End the current session or abandon pairing.

        Args:
            notify_peer: Send END_SESSION to the tracking peer first

        Returns:
            bool: True if there was anything to end
        """
        session = self._session
        if is_tracking(session):
            return self._teardown(notify_peer, "Session ended")

        if is_pairing(session):
            if isinstance(session, AwaitingConfirmation):
                self._send(session.candidate, RequestType.REJECT, config.DEFAULT_HOP_LIMIT)
            self._transition(Idle(), RegenerateBackground(message="Pairing cancelled"))
            return True

        return False

    # ---- inputs from the transport and the scheduler ----

    def handle_packet(self, payload: bytes, sender: int, to: Optional[int] = None) -> bool:
        """
        Decode and handle a payload received on the Friend Finder port.

        Args:
            payload: Raw payload bytes
            sender: Node number the packet came from
            to: Destination the packet was addressed to, if the transport reports it

        Returns:
            bool: True if the message changed anything
        """
        self.stats["rx_packets"] += 1
        try:
            message = PacketParser.decode(payload)
        except PacketDecodeError as e:
            self.stats["rx_errors"] += 1
            logger.warning(f"Dropping packet from 0x{sender:08x}: {e}")
            return False
        return self.handle_message(message, sender, broadcast=to == config.NODENUM_BROADCAST)

    def handle_message(self, message: Telemetry, sender: int, broadcast: bool = False) -> bool:
        """
        Handle a decoded message.

        Returns:
            bool: True if the message changed anything
        """
        now = self.clock()
        decision = decide(message, sender, self._session, self.directory, now, self.self_id,
                          broadcast=broadcast)

        if decision.ignored:
            self.stats["rx_ignored"] += 1
            logger.debug(f"RX {message.request_type.name} from 0x{sender:08x} ignored "
                         f"in {self.state.value}: {decision.reason}")
            return False

        logger.info(f"RX {message.request_type.name} from 0x{sender:08x} "
                    f"in {self.state.value}: {decision.reason}")
        self._apply(decision, message, sender, now)
        return True

    def tick(self) -> None:
        """Run timers. Call frequently, e.g. every config.TICK_INTERVAL seconds."""
        now = self.clock()
        session = self._session

        if is_pairing(session) and now >= session.expires_at:
            self._expire_window(session)

        beacons = self.scheduler.poll(self._session, now, self.directory,
                                      self.position.has_fix(), self.last_sent_at)
        for beacon in beacons:
            self._send(beacon.destination, beacon.request_type, beacon.hop_limit)

    # ---- internals ----

    def _apply(self, decision: Decision, message: Telemetry, sender: int, now: float) -> None:
        if decision.save_friend:
            session_id, secret = generate_credentials()
            self.directory.upsert(sender, session_id, secret)

        if decision.cache_directory:
            self.directory.update_telemetry(sender, message, now)

        if decision.cache_session and is_tracking(self._session):
            self._session = dataclasses.replace(self._session, telemetry=message, heard_at=now)

        event = decision.event
        if event is not None and getattr(event, "message", ""):
            event = dataclasses.replace(event, message=self._format(event.message, sender))

        if decision.next_session is not None:
            if is_tracking(self._session) and not is_tracking(decision.next_session):
                self._teardown(False, event.message if event is not None else "")
            else:
                self._transition(decision.next_session, event)
        elif event is not None:
            self._emit(event)

        for reply in decision.replies:
            self._send(sender, reply.request_type, reply.hop_limit)

    def _expire_window(self, session: Session) -> None:
        logger.info(f"Pairing window expired in {session.state.value}")
        if isinstance(session, AwaitingConfirmation):
            self._send(session.candidate, RequestType.REJECT, config.DEFAULT_HOP_LIMIT)
        self._transition(Idle(), RegenerateBackground(message="Pairing timed out"))

    def _teardown(self, notify_peer: bool, message: str) -> bool:
        """Single exit path for tracking sessions."""
        session = self._session
        if not is_tracking(session):
            return False

        if notify_peer:
            self._send(session.target, RequestType.END_SESSION, config.DEFAULT_HOP_LIMIT)
        logger.info(f"Session with 0x{session.target:08x} ended ({message or 'no reason'})")
        self._transition(Idle(), RegenerateBackground(message=message))
        return True

    def _transition(self, new: Session, event: Optional[UIEvent] = None) -> None:
        old = self._session
        if new == old:
            return

        self.previous_state = old.state
        self._session = new
        logger.info(f"State {old.state.value} -> {new.state.value}")

        if is_tracking(new) and not is_tracking(old):
            self.power.boost()
        elif is_tracking(old) and not is_tracking(new):
            self.power.restore()

        if event is not None:
            self._emit(event)

    def _send(self, destination: int, request_type: RequestType,
              hop_limit: Optional[int]) -> bool:
        packet = self.transport.allocate_packet()
        if packet is None:
            self.stats["tx_dropped"] += 1
            logger.error(f"No packet buffer, dropping {request_type.name} to 0x{destination:08x}")
            return False

        message = PacketParser.build_telemetry(request_type, self.position)
        packet.port = config.FRIEND_FINDER_PORT
        packet.payload = PacketParser.encode(message)
        packet.to = destination
        packet.hop_limit = hop_limit
        packet.want_ack = False

        self.transport.send(packet, destination, hop_limit)
        self.last_sent_at = self.clock()
        self.stats["tx_packets"] += 1
        logger.debug(f"TX {request_type.name} to 0x{destination:08x} hop={hop_limit} "
                     f"lat={message.latitude_i} lon={message.longitude_i}")
        return True

    def _emit(self, event: UIEvent) -> None:
        if self.on_ui_event is not None:
            self.on_ui_event(event)

    def _format(self, template: str, peer_id: int) -> str:
        if "{name}" not in template:
            return template
        return template.format(name=self.nodes.resolve_display_name(peer_id))
