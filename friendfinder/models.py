"""
Data Models Module

This module defines the message, friend record, session state and UI event
types shared by the directory, protocol engine and session state machine.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import FrozenSet, Optional, Union


class RequestType(IntEnum):
    """Kind of a Friend Finder message, as carried on the wire."""
    NONE = 0
    REQUEST = 1
    ACCEPT = 2
    REJECT = 3
    END_SESSION = 4


@dataclass(frozen=True)
class Telemetry:
    """
    One Friend Finder message.

    Positions are fixed-point degrees scaled by 1e7. A position of (0, 0) is
    the "no fix" sentinel; use has_position rather than comparing coordinates.
    """
    request_type: RequestType = RequestType.NONE
    latitude_i: int = 0
    longitude_i: int = 0
    satellites: int = 0
    battery_level: int = 0
    time: int = 0

    @property
    def has_position(self) -> bool:
        return self.latitude_i != 0 or self.longitude_i != 0

    @property
    def latitude(self) -> float:
        return self.latitude_i / 1e7

    @property
    def longitude(self) -> float:
        return self.longitude_i / 1e7


@dataclass
class FriendRecord:
    """A known peer together with its most recent cached telemetry."""
    peer_id: int = 0
    session_id: int = 0
    secret: bytearray = field(default_factory=lambda: bytearray(16))
    in_use: bool = False
    last_telemetry: Optional[Telemetry] = None
    last_heard_at: Optional[float] = None  # monotonic seconds, this boot only

    def wipe(self) -> None:
        """Zero the secret in place and clear every field."""
        for i in range(len(self.secret)):
            self.secret[i] = 0
        self.peer_id = 0
        self.session_id = 0
        self.in_use = False
        self.last_telemetry = None
        self.last_heard_at = None


class SessionState(Enum):
    IDLE = "idle"
    PAIRING_DISCOVERY = "pairing_discovery"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_FINAL_ACCEPTANCE = "awaiting_final_acceptance"
    AWAITING_RESPONSE = "awaiting_response"
    TRACKING_TARGET = "tracking_target"
    BEING_TRACKED = "being_tracked"


# Session variants. Each state carries only the fields it uses.

@dataclass(frozen=True)
class Idle:
    state = SessionState.IDLE


@dataclass(frozen=True)
class PairingDiscovery:
    expires_at: float
    rejected: FrozenSet[int] = frozenset()
    state = SessionState.PAIRING_DISCOVERY


@dataclass(frozen=True)
class AwaitingConfirmation:
    expires_at: float
    candidate: int
    rejected: FrozenSet[int] = frozenset()
    state = SessionState.AWAITING_CONFIRMATION


@dataclass(frozen=True)
class AwaitingFinalAcceptance:
    expires_at: float
    candidate: int
    rejected: FrozenSet[int] = frozenset()
    state = SessionState.AWAITING_FINAL_ACCEPTANCE


@dataclass(frozen=True)
class AwaitingResponse:
    expires_at: float
    target: int
    state = SessionState.AWAITING_RESPONSE


@dataclass(frozen=True)
class TrackingTarget:
    target: int
    telemetry: Optional[Telemetry] = None
    heard_at: Optional[float] = None
    state = SessionState.TRACKING_TARGET


@dataclass(frozen=True)
class BeingTracked:
    target: int
    telemetry: Optional[Telemetry] = None
    heard_at: Optional[float] = None
    state = SessionState.BEING_TRACKED


Session = Union[
    Idle, PairingDiscovery, AwaitingConfirmation, AwaitingFinalAcceptance,
    AwaitingResponse, TrackingTarget, BeingTracked,
]

PAIRING_VARIANTS = (PairingDiscovery, AwaitingConfirmation,
                    AwaitingFinalAcceptance, AwaitingResponse)
TRACKING_VARIANTS = (TrackingTarget, BeingTracked)


def is_tracking(session: Session) -> bool:
    return isinstance(session, TRACKING_VARIANTS)


def is_pairing(session: Session) -> bool:
    return isinstance(session, PAIRING_VARIANTS)


def window_open(session: Session, now: float) -> bool:
    """True while the session's pairing window has not yet expired."""
    return is_pairing(session) and now < session.expires_at


# UI events emitted by the session state machine

@dataclass(frozen=True)
class RegenerateForeground:
    focus: bool = True
    message: str = ""


@dataclass(frozen=True)
class RegenerateBackground:
    message: str = ""


@dataclass(frozen=True)
class RedrawOnly:
    pass


UIEvent = Union[RegenerateForeground, RegenerateBackground, RedrawOnly]


@dataclass
class MeshPacket:
    """Outgoing envelope handed out by a transport and filled in by the core."""
    port: int = 0
    payload: bytes = b""
    to: int = 0
    hop_limit: Optional[int] = None
    want_ack: bool = False
    id: int = 0
