"""
Protocol Engine Module

This module decides how to react to a received Friend Finder message given the
current session and the friend directory. It is a pure function: it never sends,
saves or mutates anything itself. The session state machine applies the
returned Decision.

Messages that do not fit the current state are ignored rather than treated as
errors. This is what makes the protocol tolerate duplicated, delayed and
reordered mesh delivery.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from friendfinder import config
from friendfinder.models import (
    AwaitingConfirmation, AwaitingFinalAcceptance, AwaitingResponse,
    BeingTracked, Idle, PairingDiscovery, RedrawOnly, RegenerateBackground,
    RegenerateForeground, RequestType, Session, Telemetry, TrackingTarget,
    UIEvent, is_tracking, window_open,
)


@dataclass(frozen=True)
class Reply:
    """A message to send back to the sender of the message being handled."""
    request_type: RequestType
    hop_limit: Optional[int] = None


@dataclass
class Decision:
    """
    Outcome of handling one message.

    Attributes:
        next_session: Session to move to, or None to stay in the current one
        replies: Messages to send to the sender, in order
        save_friend: Persist the sender as a new friend
        cache_session: Store the message as the live session telemetry
        cache_directory: Store the message in the sender's friend record
        event: UI event to emit; "{name}" in its message is the sender's name
        reason: Human readable explanation for the log
    """
    next_session: Optional[Session] = None
    replies: List[Reply] = field(default_factory=list)
    save_friend: bool = False
    cache_session: bool = False
    cache_directory: bool = False
    event: Optional[UIEvent] = None
    reason: str = ""

    @property
    def ignored(self) -> bool:
        return (self.next_session is None and not self.replies and not self.save_friend
                and not self.cache_session and not self.cache_directory and self.event is None)


def ignore(reason: str) -> Decision:
    return Decision(reason=reason)


def decide(message: Telemetry, sender: int, session: Session, directory,
           now: float, self_id: int, broadcast: bool = False) -> Decision:
    """
    Decide how to react to a message.

    Args:
        message: The decoded message
        sender: Node number the message came from
        session: Current session variant
        directory: FriendDirectory, only read
        now: Current monotonic time in seconds
        self_id: Our own node number
        broadcast: The packet was addressed to every node (a discovery broadcast)

    Returns:
        Decision describing the transition and side effects
    """
    if sender in (0, self_id, config.NODENUM_BROADCAST):
        return ignore(f"invalid sender 0x{sender:08x}")

    if message.request_type is RequestType.REQUEST:
        return _on_request(message, sender, session, directory, now, broadcast)

    handler = _HANDLERS.get(message.request_type)
    if handler is None:
        return ignore(f"unhandled type {message.request_type}")
    return handler(message, sender, session, directory, now)


def _on_request(message, sender, session, directory, now, broadcast: bool) -> Decision:
    if broadcast:
        # Discovery broadcasts only ever propose pairing, they never start a session
        if isinstance(session, PairingDiscovery):
            return _propose(session, sender, now)
        return ignore("discovery broadcast outside pairing discovery")

    if is_tracking(session):
        if session.target == sender:
            # Our earlier ACCEPT was probably lost; answer again without side effects
            return Decision(replies=[Reply(RequestType.ACCEPT), Reply(RequestType.NONE)],
                            reason="repeated request from current peer")
        return ignore("already in a session with another peer")

    if directory.find(sender) is not None:
        return _start_being_tracked(message, sender, now, save_friend=False)

    if window_open(session, now):
        return _start_being_tracked(message, sender, now, save_friend=True)
    return ignore("request from stranger without an open pairing window")


def _on_accept(message, sender, session, directory, now) -> Decision:
    if isinstance(session, AwaitingResponse) and sender == session.target:
        return Decision(
            next_session=TrackingTarget(target=sender, telemetry=message, heard_at=now),
            replies=[Reply(RequestType.NONE)],
            save_friend=directory.find(sender) is None,
            cache_directory=True,
            event=RegenerateForeground(focus=True, message="Tracking {name}"),
            reason="target accepted tracking request",
        )

    if isinstance(session, AwaitingFinalAcceptance) and sender == session.candidate:
        return _complete_pairing(sender, directory, reply=True)

    if isinstance(session, PairingDiscovery):
        # The peer confirmed our broadcast before we saw theirs
        return _propose(session, sender, now)

    return ignore("accept does not match current state")


def _on_reject(message, sender, session, directory, now) -> Decision:
    if isinstance(session, AwaitingFinalAcceptance) and sender == session.candidate:
        if window_open(session, now):
            return Decision(
                next_session=PairingDiscovery(expires_at=session.expires_at,
                                              rejected=session.rejected | {sender}),
                event=RegenerateForeground(focus=True, message="{name} declined"),
                reason="candidate declined, resuming discovery",
            )
        return Decision(next_session=Idle(),
                        event=RegenerateBackground(message="Pairing timed out"),
                        reason="candidate declined after window expiry")

    if isinstance(session, AwaitingResponse) and sender == session.target:
        return Decision(next_session=Idle(),
                        event=RegenerateBackground(message="{name} declined"),
                        reason="target declined tracking request")

    return ignore("reject does not match current state")


def _on_end_session(message, sender, session, directory, now) -> Decision:
    if is_tracking(session) and sender == session.target:
        return Decision(next_session=Idle(),
                        event=RegenerateBackground(message="Session ended by peer"),
                        reason="peer ended session")
    return ignore("end of session from non-target")


def _on_none(message, sender, session, directory, now) -> Decision:
    if isinstance(session, AwaitingFinalAcceptance) and sender == session.candidate:
        return _complete_pairing(sender, directory, reply=False)

    decision = Decision(reason="telemetry update")
    if is_tracking(session) and sender == session.target:
        decision.cache_session = True
        decision.event = RedrawOnly()
    if directory.find(sender) is not None:
        decision.cache_directory = True
    if not (decision.cache_session or decision.cache_directory):
        return ignore("telemetry from unknown peer")
    return decision


def _start_being_tracked(message, sender, now, save_friend: bool) -> Decision:
    return Decision(
        next_session=BeingTracked(target=sender, telemetry=message, heard_at=now),
        replies=[Reply(RequestType.ACCEPT), Reply(RequestType.NONE)],
        save_friend=save_friend,
        cache_directory=True,
        event=RegenerateForeground(focus=True, message="Tracked by {name}"),
        reason="accepting tracking request",
    )


def _propose(session: PairingDiscovery, sender: int, now: float) -> Decision:
    if not window_open(session, now):
        return ignore("pairing window already expired")
    if sender in session.rejected:
        return ignore("peer was rejected during this pairing attempt")
    return Decision(
        next_session=AwaitingConfirmation(expires_at=session.expires_at, candidate=sender,
                                          rejected=session.rejected),
        event=RegenerateForeground(focus=True, message="Pair with {name}?"),
        reason="pairing proposal, asking user",
    )


def _complete_pairing(sender: int, directory, reply: bool) -> Decision:
    return Decision(
        next_session=Idle(),
        replies=[Reply(RequestType.NONE)] if reply else [],
        save_friend=directory.find(sender) is None,
        cache_directory=True,
        event=RegenerateBackground(message="Paired with {name}"),
        reason="pairing complete",
    )


_HANDLERS: Dict[RequestType, Callable[..., Decision]] = {
    RequestType.ACCEPT: _on_accept,
    RequestType.REJECT: _on_reject,
    RequestType.END_SESSION: _on_end_session,
    RequestType.NONE: _on_none,
}
