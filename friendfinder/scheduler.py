"""
Beacon Scheduler Module

This module rate-limits the three periodic transmissions: the discovery
re-broadcast, the active session beacon and the idle background fan-out to
every friend. It is polled on every tick but each timer only fires once its
own interval has elapsed.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from friendfinder import config
from friendfinder.models import Idle, PairingDiscovery, RequestType, Session, is_tracking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Beacon:
    destination: int
    request_type: RequestType
    hop_limit: Optional[int] = None


class BeaconScheduler:
    """Elapsed-time gates for periodic transmissions."""

    def __init__(self, now: float):
        """
        Initialize the scheduler.

        Args:
            now: Current monotonic time; the background timer starts here
        """
        self.last_discovery_at: Optional[float] = None
        self.last_background_at: float = now

    def mark_discovery(self, now: float) -> None:
        """Record a discovery broadcast sent outside the scheduler."""
        self.last_discovery_at = now

    def poll(self, session: Session, now: float, directory, has_fix: bool,
             last_sent_at: Optional[float]) -> List[Beacon]:
        """
        Return the beacons that are due.

        Args:
            session: Current session variant
            now: Current monotonic time in seconds
            directory: FriendDirectory used for the background fan-out
            has_fix: Whether a position fix is available
            last_sent_at: Time of our last transmission of any kind

        Returns:
            List of beacons to send now, possibly empty
        """
        if isinstance(session, PairingDiscovery):
            if (self.last_discovery_at is None or
                    now - self.last_discovery_at >= config.DISCOVERY_REBROADCAST_INTERVAL):
                self.last_discovery_at = now
                return [Beacon(config.NODENUM_BROADCAST, RequestType.REQUEST,
                               config.DISCOVERY_HOP_LIMIT)]
            return []

        if is_tracking(session):
            if last_sent_at is None or now - last_sent_at >= config.UPDATE_INTERVAL:
                return [Beacon(session.target, RequestType.NONE, config.DEFAULT_HOP_LIMIT)]
            return []

        if isinstance(session, Idle):
            if now - self.last_background_at < config.BACKGROUND_UPDATE_INTERVAL:
                return []
            if not has_fix or directory.count() == 0:
                return []
            self.last_background_at = now
            friends = directory.friends()
            logger.debug(f"Background update to {len(friends)} friends")
            return [Beacon(friend.peer_id, RequestType.NONE, config.DEFAULT_HOP_LIMIT)
                    for friend in friends]

        return []
