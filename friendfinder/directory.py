"""
Friend Directory Module

This module keeps the bounded set of paired peers together with their last
cached telemetry, and persists it as a versioned binary blob in a key-value
store.
"""

import logging
import struct
from typing import List, Optional, Tuple

from Crypto.Random import get_random_bytes
from Crypto.Random.random import randint

from friendfinder import config
from friendfinder.errors import StorageUnavailable
from friendfinder.interfaces import KeyValueStore
from friendfinder.models import FriendRecord, RequestType, Telemetry

logger = logging.getLogger(__name__)

BLOB_MAGIC = b'FFND'
SCHEMA_VERSION = 1

# magic, schema version, record count
HEADER_FORMAT = '<4sBB'
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

# peer_id, session_id, secret, in_use, has_telemetry,
# then request_type, latitude_i, longitude_i, satellites, battery_level, time
RECORD_FORMAT = '<II16sBBBiiBBI'
RECORD_SIZE = struct.calcsize(RECORD_FORMAT)


def generate_credentials() -> Tuple[int, bytes]:
    """
    Generate a session id and pairing secret for a new friend.

    The secret is never sent to the peer, so it authenticates nothing. It is
    kept so that records stay compatible with a future authenticated handshake.

    Returns:
        Tuple of (session_id, secret)
    """
    return randint(1, 0x7FFFFFFF), get_random_bytes(config.SECRET_SIZE)


class FriendDirectory:
    """
    Fixed-size table of known peers.

    Slots are addressed by index. When the table is full a new peer replaces
    slot 0; there is no LRU ordering.
    """

    def __init__(self, store: Optional[KeyValueStore] = None, max_friends: Optional[int] = None):
        """
        Initialize the directory.

        Args:
            store: KeyValueStore used for persistence, or None for RAM only
            max_friends: Table size, defaults to config.MAX_FRIENDS
        """
        self.max_friends = max_friends or config.MAX_FRIENDS
        self.store = store
        self.persistent = store is not None
        self._slots: List[FriendRecord] = [FriendRecord() for _ in range(self.max_friends)]

    # ---- queries ----

    def find(self, peer_id: int) -> Optional[int]:
        for i, record in enumerate(self._slots):
            if record.in_use and record.peer_id == peer_id:
                return i
        return None

    def get(self, slot: int) -> FriendRecord:
        return self._slots[slot]

    def friends(self) -> List[FriendRecord]:
        return [record for record in self._slots if record.in_use]

    def count(self) -> int:
        return sum(1 for record in self._slots if record.in_use)

    def __contains__(self, peer_id: int) -> bool:
        return self.find(peer_id) is not None

    # ---- mutations ----

    def upsert(self, peer_id: int, session_id: int, secret: Optional[bytes]) -> int:
        """
        Insert or update a friend and save the directory.

        Args:
            peer_id: Node number of the peer
            session_id: Locally generated session id
            secret: 16-byte secret, or None to store zeros

        Returns:
            Slot index the friend was written to
        """
        slot = self.find(peer_id)
        if slot is None:
            slot = next((i for i, r in enumerate(self._slots) if not r.in_use), None)
            if slot is None:
                slot = 0
                logger.warning(f"Friend directory full, evicting 0x{self._slots[0].peer_id:08x} from slot 0")
            self._slots[slot].wipe()

        record = self._slots[slot]
        record.peer_id = peer_id
        record.session_id = session_id
        new_secret = bytes(secret or b'')[:config.SECRET_SIZE].ljust(config.SECRET_SIZE, b'\x00')
        record.secret[:] = new_secret
        record.in_use = True

        self.save()
        logger.info(f"Saved friend 0x{peer_id:08x} at slot {slot}")
        return slot

    def remove(self, slot: int) -> bool:
        """
        Securely clear a slot and save the directory.

        Args:
            slot: Slot index to clear

        Returns:
            bool: True if a friend was removed
        """
        if not 0 <= slot < self.max_friends or not self._slots[slot].in_use:
            return False
        peer_id = self._slots[slot].peer_id
        self._slots[slot].wipe()
        self.save()
        logger.info(f"Removed friend 0x{peer_id:08x} from slot {slot}")
        return True

    def remove_by_list_index(self, list_index: int) -> bool:
        """Remove the list_index-th in-use friend, in slot order."""
        used = [i for i, r in enumerate(self._slots) if r.in_use]
        if not 0 <= list_index < len(used):
            return False
        return self.remove(used[list_index])

    def update_telemetry(self, peer_id: int, telemetry: Telemetry, now: float) -> bool:
        """Cache the latest telemetry from a friend. Not persisted on its own."""
        slot = self.find(peer_id)
        if slot is None:
            return False
        record = self._slots[slot]
        record.last_telemetry = telemetry
        record.last_heard_at = now
        return True

    # ---- persistence ----

    def to_blob(self) -> bytes:
        """Serialize every slot, used or not, behind a versioned header."""
        parts = [struct.pack(HEADER_FORMAT, BLOB_MAGIC, SCHEMA_VERSION, self.max_friends)]
        for record in self._slots:
            t = record.last_telemetry or Telemetry()
            parts.append(struct.pack(
                RECORD_FORMAT,
                record.peer_id, record.session_id, bytes(record.secret),
                int(record.in_use), int(record.last_telemetry is not None),
                int(t.request_type), t.latitude_i, t.longitude_i,
                t.satellites, t.battery_level, t.time,
            ))
        return b''.join(parts)

    def from_blob(self, blob: bytes) -> bool:
        """
        Replace the directory contents from a blob.

        A blob with the wrong magic, an unknown schema version or an
        inconsistent length is discarded and the directory is left empty.

        Returns:
            bool: True if the blob was accepted
        """
        self._reset()

        if len(blob) < HEADER_SIZE:
            logger.warning(f"Friends blob too short ({len(blob)} bytes), resetting")
            return False

        magic, version, count = struct.unpack_from(HEADER_FORMAT, blob)
        if magic != BLOB_MAGIC or version != SCHEMA_VERSION:
            logger.warning(f"Unsupported friends blob (magic={magic!r} version={version}), resetting")
            return False

        expected = HEADER_SIZE + count * RECORD_SIZE
        if len(blob) != expected:
            logger.warning(f"Unexpected friends blob size={len(blob)} expected={expected}, resetting")
            return False

        loaded = 0
        for i in range(count):
            (peer_id, session_id, secret, in_use, has_telemetry,
             kind, lat, lon, sats, battery, timestamp) = struct.unpack_from(
                RECORD_FORMAT, blob, HEADER_SIZE + i * RECORD_SIZE)
            if not in_use:
                continue
            if i >= self.max_friends:
                logger.warning(f"Dropping stored friend 0x{peer_id:08x}, slot {i} exceeds capacity")
                continue
            if self.find(peer_id) is not None:
                logger.warning(f"Dropping duplicate stored friend 0x{peer_id:08x}")
                continue

            telemetry = None
            if has_telemetry:
                try:
                    telemetry = Telemetry(RequestType(kind), lat, lon, sats, battery, timestamp)
                except ValueError:
                    logger.warning(f"Discarding cached telemetry for 0x{peer_id:08x}, bad type {kind}")

            record = self._slots[i]
            record.peer_id = peer_id
            record.session_id = session_id
            record.secret[:] = secret
            record.in_use = True
            record.last_telemetry = telemetry
            loaded += 1

        logger.info(f"Loaded {loaded} friends")
        return True

    def load(self) -> bool:
        """
        Load the directory from the store.

        Returns:
            bool: True if stored friends were loaded
        """
        if self.store is None:
            return False
        try:
            blob = self.store.get(config.STORAGE_NAMESPACE, config.STORAGE_KEY)
        except StorageUnavailable as e:
            logger.warning(f"Storage open failed; friends in RAM only: {e}")
            self.persistent = False
            return False

        if blob is None:
            return False
        return self.from_blob(blob)

    def save(self) -> bool:
        if self.store is None or not self.persistent:
            return False
        try:
            self.store.put(config.STORAGE_NAMESPACE, config.STORAGE_KEY, self.to_blob())
            return True
        except StorageUnavailable as e:
            logger.warning(f"Storage write failed; friends in RAM only: {e}")
            self.persistent = False
            return False

    def _reset(self) -> None:
        for record in self._slots:
            record.wipe()
