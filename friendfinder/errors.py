"""Exceptions raised by Friend Finder adapters.

The session core never lets these reach its callers: storage failures fall
back to RAM-only operation and undecodable packets are logged and dropped.
"""


class FriendFinderError(Exception):
    """Base class for Friend Finder errors."""


class StorageUnavailable(FriendFinderError):
    """The key-value store could not be read or written."""


class PacketDecodeError(FriendFinderError, ValueError):
    """A received payload is not a valid Friend Finder packet."""
