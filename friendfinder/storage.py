"""
Storage Module

Key-value stores used to persist the friend directory, and a host config
adapter that keeps the GPS sampling interval in the same store so the power
coordinator can recover it after an unclean shutdown.
"""

import base64
import binascii
import json
import logging
import os
from typing import Callable, Dict, List, Optional

from friendfinder.errors import StorageUnavailable

logger = logging.getLogger(__name__)


class MemoryStore:
    """In-memory key-value store for tests and RAM-only hosts."""

    def __init__(self):
        self._data: Dict[str, Dict[str, bytes]] = {}
        self.available = True

    def get(self, namespace: str, key: str) -> Optional[bytes]:
        if not self.available:
            raise StorageUnavailable("memory store is offline")
        return self._data.get(namespace, {}).get(key)

    def put(self, namespace: str, key: str, value: bytes) -> None:
        if not self.available:
            raise StorageUnavailable("memory store is offline")
        self._data.setdefault(namespace, {})[key] = bytes(value)


class JsonFileStore:
    """
    Key-value store backed by a single JSON file.

    Blobs are kept base64 encoded under their namespace. Every put rewrites
    the file through a temporary file and an atomic replace.
    """

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Dict[str, Dict[str, str]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f"Failed to read {self.path}: {e}")
        if not isinstance(data, dict):
            raise StorageUnavailable(f"Unexpected content in {self.path}")
        return data

    def get(self, namespace: str, key: str) -> Optional[bytes]:
        encoded = self._read().get(namespace, {}).get(key)
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded)
        except (binascii.Error, ValueError) as e:
            raise StorageUnavailable(f"Corrupt value for {namespace}/{key}: {e}")

    def put(self, namespace: str, key: str, value: bytes) -> None:
        data = self._read()
        data.setdefault(namespace, {})[key] = base64.b64encode(value).decode('ascii')

        tmp_path = self.path + ".tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageUnavailable(f"Failed to write {self.path}: {e}")


class StoredHostConfig:
    """
    HostConfig that persists the position sampling interval.

    Listeners registered with on_reload() are called by reload(), which is
    how a GPS driver picks up a new interval.
    """

    NAMESPACE = "host"
    KEY = "position_sample_interval"

    def __init__(self, store, default_interval: int):
        self.store = store
        self.default_interval = default_interval
        self._listeners: List[Callable[[int], None]] = []
        self._cached = default_interval
        try:
            raw = store.get(self.NAMESPACE, self.KEY)
            if raw is not None:
                self._cached = int(raw.decode('ascii'))
        except (StorageUnavailable, ValueError) as e:
            logger.warning(f"Using default sample interval, stored value unreadable: {e}")

    def get_sample_interval(self) -> int:
        return self._cached

    def set_sample_interval(self, seconds: int) -> None:
        self._cached = int(seconds)
        try:
            self.store.put(self.NAMESPACE, self.KEY, str(self._cached).encode('ascii'))
        except StorageUnavailable as e:
            logger.error(f"Failed to persist sample interval: {e}")

    def on_reload(self, callback: Callable[[int], None]) -> None:
        self._listeners.append(callback)

    def reload(self) -> None:
        for callback in self._listeners:
            callback(self._cached)
