"""
Service Module

This module hosts a SessionMachine on its own worker thread. Received packets
and user commands are queued and applied in order by the worker, which also
ticks the machine, so the machine itself only ever runs on one thread.
"""

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from friendfinder import config
from friendfinder.models import UIEvent
from friendfinder.session import SessionMachine

logger = logging.getLogger(__name__)

COMMANDS = (
    "begin_pairing",
    "request_tracking",
    "accept_pairing",
    "reject_pairing",
    "end_session",
)


class FriendFinderService:
    """
    Threaded host for a SessionMachine.

    Inbound work goes through a bounded queue; UI events come out through a
    second bounded queue that drops its oldest entry when full.
    """

    def __init__(self, transport, directory, position, power, nodes,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the service.

        Args:
            transport: Object implementing the Transport protocol
            directory: FriendDirectory holding known peers
            position: Object implementing the PositionSource protocol
            power: PowerCoordinator driving the GPS sampling rate
            nodes: Object implementing the NodeDirectory protocol
            clock: Monotonic clock in seconds
        """
        self.inbound: "queue.Queue[Tuple[str, Tuple[Any, ...]]]" = queue.Queue(
            maxsize=config.INBOUND_QUEUE_SIZE)
        self.events: "queue.Queue[UIEvent]" = queue.Queue(maxsize=config.UI_EVENT_QUEUE_SIZE)

        self.machine = SessionMachine(transport, directory, position, power, nodes,
                                      on_ui_event=self._push_event, clock=clock)

        # Thread control
        self.thread = None
        self.stop_event = threading.Event()

        self.stats: Dict[str, int] = {
            "inbound_dropped": 0,
            "events_dropped": 0,
            "commands": 0,
            "packets": 0,
        }

    # ---- producers ----

    def submit_packet(self, payload: bytes, sender: int, to: Optional[int] = None) -> bool:
        """
        Queue a payload received on the Friend Finder port.

        Args:
            payload: Raw payload bytes
            sender: Node number the packet came from
            to: Destination the packet was addressed to, if known

        Returns:
            bool: True if queued, False if the inbound queue was full
        """
        return self._enqueue("packet", (bytes(payload), sender, to))

    def submit_command(self, name: str, *args) -> bool:
        """
        Queue a user action, e.g. submit_command("request_tracking", peer_id).

        Returns:
            bool: True if queued
        """
        if name not in COMMANDS:
            logger.error(f"Unknown command: {name}")
            return False
        return self._enqueue(name, args)

    def get_event(self, timeout: Optional[float] = None) -> Optional[UIEvent]:
        """
        Get the next UI event.

        Args:
            timeout: Seconds to wait, or None to return at once

        Returns:
            The event, or None if none is pending
        """
        try:
            if timeout is None:
                return self.events.get_nowait()
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None

    # ---- consumer ----

    def process_pending(self, tick: bool = True) -> int:
        """
        Apply every queued packet and command, then tick the machine.

        The worker thread calls this; tests call it directly instead of
        starting the thread.

        Returns:
            Number of queued items processed
        """
        processed = 0
        while True:
            try:
                kind, args = self.inbound.get_nowait()
            except queue.Empty:
                break

            if kind == "packet":
                self.stats["packets"] += 1
                self.machine.handle_packet(*args)
            else:
                self.stats["commands"] += 1
                result = getattr(self.machine, kind)(*args)
                logger.debug(f"Command {kind}{args} -> {result}")
            processed += 1

        if tick:
            self.machine.tick()
        return processed

    def start(self) -> bool:
        """
        Start the worker thread.

        Returns:
            bool: True if the thread is running
        """
        if self.thread is not None and self.thread.is_alive():
            logger.warning("Friend Finder worker already running")
            return True

        self.stop_event.clear()
        self.thread = threading.Thread(target=self._worker, daemon=True)
        self.thread.start()
        logger.info("Friend Finder worker started")
        return True

    def stop(self) -> None:
        """Stop the worker thread."""
        self.stop_event.set()

        if self.thread:
            self.thread.join(timeout=config.SHUTDOWN_TIMEOUT)
            self.thread = None

        logger.info("Friend Finder worker stopped")

    # ---- internals ----

    def _enqueue(self, kind: str, args: Tuple[Any, ...]) -> bool:
        try:
            self.inbound.put_nowait((kind, args))
            return True
        except queue.Full:
            self.stats["inbound_dropped"] += 1
            logger.warning(f"Inbound queue full, dropping {kind}")
            return False

    def _push_event(self, event: UIEvent) -> None:
        try:
            self.events.put_nowait(event)
            return
        except queue.Full:
            pass

        try:
            dropped = self.events.get_nowait()
        except queue.Empty:
            dropped = None
        self.stats["events_dropped"] += 1
        logger.warning(f"UI event queue full, dropped {dropped}")
        try:
            self.events.put_nowait(event)
        except queue.Full:
            logger.warning(f"UI event queue still full, dropped {event}")

    def _worker(self) -> None:
        logger.info("Friend Finder worker thread started")

        while not self.stop_event.is_set():
            self.process_pending()
            self.stop_event.wait(config.TICK_INTERVAL)

        logger.info("Friend Finder worker thread stopped")
