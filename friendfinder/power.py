"""
Power Management Module

This module raises the host's GPS position sampling rate while a tracking
session is active and restores it afterwards. The saved interval and the
boosted flag guard each other, so repeated enter and exit calls neither save
twice nor restore twice.
"""

import logging
from typing import Optional

from friendfinder import config
from friendfinder.interfaces import HostConfig

# Configure logger
logger = logging.getLogger(__name__)


class PowerCoordinator:
    """
    Class for coordinating GPS power use with session activity.

    The host's sampling interval is shared with the rest of the device, so it
    is only ever changed through boost() and restore().
    """

    def __init__(self, host_config: HostConfig, boosted_interval: Optional[int] = None,
                 default_interval: Optional[int] = None):
        """
        Initialize the coordinator and heal any boost left by a crash.

        Args:
            host_config: Object implementing the HostConfig protocol
            boosted_interval: Sampling interval in seconds while tracking
            default_interval: Interval to fall back to when recovering
        """
        self.host_config = host_config
        self.boosted_interval = boosted_interval or config.GPS_BOOSTED_INTERVAL
        self.default_interval = default_interval or config.GPS_DEFAULT_INTERVAL
        self.boosted = False
        self.saved_interval: Optional[int] = None

        self.recover()

    def recover(self) -> bool:
        """
        Undo a boost that outlived its session.

        If the host's interval is at or below the boosted value while no
        session is flagged active, the previous run must have stopped
        mid-session. The configured default is written back.

        Returns:
            bool: True if the interval was restored
        """
        if self.boosted:
            return False

        current = self.host_config.get_sample_interval()
        if current > self.boosted_interval:
            return False

        logger.warning(
            f"GPS interval stuck at {current}s after unclean shutdown, "
            f"restoring {self.default_interval}s"
        )
        self.host_config.set_sample_interval(self.default_interval)
        self.host_config.reload()
        return True

    def boost(self) -> bool:
        """
        Switch the GPS to the fast sampling interval.

        Returns:
            bool: True if the interval was changed by this call
        """
        if self.boosted:
            return False

        self.saved_interval = self.host_config.get_sample_interval()
        self.host_config.set_sample_interval(self.boosted_interval)
        self.host_config.reload()
        self.boosted = True
        logger.info(f"GPS high power mode: {self.saved_interval}s -> {self.boosted_interval}s")
        return True

    def restore(self) -> bool:
        """
        Put back the interval saved by boost().

        Returns:
            bool: True if the interval was changed by this call
        """
        if not self.boosted:
            return False

        interval = self.saved_interval
        if interval is None or interval <= self.boosted_interval:
            interval = self.default_interval
        self.host_config.set_sample_interval(interval)
        self.host_config.reload()
        self.boosted = False
        self.saved_interval = None
        logger.info(f"GPS normal power mode restored: {interval}s")
        return True
