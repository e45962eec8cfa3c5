#!/usr/bin/env python3
"""
Friend Finder: Simulation Runner

Runs two simulated radios on a loopback mesh through the whole protocol:
mutual pairing, a tracking session with distance and bearing updates, and
the end of the session. Time is virtual, so a full run takes a moment.
"""

import argparse
import logging
import sys
from typing import List, Optional

from friendfinder import config
from friendfinder.gps import NmeaPositionSource
from friendfinder.models import SessionState
from friendfinder.navigation import NavigationCalculator
from friendfinder.sim import LoopbackMesh, ManualClock, SimulatedDevice, run
from friendfinder.storage import JsonFileStore, MemoryStore, StoredHostConfig
from friendfinder.utils import format_coordinates, get_timestamp_str, setup_logging

logger = logging.getLogger("friendfinder.main")

NODE_A = 0xA11CE001
NODE_B = 0xB0B0B002


def open_gps(port: str, host_config: Optional[StoredHostConfig] = None) -> Optional[NmeaPositionSource]:
    """
    Open a serial NMEA receiver to stand in for Alpha's simulated position.

    Args:
        port: Serial port of the receiver
        host_config: Host config whose reloads are forwarded to the receiver

    Returns:
        The running position source, or None if the port could not be opened
    """
    gps = NmeaPositionSource(port=port)
    if not gps.connect():
        logger.warning(f"GPS at {port} unavailable, using simulated position")
        return None

    gps.start()
    if host_config is not None:
        host_config.on_reload(gps.set_sample_interval)
    return gps


class SimulationController:
    """
    Drives a two-device scenario on a virtual clock.

    Device B walks towards device A during the tracking phase so the
    distance shown on A shrinks between updates. Alpha can keep its friends
    and GPS interval in a file, and can read its position from a real
    receiver.
    """

    def __init__(self, drop_rate: float = 0.0, seed: Optional[int] = None,
                 store_path: Optional[str] = None, gps_port: Optional[str] = None):
        self.clock = ManualClock()
        self.mesh = LoopbackMesh(drop_rate=drop_rate, duplicate_rate=drop_rate / 2,
                                 delay_rate=drop_rate / 2, seed=seed)

        store = JsonFileStore(store_path) if store_path else None
        host_config = None
        if store is not None or gps_port:
            host_config = StoredHostConfig(store if store is not None else MemoryStore(),
                                           config.GPS_DEFAULT_INTERVAL)
        self.gps = open_gps(gps_port, host_config) if gps_port else None

        self.alpha = SimulatedDevice(self.mesh, NODE_A, "Alpha",
                                     tuple(config.SIMULATE_LOCATION_A), self.clock,
                                     store=store, position=self.gps, host_config=host_config)
        self.bravo = SimulatedDevice(self.mesh, NODE_B, "Bravo",
                                     tuple(config.SIMULATE_LOCATION_B), self.clock)
        self.devices: List[SimulatedDevice] = [self.alpha, self.bravo]
        self.navigation = NavigationCalculator(clock=self.clock)

    def pair(self) -> bool:
        """
        Press "pair" on both devices and let them confirm each other.

        Returns:
            bool: True if both devices saved each other as friends
        """
        logger.info("Phase 1: pairing")
        for device in self.devices:
            device.auto_confirm = True
            device.machine.begin_pairing()

        run(self.devices, self.mesh, self.clock, config.PAIRING_WINDOW + 1)

        paired = NODE_B in self.alpha.directory and NODE_A in self.bravo.directory
        if paired:
            logger.info("Pairing complete on both devices")
        else:
            logger.error(f"Pairing failed: alpha={self.alpha.machine.state.value} "
                         f"bravo={self.bravo.machine.state.value}")
        return paired

    def track(self, duration: float) -> bool:
        """
        Let Alpha track Bravo while Bravo walks towards Alpha.

        Args:
            duration: Seconds of virtual time to track for

        Returns:
            bool: True if the session was established
        """
        logger.info("Phase 2: tracking")
        if not self.alpha.machine.request_tracking(NODE_B):
            return False

        step = config.UPDATE_INTERVAL
        elapsed = 0.0
        lat_a, lon_a = config.SIMULATE_LOCATION_A
        while elapsed < duration:
            run(self.devices, self.mesh, self.clock, step)
            elapsed += step

            # Close a tenth of the remaining gap every update
            self.bravo.position.move((lat_a - self.bravo.position.latitude) / 10,
                                     (lon_a - self.bravo.position.longitude) / 10)

            self.navigation.update_from_session(self.alpha.machine)
            peer = self.navigation.peer_position
            logger.info(
                f"[{self.alpha.machine.state.value}] Bravo at "
                f"{format_coordinates(*peer) if peer else 'unknown'}: "
                f"{self.navigation.format_distance()} {self.navigation.format_bearing()} "
                f"({self.navigation.format_age()}, sent {self._sent_at()})"
            )

        return self.alpha.machine.state is SessionState.TRACKING_TARGET

    def _sent_at(self) -> str:
        telemetry = self.navigation.peer_telemetry
        if telemetry is None or not telemetry.time:
            return "never"
        return get_timestamp_str(telemetry.time, "%H:%M:%S")

    def finish(self) -> bool:
        """
        End the session from Alpha and check both sides went idle.

        Returns:
            bool: True if both devices are idle with their GPS rate restored
        """
        logger.info("Phase 3: end of session")
        self.alpha.machine.end_session()
        run(self.devices, self.mesh, self.clock, 2.0)

        ok = True
        for device in self.devices:
            idle = device.machine.state is SessionState.IDLE
            restored = not device.power.boosted
            logger.info(f"{device.name}: state={device.machine.state.value} "
                        f"gps_interval={device.host_config.get_sample_interval()}s "
                        f"friends={device.directory.count()} stats={device.machine.stats}")
            ok = ok and idle and restored
        logger.info(f"Mesh stats: {self.mesh.stats}")
        return ok

    def run(self, duration: float) -> bool:
        return self.pair() and self.track(duration) and self.finish()

    def close(self) -> None:
        """Release the GPS receiver, if one was opened."""
        if self.gps is not None:
            self.gps.disconnect()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description=f"{config.APP_NAME} - protocol simulator")
    parser.add_argument('--simulate', action='store_true',
                        help='Run two simulated radios on a loopback mesh')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--drop-rate', type=float, default=0.0,
                        help='Fraction of packets the loopback mesh drops (0-1)')
    parser.add_argument('--seed', type=int, default=None, help='Seed for the loopback mesh')
    parser.add_argument('--duration', type=float, default=None,
                        help='Seconds of virtual tracking time')
    parser.add_argument('--config', help='JSON file overriding configuration values')
    parser.add_argument('--persist', action='store_true',
                        help="Keep Alpha's friends and GPS interval in config.STORE_FILE between runs")
    parser.add_argument('--gps-port', help="Serial port of an NMEA receiver to use for Alpha's position")
    args = parser.parse_args(argv)

    if args.config:
        config.load_config(args.config)
    if args.debug:
        config.DEBUG_MODE = True

    setup_logging("friendfinder", level=logging.DEBUG if config.DEBUG_MODE else config.LOG_LEVEL)

    if not args.simulate:
        logger.error("No mesh transport is available on this host; run with --simulate")
        return 1

    if not 0.0 <= args.drop_rate < 1.0:
        logger.error(f"Invalid drop rate: {args.drop_rate}")
        return 1

    duration = args.duration if args.duration is not None else config.SIMULATE_DURATION
    controller = SimulationController(drop_rate=args.drop_rate, seed=args.seed,
                                      store_path=config.STORE_FILE if args.persist else None,
                                      gps_port=args.gps_port)
    try:
        completed = controller.run(duration)
    finally:
        controller.close()

    if completed:
        logger.info("Simulation completed successfully")
        return 0

    logger.error("Simulation did not complete")
    return 1


if __name__ == "__main__":
    sys.exit(main())
