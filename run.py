#!/usr/bin/env python3
"""
Friend Finder Runner

This script provides a convenient way to run the Friend Finder simulator
from the project root without installing the package.
"""

import os
import sys
import argparse
import subprocess
import logging

def setup_logging():
    """Set up basic logging."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger('run')

def check_environment():
    """Check if the environment is set up correctly."""
    logger = logging.getLogger('run')

    # Check if virtual environment is active
    if not hasattr(sys, 'real_prefix') and not (hasattr(sys, 'base_prefix') and sys.base_prefix != sys.prefix):
        logger.warning("Virtual environment not activated. It's recommended to run within the virtual environment.")

    if not os.path.isdir('friendfinder'):
        logger.error("Missing required directory: friendfinder")
        logger.error("Please run this script from the project root directory.")
        return False

    return True

def run_simulation(args):
    """
    Run the simulator as a module so package imports resolve.

    Args:
        args: Command line arguments
    """
    logger = logging.getLogger('run')
    logger.info("Starting Friend Finder simulation...")

    cmd = [sys.executable, '-m', 'friendfinder.main', '--simulate']

    if args.debug:
        cmd.append('--debug')
    if args.drop_rate:
        cmd.extend(['--drop-rate', str(args.drop_rate)])
    if args.config:
        cmd.extend(['--config', args.config])

    try:
        process = subprocess.run(cmd)
        return process.returncode
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except OSError as e:
        logger.error(f"Error running simulation: {e}")
        return 1

def main():
    """Main entry point."""
    setup_logging()

    parser = argparse.ArgumentParser(description='Run the Friend Finder simulator')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--drop-rate', type=float, default=0.0,
                        help='Fraction of packets the loopback mesh drops')
    parser.add_argument('--config', help='JSON configuration override file')

    args = parser.parse_args()

    if not check_environment():
        return 1

    return run_simulation(args)

if __name__ == "__main__":
    sys.exit(main())
