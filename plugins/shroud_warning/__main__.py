"""
plugins/shroud_warning/__main__.py

Standalone entry point: runs the plugin as its own process.

    python -m shroud_warning [--nats-url URL] [--config FILE] [--class ROGUE]
"""

import argparse
import asyncio
import json
import logging
import sys

from nats.aio.client import Client as NATS

from .errors import HostUnavailableError
from .gate import always_applicable, class_gate
from .plugin import ShroudWarningPlugin


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Shroud Warning plugin with NATS')
    parser.add_argument(
        '--nats-url',
        default='nats://localhost:4222',
        help='NATS server URL (default: nats://localhost:4222)'
    )
    parser.add_argument(
        '--config',
        default=None,
        help='Path to JSON settings file (default: built-in defaults)'
    )
    parser.add_argument(
        '--class',
        dest='required_class',
        default=None,
        help='Only listen for casts when the player has this class (e.g. ROGUE)'
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )
    return parser.parse_args(argv)


def load_config(path):
    """Load the settings file, or return an empty dict for defaults."""
    if path is None:
        return {}
    with open(path, 'r', encoding='utf-8') as fp:
        return json.load(fp)


async def main(argv=None):
    """Standalone plugin entry point."""
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not read config {args.config}: {e}")
        sys.exit(1)

    logger.info(f"Connecting to NATS at {args.nats_url}...")
    nats = NATS()

    try:
        await nats.connect(args.nats_url)
        logger.info("Connected to NATS")
    except Exception as e:
        logger.error(f"Failed to connect to NATS: {e}")
        sys.exit(1)

    applicability = (
        class_gate(args.required_class) if args.required_class else always_applicable
    )
    plugin = ShroudWarningPlugin(nats, config, applicability=applicability)

    try:
        await plugin.initialize()
        logger.info("Shroud Warning running - press Ctrl+C to stop")

        # Keep plugin running
        while True:
            await asyncio.sleep(1)

    except HostUnavailableError as e:
        logger.error(str(e))
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
    finally:
        await plugin.shutdown()
        await nats.close()
        logger.info("Shroud Warning shutdown complete")


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == '__main__':
    run()
