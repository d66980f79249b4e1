"""
TrackMeta entry point.

    python track_meta.py serve [--host H] [--port P]
    python track_meta.py sweep
    python track_meta.py clear-cache NAMESPACE
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from hypercorn.asyncio import serve as hypercorn_serve
from hypercorn.config import Config

from config import DEBUG, SERVER, VERSION
from errors import ValidationError
from logging_config import setup_logging, get_logger

logger = get_logger(__name__)


def _configure_logging() -> None:
    setup_logging(
        console_level=DEBUG.get("log_level", "INFO"),
        file_level="DEBUG" if DEBUG.get("log_detailed", False) else "INFO",
        console=DEBUG.get("log_to_console", True),
        log_file=DEBUG.get("log_file", "trackmeta.log"),
        log_providers=DEBUG.get("log_providers", True),
        max_bytes=DEBUG["log_rotation"]["max_bytes"],
        backup_count=DEBUG["log_rotation"]["backup_count"],
    )


async def run_server(host: str, port: int) -> None:
    from server import app

    config = Config()
    config.bind = [f"{host}:{port}"]
    config.use_reloader = False
    config.graceful_timeout = 2
    config.shutdown_timeout = 2
    config.debug = SERVER.get("debug", False)

    # Mute unnecessary logging
    logging.getLogger('hypercorn.error').setLevel(logging.ERROR)
    logging.getLogger('hypercorn.access').setLevel(logging.ERROR)

    logger.info(f"HTTP server starting on {host}:{port}")
    try:
        await hypercorn_serve(app, config)
    except asyncio.CancelledError:
        logger.info("Server task cancelled")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='trackmeta',
                                     description='TrackMeta - metadata aggregation and caching for Navidrome')
    parser.add_argument('--version', action='version', version=f'%(prog)s {VERSION}')
    commands = parser.add_subparsers(dest='command', required=True)

    serve = commands.add_parser('serve', help='Run the HTTP API')
    serve.add_argument('--host', default=SERVER["host"], help='Bind address')
    serve.add_argument('--port', default=SERVER["port"], type=int, help='Bind port')

    commands.add_parser('sweep', help='Remove expired cache records once and exit')

    clear = commands.add_parser('clear-cache', help='Delete every record in a cache namespace')
    clear.add_argument('namespace', help='Cache namespace, e.g. lyrics or lastfm')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging()

    if args.command == 'serve':
        try:
            logger.info(f"Starting TrackMeta v{VERSION}...")
            asyncio.run(run_server(args.host, args.port))
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt caught in main...")
        return 0

    from services import get_services

    if args.command == 'sweep':
        removed = asyncio.run(get_services().cache.sweep())
        print(f"Removed {removed} expired records")
        return 0

    try:
        removed = asyncio.run(get_services().cache.clear(args.namespace))
    except ValidationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    print(f"Removed {removed} records from '{args.namespace}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
