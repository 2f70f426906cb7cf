#!/usr/bin/env python3
"""
Command line entry point: read configuration, bind, serve.
"""

import argparse
import logging

from dotenv import load_dotenv
import uvicorn

from .config import ProxySettings
from .utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SSRF-safe forwarding proxy for remote images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                         # Listen on $PORT (default 8081)
  %(prog)s --port 9000             # Explicit port
  %(prog)s --log-level DEBUG       # Verbose logging
        """
    )
    parser.add_argument('--host',
                        help='Interface to bind (default: ASSETPROXY_HOST or 0.0.0.0)')
    parser.add_argument('--port',
                        type=int,
                        help='Port to listen on (default: PORT or 8081)')
    parser.add_argument('--log-level',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: ASSETPROXY_LOG_LEVEL or INFO)')
    return parser


def main(argv=None) -> None:
    """Main entry point for assetproxy."""
    # Load environment variables
    load_dotenv()
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.host:
        overrides['host'] = args.host
    if args.port:
        overrides['port'] = args.port
    if args.log_level:
        overrides['log_level'] = args.log_level
    settings = ProxySettings(**overrides)

    setup_logging(settings.log_level)
    logging.getLogger(__name__).info("assetproxy listening on %s:%d", settings.host, settings.port)

    # Import after logging is configured
    from .api.app import create_app

    # uvicorn exits the process if the port cannot be bound
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
