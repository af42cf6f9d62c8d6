#!/usr/bin/env python3
"""
Hooklab CLI

Command-line entry point for the Hooklab webhook server.

Examples:
    # Start on the default port with the default response
    hooklab

    # Custom port and default response
    hooklab --port 9000 --response '{"received": true}'

    # Load settings from YAML, override the log level
    hooklab --config hooklab.yaml --log-level debug
"""

import argparse
import logging
import sys
from typing import List, Optional

from .common import strict_json_loads
from .core import ResponseConfig
from .server import HooklabServer, ServerConfig

LOG_LEVELS = ['debug', 'info', 'warning', 'error']


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog='hooklab',
        description="Hooklab - webhook capture and mock-response server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with defaults (127.0.0.1:8080)
  %(prog)s

  # Answer every webhook with a custom body
  %(prog)s --port 9000 --response '{"received": true}'

  # Settings from YAML (command-line flags win)
  %(prog)s --config hooklab.yaml --log-level debug
        """
    )

    parser.add_argument('--response', default=None,
                        help='Default JSON response (default: {"result":"ok"})')
    parser.add_argument('-p', '--port', type=int, help='Port to bind (default: 8080)')
    parser.add_argument('--host', help='Host to bind (default: 127.0.0.1)')
    parser.add_argument('-c', '--config', help='YAML config file')
    parser.add_argument('--max-events', type=int, help='Events kept in memory (default: 50)')
    parser.add_argument('--heartbeat', type=float, help='Stream heartbeat interval in seconds (default: 25)')
    parser.add_argument('--log-level', choices=LOG_LEVELS, help='Log level (default: info)')
    parser.add_argument('--no-access-log', action='store_true', help='Disable uvicorn access log')

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    Merge the optional YAML config with command-line overrides.

    Args:
        args: Parsed command-line arguments

    Returns:
        ServerConfig

    Raises:
        ValueError: If --response is not valid JSON or the config file is invalid
    """
    config = ServerConfig.from_yaml(args.config) if args.config else ServerConfig()

    if args.response is not None:
        try:
            config.default_response = strict_json_loads(args.response)
        except ValueError as e:
            raise ValueError(f"Invalid JSON for --response: {e}")
        config.default_status_code = 200

    if args.port is not None:
        config.port = args.port
    if args.host:
        config.host = args.host
    if args.max_events is not None:
        config.max_events = args.max_events
    if args.heartbeat is not None:
        config.heartbeat_interval = args.heartbeat
    if args.log_level:
        config.log_level = args.log_level
    if args.no_access_log:
        config.access_log = False

    return config


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    server = HooklabServer(config=config)
    if args.response is not None:
        # Keep the text exactly as given on the command line
        server.coordinator.responses.set("default", ResponseConfig(
            response=config.default_response,
            response_raw=args.response,
            status_code=200
        ))

    try:
        server.start()
    except KeyboardInterrupt:
        print("\n\n👋 Hooklab stopped")


if __name__ == '__main__':
    main()
