"""CLI for the server command.

Provides the `server` verb, which runs the API in the foreground.
"""

import argparse
import json
import logging
from pathlib import Path

from config import ConfigError, load_settings
from server.httpd import Server

logger = logging.getLogger(__name__)


def main(argv: list) -> int:
    """Run the API server in the foreground."""
    parser = argparse.ArgumentParser(
        prog="vm-canvas server",
        description="Run the deployment API server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        help="Port to listen on (default: from settings)",
    )
    parser.add_argument(
        "--bind", "-b",
        help="Address to bind to (default: from settings)",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help="Settings file (default: $VMCANVAS_CONFIG or ./vm-canvas.yaml)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output startup info as JSON",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.error("Invalid settings: %s", e)
        return 1

    server = Server(settings, bind=args.bind, port=args.port)
    try:
        server.start()
    except RuntimeError as e:
        logger.error("Failed to start server: %s", e)
        return 1

    if args.json:
        info = {
            "url": f"http://{server.bind}:{server.port}",
            "port": server.port,
            "machines_file": str(server.store.path),
            "deployments_dir": str(settings.deployments_dir),
            "tool": settings.tool,
        }
        print(json.dumps(info, indent=2))
    else:
        print(f"\nServer running at http://{server.bind}:{server.port}")
        print(f"Machines file: {server.store.path}")
        print(f"Deployments dir: {settings.deployments_dir}")
        print("\nPress Ctrl+C to stop...")

    server.serve_forever()
    return 0
