"""
Framing server main application

1. Configures logging
2. Binds the fixed service port
3. Serves connections one at a time until interrupted
"""
import argparse
import logging
from typing import List, Optional

import structlog

from echoframe.config import settings
from echoframe.engine.listener import SERVICE_PORT, create_listener
from echoframe.exceptions import BootstrapError
from echoframe.logging import resolve_level, setup_logging
from echoframe.server import FramingServer

logger = structlog.get_logger()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description=f"Two-sentinel framing echo server (TCP port {SERVICE_PORT})"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else resolve_level(settings.log_level)
    setup_logging("echoframe-server", level)

    try:
        listener = create_listener()
    except BootstrapError as e:
        logger.error("bootstrap_failed", error=e.message, details=e.details)
        return 1

    server = FramingServer(listener)
    try:
        server.start_listening()
    except BootstrapError as e:
        logger.error("bootstrap_failed", error=e.message, details=e.details)
        listener.close()
        return 1

    logger.info("server_waiting", port=SERVICE_PORT)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("server_shutdown")
    finally:
        server.stop()
    return 0


def run() -> None:
    """Console script wrapper"""
    raise SystemExit(main())


if __name__ == "__main__":
    run()
