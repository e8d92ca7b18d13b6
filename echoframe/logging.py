"""Central logging helpers"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import Any, List, Optional

import structlog
import structlog.contextvars
import structlog.stdlib

from echoframe.config import settings

# structlog already renders timestamp and level into the message
_CONSOLE_FORMAT = "%(message)s"
_FILE_FORMAT = "%(name)s | %(message)s"


def _build_file_handler(component: str) -> RotatingFileHandler:
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        settings.log_dir / f"{component}.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
    )
    handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    return handler


def build_processors(log_format: str) -> List[Any]:
    """structlog pipeline ending in a JSON or human-readable renderer"""
    renderer: Any
    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        renderer = structlog.processors.JSONRenderer()

    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def resolve_level(name: str) -> int:
    """Map a level name such as "debug" to its logging constant, defaulting to INFO"""
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(
    component: str = "echoframe",
    level: int = logging.INFO,
    log_format: Optional[str] = None,
) -> None:
    """
    Configure console logging for a server process.

    Every event carries ``component``. A rotating file copy is added only
    when ECHOFRAME_LOG_TO_FILE is set.
    """
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    handlers: List[logging.Handler] = [console]
    if settings.log_to_file:
        handlers.append(_build_file_handler(component))

    logging.basicConfig(level=level, handlers=handlers, force=True)

    structlog.configure(
        processors=build_processors(log_format or settings.log_format),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(component=component)
