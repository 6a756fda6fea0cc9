"""Structured logging setup shared by the web app and the scripts."""
import logging
import sys

import structlog

from askdocs import config


def configure_logging(level: str = None, fmt: str = None) -> None:
    """Configure stdlib logging and the structlog processor chain.

    Args:
        level: Log level name (default from config.LOG_LEVEL)
        fmt: "json" or "console" (default from config.LOG_FORMAT)
    """
    level = (level or config.LOG_LEVEL).upper()
    fmt = fmt or config.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
