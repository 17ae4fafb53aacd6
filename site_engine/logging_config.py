"""
Structured logging configuration

JSON lines on stdout; the structlog console renderer when DEBUG is on.
"""
import structlog
import logging
import sys

from config import settings

# Chatty per-request loggers of the HTTP and websocket clients
QUIET_LOGGERS = ("httpx", "httpcore", "websockets")


def setup_logging(level: str = "INFO", json_logs: bool = True):
    """Configure structlog on top of stdlib logging and return the app logger"""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO)
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("site_engine")


# Global logger instance
logger = setup_logging(settings.LOG_LEVEL, json_logs=not settings.DEBUG)
