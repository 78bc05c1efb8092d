import logging
import os

import structlog
from dotenv import load_dotenv

load_dotenv()

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def level_from_name(name: str | None, default: int = logging.INFO) -> int:
    """Map a level name such as ``"DEBUG"`` to its logging constant."""
    if not name:
        return default
    return LOG_LEVELS.get(name.upper(), default)


def setup_logging(level: int | None = logging.INFO, json_output: bool = False) -> None:
    """
    Configure structured logging for the insights engine.

    Args:
        level: The logging level to use. Defaults to INFO.
        json_output: Render events as JSON lines instead of the colored
            console format (useful when a batch job is scraped by a log shipper).
    """
    logging.basicConfig(level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
            pad_event=50,
        )
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


setup_logging(
    level=level_from_name(os.getenv("LOG_LEVEL"), default=logging.DEBUG),
    json_output=os.getenv("LOG_FORMAT", "").lower() == "json",
)
