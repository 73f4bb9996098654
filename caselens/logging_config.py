"""
Structured logging configuration using structlog.

Usage:
    from caselens.logging_config import get_logger

    log = get_logger(__name__)
    log.info("chunks_replaced", file_id="...", parents=3)
"""
import contextlib
import logging
import logging.handlers
import sys
import structlog
from typing import Iterator, Optional


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
    use_stderr: bool = False,
) -> None:
    """
    Configure structlog with processors for structured output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON. If False, use colored console output.
        log_file: Optional path to a log file, rotated at midnight.
        use_stderr: Log to stderr instead of stdout (required for the MCP server).
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if json_format:
        console_renderer = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    console_handler = logging.StreamHandler(sys.stderr if use_stderr else sys.stdout)
    console_handler.setFormatter(_formatter(shared_processors, console_renderer))
    root_logger.addHandler(console_handler)

    if log_file:
        # File output is always JSON so it stays machine readable
        file_handler = logging.handlers.TimedRotatingFileHandler(
            log_file,
            when="midnight",
            interval=1,
            backupCount=7
        )
        file_handler.setFormatter(
            _formatter(shared_processors, structlog.processors.JSONRenderer())
        )
        root_logger.addHandler(file_handler)

    # httpx logs every provider request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _formatter(shared_processors, renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance (typically named after __name__)."""
    return structlog.get_logger(name)


@contextlib.contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """
    Bind key-value pairs to every log line emitted inside the block.

    Example:
        with log_context(file_id=file_id, project_id=project_id):
            ...
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
