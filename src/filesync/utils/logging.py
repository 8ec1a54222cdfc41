"""Logging for sync passes.

structlog renders each event and the stdlib handlers decide where it goes:
a colorlog console handler coloured by level and, when configured, a
rotating file handler.
"""

import functools
import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import Optional

import colorlog
import structlog
from structlog.typing import Processor

_configured = False


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    force: bool = False
) -> bool:
    """Configure structlog and the root handlers once per process.

    Arguments left as ``None`` fall back to ``AppSettings.logging``.

    Returns:
        True if this call configured logging, False if it was already set up
    """
    global _configured
    if _configured and not force:
        return False

    from ..config.settings import get_settings

    settings = get_settings().logging
    level = getattr(logging, (log_level or settings.level).upper())
    format_type = log_format or settings.format
    file_path = log_file or settings.file_path

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        # colorlog colours the level, so the renderer stays plain
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(_console_handler(level))
    if file_path:
        root.addHandler(_file_handler(file_path, level))

    _configured = True
    return True


def _file_handler(file_path: str, level: int) -> logging.Handler:
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        file_path,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8"
    )
    handler.setLevel(level)
    # structlog has already rendered the event
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(levelname)-8s%(reset)s %(message)s",
            reset=True,
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        )
    )
    return handler


def get_logger(name: str, **context) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, optionally bound to sync context such as
    ``profile`` or ``service_type``."""
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


def log_async_execution_time(func):
    """Log how long a coroutine method took.

    Uses the instance's ``logger`` when it has one so bound sync context
    is carried on the timing event.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        logger = getattr(args[0], "logger", None) if args else None
        if logger is None:
            logger = get_logger(func.__module__)
        start_time = time.perf_counter()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.error(
                "Timed operation failed",
                operation=func.__name__,
                seconds=round(time.perf_counter() - start_time, 4),
                error=str(e)
            )
            raise

        logger.debug(
            "Timed operation finished",
            operation=func.__name__,
            seconds=round(time.perf_counter() - start_time, 4)
        )
        return result

    return wrapper
