"""
Structured logging for xr-zeroshot.

Configures structlog on top of the stdlib logging module so that library
loggers and our own share one output stream. Call ``setup_logging`` once from
the embedding application; modules create loggers with::

    from xr_zeroshot.core.logging import ZeroShotLogger

    logger = ZeroShotLogger(__name__)
    logger.info("Asset uploaded", asset_id=asset_id)
"""

import logging
import sys
from typing import Any

import structlog


def setup_logging(json_logs: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        json_logs: Render one JSON object per line instead of console output
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


class ZeroShotLogger:
    """Thin wrapper around a structlog logger bound to a module name."""

    def __init__(self, name: str | None = None):
        self._logger = structlog.get_logger(name)

    def bind(self, **kwargs: Any) -> "ZeroShotLogger":
        bound = ZeroShotLogger.__new__(ZeroShotLogger)
        bound._logger = self._logger.bind(**kwargs)
        return bound

    def debug(self, event: str, *args: Any, **kwargs: Any) -> None:
        self._logger.debug(event, *args, **kwargs)

    def info(self, event: str, *args: Any, **kwargs: Any) -> None:
        self._logger.info(event, *args, **kwargs)

    def warning(self, event: str, *args: Any, **kwargs: Any) -> None:
        self._logger.warning(event, *args, **kwargs)

    def error(self, event: str, *args: Any, **kwargs: Any) -> None:
        self._logger.error(event, *args, **kwargs)

    def exception(self, event: str, *args: Any, **kwargs: Any) -> None:
        self._logger.exception(event, *args, **kwargs)
