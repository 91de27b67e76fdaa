"""Structured logging for the storefront services.

Store round trips and cache operations are logged through ``log_query`` and
``log_cache_operation`` so every line carries the table and key family it
touched. Reads log at debug; invalidations log at info.
"""

import sys
import structlog
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from core.config import Settings

SLOW_QUERY_MS = 250

# Cache operations that remove entries
INVALIDATING_OPERATIONS = frozenset({"delete", "clear_pattern"})

# Driver chatter stays out of request logs
QUIET_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "sqlalchemy.pool", "asyncio")


def _handlers(settings: Settings, level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def _renderer_chain(settings: Settings) -> list:
    """Timestamp first, renderer last; JSON output also names the logger."""
    if settings.log_format == "json":
        return [
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.processors.TimeStamper(fmt="%H:%M:%S"),
        structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=35,
            exception_formatter=structlog.dev.plain_traceback
        ),
    ]


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging with the configured level and format."""
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", level=level, handlers=_handlers(settings, level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    *stampers, renderer = _renderer_chain(settings)
    structlog.configure(
        processors=[
            *stampers,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_query(logger: structlog.BoundLogger, operation: str, table: str,
              start_time: float, end_time: float, rows: Optional[int] = None,
              **kwargs) -> None:
    """Log one store round trip; slow ones are raised to warning."""
    elapsed_ms = round((end_time - start_time) * 1000, 2)
    log_data = {"operation": operation, "table": table, "execution_time_ms": elapsed_ms, **kwargs}
    if rows is not None:
        log_data["rows"] = rows

    if elapsed_ms >= SLOW_QUERY_MS:
        logger.warning("Slow store query", **log_data)
    else:
        logger.debug("Store query", **log_data)


def describe_cache_key(key: str, prefix: str = "query:") -> Dict[str, str]:
    """Name the key family (and table, for query-layer keys) of a key or glob.

    ``query:products:id:p1`` is an ``entity`` key of ``products``,
    ``query:products:derived:*`` a ``derived`` pattern, ``query:raw:...`` a
    ``raw`` result. Other keys are named by their first segment
    (``cart``, ``campaign``, ``ui_config``...).
    """
    if not key.startswith(prefix):
        return {"key_family": key.split(":", 1)[0]}

    table, _, rest = key[len(prefix):].partition(":")
    if table == "raw":
        return {"key_family": "raw"}
    kind = rest.split(":", 1)[0]
    if kind == "id":
        family = "entity"
    elif kind == "derived":
        family = "derived"
    else:
        family = "table"
    return {"key_family": family, "table": table}


def log_cache_operation(logger: structlog.BoundLogger, operation: str, key: str,
                        hit: Optional[bool] = None, prefix: str = "query:",
                        **kwargs: Any) -> None:
    """Log a cache read, write or invalidation against one key or pattern."""
    log_data = {
        "operation": operation,
        "cache_key": key,
        **describe_cache_key(key, prefix),
        **kwargs
    }
    if hit is not None:
        log_data["cache_hit"] = hit

    if operation in INVALIDATING_OPERATIONS:
        logger.info("Cache invalidated", **log_data)
    else:
        logger.debug("Cache operation", **log_data)
