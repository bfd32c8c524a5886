"""
Structured logging.

Every record is one JSON object with the same top-level keys, so the
collector can filter on them directly:

    {"ts", "level", "module", "action", "msg", ...context}

Context comes from two places: keyword arguments on the call, and fields
bound for the duration of an operation with log_context(). Bound fields
live in structlog's contextvars, so they follow the current asyncio task
and never leak between concurrent requests.

USAGE
=====
from specsynth.utils.logging import log, get_logger, log_context

MODULE = "synthesis"
logger = get_logger()

with log_context(shopify_handle=handle, operation="generate"):
    log.info(logger, MODULE, "generate_start", "Generating AI synthesis", sources=3)

QUERIES
=======
{project="specsynth"} | json | shopify_handle="acme-snuff"
{project="specsynth"} | json | module="llm.client" action="completion_retry"

Action names end in _start, _done, _failed, _retry or _skipped.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from structlog.contextvars import bound_contextvars, get_contextvars

SERVICE = "specsynth"
BASE_KEYS = ("ts", "level", "module", "action", "msg")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; `pretty` renders a single readable line instead."""

    def __init__(self, pretty: bool = False):
        super().__init__()
        self.pretty = pretty

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": _timestamp(),
            "level": record.levelname,
            "module": getattr(record, "_module", record.name),
            "action": getattr(record, "_action", "log"),
            "msg": record.getMessage(),
        }
        data.update({k: v for k, v in get_contextvars().items() if v is not None})
        data.update(getattr(record, "_extra", {}))
        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)

        if self.pretty:
            return self._line(data)
        return json.dumps(data, default=str, separators=(",", ":"))

    @staticmethod
    def _line(data: dict) -> str:
        head = "{} {} [{:<14}] {}: {}".format(
            data["ts"][11:23], data["level"][0], data["module"][:14], data["action"], data["msg"],
        )
        ctx = " ".join(f"{k}={v}" for k, v in data.items() if k not in BASE_KEYS)
        return f"{head} | {ctx}" if ctx else head


class StructuredLogger:
    """log.<level>(logger, module, action, msg, **context)

    None-valued context fields are dropped.
    """

    def _emit(self, logger: logging.Logger, level: int, module: str, action: str,
              msg: str, fields: dict) -> None:
        if not logger.isEnabledFor(level):
            return
        logger.log(level, msg, extra={
            "_module": module,
            "_action": action,
            "_extra": {k: v for k, v in fields.items() if v is not None},
        })

    def debug(self, logger: logging.Logger, module: str, action: str, msg: str, **kwargs) -> None:
        self._emit(logger, logging.DEBUG, module, action, msg, kwargs)

    def info(self, logger: logging.Logger, module: str, action: str, msg: str, **kwargs) -> None:
        self._emit(logger, logging.INFO, module, action, msg, kwargs)

    def warning(self, logger: logging.Logger, module: str, action: str, msg: str, **kwargs) -> None:
        self._emit(logger, logging.WARNING, module, action, msg, kwargs)

    def error(
        self,
        logger: logging.Logger,
        module: str,
        action: str,
        msg: str,
        error: Optional[str] = None,
        error_type: Optional[str] = None,
        **kwargs,
    ) -> None:
        """ERROR level; `error`/`error_type` are the conventional failure fields."""
        kwargs.update(error=error, error_type=error_type)
        self._emit(logger, logging.ERROR, module, action, msg, kwargs)


log = StructuredLogger()


def get_logger() -> logging.Logger:
    return logging.getLogger(SERVICE)


@contextmanager
def log_context(**fields) -> Iterator[None]:
    """Attach fields to every record emitted inside the block."""
    with bound_contextvars(**{k: v for k, v in fields.items() if v is not None}):
        yield


# Libraries that log per request or per statement at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy", "aiosqlite", "asyncio", "uvicorn.access")


def configure_logging() -> None:
    """Install the structured handler on the root logger. Call once at startup.

    LOG_FORMAT: "json" (default) or "pretty"
    LOG_LEVEL:  "INFO" (default), "DEBUG", "WARNING", "ERROR"
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(pretty=os.environ.get("LOG_FORMAT", "json") == "pretty"))

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
