"""
Logging for the catalog: correlation IDs, per-operation log context,
formatters and call timings.

Usage:
    from catalog.observability import setup_logging, get_logger, operation_scope

    # At startup:
    setup_logging(config.logging)

    # In modules:
    logger = get_logger(__name__)

    # Around one coordinator operation or import run:
    with operation_scope("add_project", owner=owner):
        logger.info("Adding project")
"""
import logging
import json
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from catalog.config import LoggingConfig

# ID shared by every log line of one logical operation
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Fields attached to every log line inside an operation_scope
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "asctime", "taskName"
}

# Third-party loggers that are only interesting at WARNING and above
NOISY_LOGGERS = ("httpx", "httpcore", "duckdb")


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def generate_correlation_id() -> str:
    return str(uuid.uuid4())[:8]


class correlation_context:
    """
    Set the correlation ID for the enclosed block.

    Nested contexts keep the outer ID, so one import run shares a single ID
    across all of the coordinator calls it makes.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or get_correlation_id() or generate_correlation_id()
        self.token = None

    def __enter__(self):
        self.token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, *args):
        _correlation_id.reset(self.token)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


@contextmanager
def operation_scope(action: str, **fields: Any) -> Iterator[str]:
    """
    Run one catalog operation under a correlation ID with ``action`` and
    ``fields`` attached to its log lines.

    An inner scope keeps the outer correlation ID and action; its fields are
    added on top and dropped again on exit.
    """
    outer = _log_context.get()
    scoped = {"action": action, **fields, **{k: v for k, v in outer.items() if k == "action"}}
    token = _log_context.set({**outer, **scoped})
    try:
        with correlation_context() as correlation_id:
            yield correlation_id
    finally:
        _log_context.reset(token)


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: v for k, v in record.__dict__.items()
        if k not in _STANDARD_ATTRS and not k.startswith("_")
    }


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line: timestamp, level, logger, message, then the
    correlation ID, the operation scope fields and any record extras.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": _record_time(record).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        log_entry.update(_log_context.get())
        log_entry.update(_record_extras(record))

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Format: TIMESTAMP - LEVEL - LOGGER [CORRELATION_ID] ACTION - MESSAGE | extras
    """

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        correlation_str = f" [{correlation_id}]" if correlation_id else ""

        context = _log_context.get()
        action = context.get("action")
        action_str = f" {action}" if action else ""

        timestamp = _record_time(record).strftime("%Y-%m-%d %H:%M:%S")
        base_msg = (
            f"{timestamp} - {record.levelname:8} - {record.name}"
            f"{correlation_str}{action_str} - {record.getMessage()}"
        )

        extras = {k: v for k, v in context.items() if k != "action"}
        extras.update(_record_extras(record))
        if extras:
            base_msg += f" | {extras}"

        if record.exc_info:
            base_msg += f"\n{self.formatException(record.exc_info)}"

        return base_msg


def setup_logging(
    logging_config: Optional[LoggingConfig] = None,
    level: Optional[str] = None,
    include_libs: bool = False
) -> None:
    """
    Configure the root logger.

    Args:
        logging_config: Level and format; defaults come from the environment
        level: Overrides ``logging_config.level`` (e.g. from ``--log-level``)
        include_libs: Also log httpx/httpcore/duckdb below WARNING
    """
    logging_config = logging_config or LoggingConfig()

    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter() if logging_config.json_format else HumanReadableFormatter()
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, (level or logging_config.level).upper()))

    if not include_libs:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING
# ═══════════════════════════════════════════════════════════════════════════════

class Timer:
    """
    Time a block and log it: DEBUG normally, WARNING past ``slow_ms``.

    Usage:
        with Timer("remote_get_projects", logger) as t:
            projects = await remote.list_projects()
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None, slow_ms: float = 1000):
        self.name = name
        self.logger = logger
        self.slow_ms = slow_ms
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        if self.logger:
            level = logging.WARNING if self.elapsed_ms > self.slow_ms else logging.DEBUG
            self.logger.log(
                level,
                f"{self.name} completed",
                extra={"timer": self.name, "duration_ms": round(self.elapsed_ms, 2)}
            )
