"""structlog setup and per-operation log brackets for spacesafe.

Every CLI invocation gets a request ID bound to all of its log entries.
Operations against the backend services are bracketed with
``operation_logging_context`` so a single ``grep`` on ``location_id`` shows
the start, each failed strategy attempt, and the terminal outcome.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

    from spacesafe.resilience.models import ExecutionResult

# ---------------------------------------------------------------------------
# Request ID
# ---------------------------------------------------------------------------


def generate_request_id() -> str:
    """Generate a unique identifier for one logical client invocation.

    Returns:
        A UUID4 string.
    """
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# structlog configuration
# ---------------------------------------------------------------------------


_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Transport libraries log one line per request at INFO
_HTTP_LOGGERS = ("httpx", "httpcore")


def _renderers(fmt: str) -> list[structlog.types.Processor]:
    if fmt == "json":
        # Tracebacks become a string field instead of a bare exc_info flag
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | Path | None = None,
    request_id: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Output always goes to stderr so command output on stdout stays clean;
    ``log_file`` adds a second handler (its directory is created). httpx
    and httpcore request logs are only let through at DEBUG.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: ``"console"`` for human-readable or ``"json"`` for one JSON
            object per line.
        log_file: Optional file path for log output.
        request_id: Optional request ID bound to every entry.

    Raises:
        ValueError: If ``level`` is not a recognized log level.
    """
    level_name = level.upper()
    if level_name not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)
    numeric_level = getattr(logging, level_name)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderers(fmt),
        ],
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    http_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    if request_id:
        structlog.contextvars.bind_contextvars(request_id=request_id)


# ---------------------------------------------------------------------------
# Operation logging context manager
# ---------------------------------------------------------------------------


@dataclass
class OperationOutcome:
    """Terminal outcome of a logged operation, filled in by the caller.

    ``success`` stays ``None`` when the caller never reports an outcome;
    the operation then closes with a plain ``operation_end``.
    """

    log: structlog.stdlib.BoundLogger
    success: bool | None = None
    strategy: str | None = None
    attempts: int = 0
    error: str | None = None

    def record(self, result: ExecutionResult) -> None:
        """Copy the outcome of an executor run."""
        self.success = result.success
        self.strategy = result.strategy
        self.attempts = len(result.attempts)
        self.error = result.error

    def succeed(self, strategy: str | None = None) -> None:
        self.success = True
        self.strategy = strategy
        self.attempts = max(self.attempts, 1)


@contextmanager
def operation_logging_context(
    operation: str,
    **extra: Any,
) -> Iterator[OperationOutcome]:
    """Context manager that brackets one client operation in the logs.

    Binds the operation name (plus identifiers such as ``location_id``) to
    every entry emitted inside the context, including the executor's
    per-attempt warnings. On exit it logs the recorded outcome:
    ``operation_failed`` at warning level when the caller recorded a
    failure, ``operation_end`` otherwise, and ``operation_error`` with the
    traceback when an exception escapes. Every closing event carries
    ``duration_ms``.

    Args:
        operation: Logical operation name (e.g. ``"unassign_technician"``).
        **extra: Additional key-value pairs to bind.

    Yields:
        An ``OperationOutcome`` to record the result on.

    Example::

        with operation_logging_context("unassign_technician", location_id=lid) as outcome:
            result = await executor.execute("unassign_technician", strategies)
            outcome.record(result)
    """
    structlog.contextvars.bind_contextvars(operation=operation, **extra)

    log: structlog.stdlib.BoundLogger = structlog.get_logger(operation)
    log.info("operation_start", operation=operation)
    outcome = OperationOutcome(log=log)
    started = time.monotonic()

    def _elapsed_ms() -> int:
        return round((time.monotonic() - started) * 1000)

    try:
        yield outcome
    except Exception:
        log.exception("operation_error", operation=operation, duration_ms=_elapsed_ms())
        raise
    else:
        fields = {
            "operation": operation,
            "strategy": outcome.strategy,
            "attempts": outcome.attempts,
            "duration_ms": _elapsed_ms(),
        }
        if outcome.success is False:
            log.warning("operation_failed", error=outcome.error, **fields)
        else:
            log.info("operation_end", success=outcome.success, **fields)
    finally:
        structlog.contextvars.unbind_contextvars("operation", *extra.keys())
