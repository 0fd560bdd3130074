"""Structured logging for analysis runs.

Every message is rendered as one JSON object carrying the module, the
current run id, any bound run context and the caller's ``extra`` fields, so
a run can be reconstructed from the log alone.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from collections.abc import Callable, Iterator, MutableMapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, TypeVar

run_id: ContextVar[str | None] = ContextVar("run_id", default=None)
execution_context: ContextVar[dict[str, Any] | None] = ContextVar(
    "execution_context", default=None
)

F = TypeVar("F", bound=Callable[..., Any])

# Attributes every LogRecord already has; ``extra`` keys may not shadow them
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StructuredLogger(logging.LoggerAdapter):
    """Logger adapter that renders the message, run context and ``extra`` as JSON."""

    def __init__(self, logger: logging.Logger, extra: dict[str, Any] | None = None):
        super().__init__(logger, extra or {})

    def bind(self, **fields: Any) -> StructuredLogger:
        """Child logger that adds ``fields`` to every message."""
        return StructuredLogger(self.logger, {**self.extra, **fields})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        entry: dict[str, Any] = {"timestamp": _utc_now(), "message": msg, "module": self.logger.name}

        current_run = run_id.get()
        if current_run:
            entry["run_id"] = current_run

        ctx = execution_context.get()
        if ctx:
            entry["context"] = dict(ctx)

        entry.update(self.extra)

        extra = kwargs.pop("extra", None) or {}
        dropped = sorted(k for k in extra if k in _RECORD_ATTRIBUTES)
        entry.update({k: v for k, v in extra.items() if k not in _RECORD_ATTRIBUTES})
        if dropped:
            entry["dropped_fields"] = dropped

        try:
            return json.dumps(entry, default=str), kwargs
        except (TypeError, ValueError) as e:
            return f"Structured logging error: {e} - Original message: {msg}", kwargs


class PerformanceLogger:
    """Time a block; warn when it runs past ``threshold_ms``."""

    def __init__(self, operation: str, logger: StructuredLogger, threshold_ms: float = 200):
        self.operation = operation
        self.logger = logger
        self.threshold_ms = threshold_ms
        self.duration_ms: float | None = None
        self.metadata: dict[str, Any] = {}
        self._start = 0.0

    def __enter__(self) -> PerformanceLogger:
        self._start = time.perf_counter()
        return self

    def add_metadata(self, **kwargs: Any) -> None:
        self.metadata.update(kwargs)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        fields = {
            "operation": self.operation,
            "duration_ms": round(self.duration_ms, 2),
            "status": "failed" if exc_type else "completed",
            **self.metadata,
        }
        if exc_type:
            fields["error_type"] = exc_type.__name__
            fields["error"] = str(exc_val)

        if self.duration_ms > self.threshold_ms:
            self.logger.warning(
                f"{self.operation} exceeded {self.threshold_ms:.0f}ms", extra=fields
            )
        else:
            self.logger.debug(f"{self.operation} completed", extra=fields)


def timed_operation(threshold_ms: float = 200) -> Callable[[F], F]:
    """
    Log how long the decorated call took.

    Works for plain and ``async`` callables. Sized results (lists, tuples,
    dicts) also report their length.
    """

    def decorator(func: F) -> F:
        operation = func.__qualname__
        logger = get_logger(func.__module__)

        if asyncio.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with PerformanceLogger(operation, logger, threshold_ms):
                    return await func(*args, **kwargs)

            return async_wrapper  # type: ignore

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with PerformanceLogger(operation, logger, threshold_ms) as perf:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple, dict)):
                    perf.add_metadata(result_size=len(result))
                return result

        return wrapper  # type: ignore

    return decorator


class StructuredFormatter(logging.Formatter):
    """Emit JSON for every record, including ones from third-party loggers."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Any = None
        if isinstance(record.msg, str) and record.msg.startswith("{"):
            try:
                payload = json.loads(record.msg)
            except ValueError:
                payload = None

        if not isinstance(payload, dict):
            payload = {"timestamp": _utc_now(), "module": record.name, "message": record.getMessage()}

        payload.setdefault("level", record.levelname)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_structured_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    include_stdout: bool = True,
    log_format: str = "json",
) -> None:
    """
    Configure the root logger.

    Console output goes to stderr so JSON results on stdout stay clean.
    Without any handler a ``NullHandler`` keeps the last-resort handler quiet.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    if log_format == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    if include_stdout:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name))


def set_execution_context(**kwargs: Any) -> None:
    """Merge ``kwargs`` into the context attached to every message."""
    ctx = dict(execution_context.get() or {})
    ctx.update(kwargs)
    execution_context.set(ctx)


def clear_execution_context() -> None:
    execution_context.set(None)
    run_id.set(None)


@contextmanager
def run_context(current_run: str, **fields: Any) -> Iterator[None]:
    """Tag every message inside the block with ``current_run`` and ``fields``."""
    run_token = run_id.set(current_run)
    ctx_token = execution_context.set({**(execution_context.get() or {}), **fields})
    try:
        yield
    finally:
        execution_context.reset(ctx_token)
        run_id.reset(run_token)
