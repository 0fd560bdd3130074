from .logging import (
    PerformanceLogger,
    StructuredFormatter,
    StructuredLogger,
    clear_execution_context,
    get_logger,
    run_context,
    run_id,
    set_execution_context,
    setup_structured_logging,
    timed_operation,
)

__all__ = [
    "StructuredLogger",
    "StructuredFormatter",
    "PerformanceLogger",
    "get_logger",
    "run_id",
    "run_context",
    "setup_structured_logging",
    "set_execution_context",
    "clear_execution_context",
    "timed_operation",
]
