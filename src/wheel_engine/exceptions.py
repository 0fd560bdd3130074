"""
Engine exceptions with self-recovery hints.

Only ``StoreInitializationError`` and ``ConfigurationError`` are meant to reach
callers; everything else is recovered where it is raised.
"""

from __future__ import annotations


class WheelEngineError(Exception):
    """Base engine exception."""

    def __init__(
        self,
        message: str,
        recovery_action: str | None = None,
        is_recoverable: bool = True,
    ):
        super().__init__(message)
        self.recovery_action = recovery_action
        self.is_recoverable = is_recoverable


class LegValidationError(WheelEngineError):
    """A raw leg record could not be normalized."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(
            message,
            recovery_action="Skipping leg, remaining legs are still analyzed",
            is_recoverable=True,
        )


class QuoteFetchError(WheelEngineError):
    """Market data provider request failed.

    ``is_recoverable`` marks transient failures (timeouts, connection errors,
    HTTP 429/5xx) that are worth another attempt.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        is_recoverable: bool = False,
    ):
        self.status = status
        recovery = "Retrying request" if is_recoverable else "Marking Greeks unavailable"
        super().__init__(message, recovery_action=recovery, is_recoverable=is_recoverable)


class RateLimitExceeded(WheelEngineError):
    """Request budget exhausted for the current window."""

    def __init__(self, retry_after: float | None = None, message: str = "Rate limit exceeded"):
        self.retry_after = retry_after
        recovery = f"Queued for {retry_after:.1f}s" if retry_after else "Queued until window opens"
        super().__init__(message, recovery_action=recovery, is_recoverable=True)


class CacheCorruptionError(WheelEngineError):
    """Persisted cache data could not be read."""

    def __init__(self, message: str = "Cache store is unreadable"):
        super().__init__(
            message, recovery_action="Starting with an empty cache", is_recoverable=True
        )


class StoreInitializationError(WheelEngineError):
    """Persistent store could not be opened at all."""

    def __init__(self, message: str = "Cache store could not be opened"):
        super().__init__(
            message,
            recovery_action="Check storage.path permissions or use the memory backend",
            is_recoverable=False,
        )


class InvalidTransitionError(WheelEngineError):
    """Fetch request moved through an illegal state transition."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move request from {current} to {target}", is_recoverable=False
        )


class ConfigurationError(WheelEngineError):
    """Configuration file or overrides are invalid."""

    def __init__(self, message: str):
        super().__init__(
            message, recovery_action="Fix the configuration and retry", is_recoverable=False
        )
