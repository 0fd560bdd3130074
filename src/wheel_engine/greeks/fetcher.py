"""
Rate-limited, cached Greeks fetcher.

Every key goes through the cache first. Misses (and stale hits when
``refresh_stale`` is on) become one ``FetchRequest`` each, which moves
QUEUED -> IN_FLIGHT -> SUCCEEDED | FAILED. Callers asking for the same key
concurrently share one request.

Failures never raise to the caller: the key resolves to an UNAVAILABLE
result and one error line is logged. Each attempt passes through the rate
limiter and carries its own timeout, so a stalled request cannot hold up the
rest of a batch.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import GreeksConfig
from ..exceptions import InvalidTransitionError, QuoteFetchError
from ..models import GreeksQuote, QuoteKey
from ..storage import KeyValueStore
from ..utils import get_logger
from .cache import CacheStatus, GreeksCache
from .provider import GreeksProvider
from .rate_limiter import SlidingWindowRateLimiter

logger = get_logger(__name__)


class RequestState(str, Enum):
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.QUEUED: frozenset({RequestState.IN_FLIGHT}),
    RequestState.IN_FLIGHT: frozenset({RequestState.SUCCEEDED, RequestState.FAILED}),
    RequestState.SUCCEEDED: frozenset(),
    RequestState.FAILED: frozenset(),
}


@dataclass
class FetchRequest:
    """Lifecycle of one provider request."""

    key: QuoteKey
    state: RequestState = RequestState.QUEUED
    attempts: int = 0
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def transition(self, target: RequestState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state.value, target.value)
        self.state = target

    @property
    def is_done(self) -> bool:
        return self.state in (RequestState.SUCCEEDED, RequestState.FAILED)


class ResultStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    FETCHED = "fetched"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class GreeksResult:
    """What a caller gets back for one key. ``quote`` is ``None`` only when unavailable."""

    key: QuoteKey
    quote: Optional[GreeksQuote]
    status: ResultStatus
    error: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.quote is not None

    @property
    def is_stale(self) -> bool:
        return self.status is ResultStatus.STALE

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": str(self.key),
            "status": self.status.value,
            "quote": self.quote.to_dict() if self.quote else None,
            "error": self.error,
        }


class _InFlight:
    __slots__ = ("request", "task", "waiters")

    def __init__(self, request: FetchRequest, task: asyncio.Task):
        self.request = request
        self.task = task
        self.waiters = 0


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, QuoteFetchError) and error.is_recoverable


class GreeksFetcher:
    """
    Serve Greeks from cache or from a rate-limited provider.

    Parameters
    ----------
    provider : GreeksProvider
        Source of quotes
    cache : GreeksCache
        Staleness-aware cache; successful fetches are written here
    limiter : SlidingWindowRateLimiter
        Global request budget; one instance per provider account
    request_timeout : float
        Seconds allowed for a single provider attempt
    retry_attempts : int
        Attempts per key for transient failures
    retry_backoff : float
        Multiplier of the exponential backoff between attempts, in seconds
    refresh_stale : bool
        Refetch stale hits instead of returning them marked stale
    history_size : int
        Finished and running requests kept in ``history``, newest last
    """

    def __init__(
        self,
        provider: GreeksProvider,
        cache: GreeksCache,
        limiter: SlidingWindowRateLimiter,
        request_timeout: float = 10.0,
        retry_attempts: int = 2,
        retry_backoff: float = 1.0,
        refresh_stale: bool = False,
        history_size: int = 256,
    ):
        if request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {request_timeout}")
        if retry_attempts < 1:
            raise ValueError(f"retry_attempts must be at least 1, got {retry_attempts}")
        if history_size < 1:
            raise ValueError(f"history_size must be at least 1, got {history_size}")

        self.provider = provider
        self.cache = cache
        self.limiter = limiter
        self.request_timeout = request_timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.refresh_stale = refresh_stale
        self._in_flight: dict[QuoteKey, _InFlight] = {}
        self.history: deque[FetchRequest] = deque(maxlen=history_size)

    @classmethod
    def from_config(
        cls, config: GreeksConfig, provider: GreeksProvider, store: KeyValueStore
    ) -> GreeksFetcher:
        """Wire cache, limiter and fetcher from the ``greeks`` config section."""
        cache = GreeksCache(
            store,
            stale_after=timedelta(minutes=config.stale_after_minutes),
            ttl=timedelta(minutes=config.ttl_minutes),
        )
        limiter = SlidingWindowRateLimiter(config.max_requests, config.window_seconds)
        return cls(
            provider,
            cache,
            limiter,
            request_timeout=config.request_timeout_seconds,
            retry_attempts=config.retry_attempts,
            retry_backoff=config.retry_backoff_seconds,
            refresh_stale=config.refresh_stale,
            history_size=config.history_size,
        )

    async def get(self, key: QuoteKey) -> GreeksResult:
        """Quote for one key; never raises except on cancellation."""
        lookup = self.cache.lookup(key)
        if lookup.status is CacheStatus.FRESH:
            return GreeksResult(key, lookup.quote, ResultStatus.FRESH)
        if lookup.status is CacheStatus.STALE and not self.refresh_stale:
            return GreeksResult(key, lookup.quote, ResultStatus.STALE)

        try:
            quote = await self._shared_fetch(key)
        except QuoteFetchError as e:
            if lookup.status is CacheStatus.STALE:
                return GreeksResult(key, lookup.quote, ResultStatus.STALE, error=str(e))
            return GreeksResult(key, None, ResultStatus.UNAVAILABLE, error=str(e))

        return GreeksResult(key, quote, ResultStatus.FETCHED)

    async def fetch_many(self, keys: Iterable[QuoteKey]) -> dict[QuoteKey, GreeksResult]:
        """
        Resolve a batch of keys independently.

        Duplicate keys are fetched once. A failure for one key does not
        affect the others.
        """
        unique = list(dict.fromkeys(keys))
        if not unique:
            return {}

        results = await asyncio.gather(*(self.get(key) for key in unique))
        by_key = dict(zip(unique, results))

        logger.info(
            "Greeks batch resolved",
            extra={
                "keys": len(unique),
                "fetched": sum(r.status is ResultStatus.FETCHED for r in results),
                "cached": sum(r.status in (ResultStatus.FRESH, ResultStatus.STALE) for r in results),
                "unavailable": sum(r.status is ResultStatus.UNAVAILABLE for r in results),
            },
        )
        return by_key

    def in_flight(self) -> dict[QuoteKey, RequestState]:
        return {key: flight.request.state for key, flight in self._in_flight.items()}

    async def _shared_fetch(self, key: QuoteKey) -> GreeksQuote:
        flight = self._in_flight.get(key)
        if flight is None:
            request = FetchRequest(key)
            task = asyncio.ensure_future(self._run(request))
            flight = _InFlight(request, task)
            self._in_flight[key] = flight
            self.history.append(request)
            task.add_done_callback(lambda t, k=key, f=flight: self._release(k, f, t))

        flight.waiters += 1
        try:
            # Shielded so a dispatched request finishes and lands in the cache
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            if flight.waiters == 1 and flight.request.state is RequestState.QUEUED:
                flight.task.cancel()
                logger.debug("Dropped queued Greeks request", extra={"key": str(key)})
            raise
        finally:
            flight.waiters -= 1

    def _release(self, key: QuoteKey, flight: _InFlight, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is flight:
            del self._in_flight[key]
        # Failures were already logged; mark them retrieved for abandoned requests
        if not task.cancelled():
            task.exception()

    async def _attempt(self, request: FetchRequest) -> GreeksQuote:
        await self.limiter.acquire()
        if request.state is RequestState.QUEUED:
            request.transition(RequestState.IN_FLIGHT)
        request.attempts += 1

        try:
            return await asyncio.wait_for(
                self.provider.fetch(request.key), timeout=self.request_timeout
            )
        except asyncio.TimeoutError as e:
            raise QuoteFetchError(
                f"Request for {request.key} timed out after {self.request_timeout}s",
                is_recoverable=True,
            ) from e

    def _log_retry(self, retry_state: Any) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.debug(
            "Retrying Greeks request",
            extra={"attempt": retry_state.attempt_number, "error": str(error)},
        )

    async def _run(self, request: FetchRequest) -> GreeksQuote:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=60),
            retry=retry_if_exception(_is_transient),
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    quote = await self._attempt(request)
        except QuoteFetchError as e:
            self._fail(request, str(e), status=e.status)
            raise
        except Exception as e:
            # Provider bugs are isolated to their key like any other failure
            self._fail(request, f"{type(e).__name__}: {e}", status=None, exc_info=True)
            raise QuoteFetchError(f"Unexpected provider error for {request.key}: {e}") from e

        self.cache.put(request.key, quote)
        request.transition(RequestState.SUCCEEDED)
        logger.debug(
            "Greeks fetched",
            extra={"key": str(request.key), "attempts": request.attempts},
        )
        return quote

    def _fail(
        self,
        request: FetchRequest,
        message: str,
        status: Optional[int],
        exc_info: bool = False,
    ) -> None:
        request.error = message
        if request.state is RequestState.IN_FLIGHT:
            request.transition(RequestState.FAILED)
        logger.error(
            "Greeks unavailable",
            extra={
                "key": str(request.key),
                "attempts": request.attempts,
                "status": status,
                "error": message,
            },
            exc_info=exc_info,
        )
