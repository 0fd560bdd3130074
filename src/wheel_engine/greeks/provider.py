"""
Market data providers for option Greeks.

The provider only translates one request into one quote or one
``QuoteFetchError``. Rate limiting, retries, timeouts and caching are the
fetcher's job.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from aiohttp import ClientError, ClientSession, ClientTimeout

from ..exceptions import QuoteFetchError
from ..models import GreeksQuote, QuoteKey, format_strike
from ..utils import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.polygon.io"


class GreeksProvider(Protocol):
    """Anything that can produce a quote for one contract."""

    async def fetch(self, key: QuoteKey) -> GreeksQuote: ...


def is_transient_status(status: int) -> bool:
    """Throttling and server errors are worth retrying; other 4xx are not."""
    return status == 429 or status >= 500


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_snapshot(key: QuoteKey, payload: Any) -> GreeksQuote:
    """
    Build a quote from a Polygon ``/v3/snapshot/options`` response.

    Raises
    ------
    QuoteFetchError
        Permanent error when the response holds no usable contract
    """
    if not isinstance(payload, dict):
        raise QuoteFetchError(f"Unexpected response body for {key}")

    results = payload.get("results") or []
    if isinstance(results, dict):
        results = [results]
    if not results:
        raise QuoteFetchError(f"No option contract found for {key}")

    option = results[0]
    greeks = option.get("greeks") or {}
    updated_ns = (option.get("last_quote") or {}).get("last_updated")
    fetched_at = (
        datetime.fromtimestamp(updated_ns / 1e9, tz=timezone.utc)
        if isinstance(updated_ns, (int, float)) and updated_ns > 0
        else datetime.now(timezone.utc)
    )

    try:
        return GreeksQuote(
            delta=_optional_float(greeks.get("delta")),
            gamma=_optional_float(greeks.get("gamma")),
            theta=_optional_float(greeks.get("theta")),
            vega=_optional_float(greeks.get("vega")),
            implied_volatility=_optional_float(option.get("implied_volatility")),
            fetched_at=fetched_at,
        )
    except ValueError as e:
        raise QuoteFetchError(f"Provider returned invalid Greeks for {key}: {e}") from e


class PolygonGreeksProvider:
    """
    Polygon.io options snapshot client.

    Use as an async context manager so the HTTP session is closed::

        async with PolygonGreeksProvider(api_key="...") as provider:
            quote = await provider.fetch(key)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = ClientTimeout(total=timeout)
        self._session: Optional[ClientSession] = None

        logger.info(
            "Polygon provider initialized",
            extra={"base_url": self.base_url, "has_api_key": bool(api_key)},
        )

    async def __aenter__(self) -> PolygonGreeksProvider:
        self._session = ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError(
                "Provider not initialized. Use 'async with PolygonGreeksProvider() as provider:'"
            )
        return self._session

    def request_params(self, key: QuoteKey) -> dict[str, str]:
        params = {
            "strike_price": format_strike(key.strike),
            "expiration_date": key.expiry.isoformat(),
            "contract_type": key.kind.value.lower(),
            "limit": "1",
        }
        if self.api_key:
            params["apiKey"] = self.api_key
        return params

    async def fetch(self, key: QuoteKey) -> GreeksQuote:
        """Fetch the snapshot for one contract."""
        if not self.api_key:
            raise QuoteFetchError("Polygon API key is not configured")

        url = f"{self.base_url}/v3/snapshot/options/{key.symbol}"
        logger.debug("Polygon request", extra={"key": str(key)})

        try:
            async with self.session.get(url, params=self.request_params(key)) as response:
                if response.status >= 400:
                    raise QuoteFetchError(
                        f"Polygon returned HTTP {response.status} for {key}",
                        status=response.status,
                        is_recoverable=is_transient_status(response.status),
                    )
                payload = await response.json(content_type=None)
        except (ClientError, asyncio.TimeoutError) as e:
            raise QuoteFetchError(
                f"Polygon request failed for {key}: {e}", is_recoverable=True
            ) from e
        except ValueError as e:
            raise QuoteFetchError(f"Polygon returned invalid JSON for {key}: {e}") from e

        return parse_snapshot(key, payload)
