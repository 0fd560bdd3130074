"""Tests for the Polygon Greeks provider."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from aiohttp import test_utils, web

from wheel_engine.exceptions import QuoteFetchError
from wheel_engine.greeks import PolygonGreeksProvider, is_transient_status, parse_snapshot
from wheel_engine.models import OptionKind, QuoteKey

KEY = QuoteKey("IBIT", 61.0, date(2025, 7, 18), OptionKind.CALL)

SNAPSHOT = {
    "status": "OK",
    "results": [
        {
            "details": {"strike_price": 61, "contract_type": "call"},
            "greeks": {"delta": 0.4231, "gamma": 0.051, "theta": -0.032, "vega": 0.071},
            "implied_volatility": 0.553,
            "last_quote": {"last_updated": 1751380200000000000},
        }
    ],
}


class TestParseSnapshot:
    def test_full_snapshot(self) -> None:
        quote = parse_snapshot(KEY, SNAPSHOT)
        assert quote.delta == 0.4231
        assert quote.gamma == 0.051
        assert quote.theta == -0.032
        assert quote.implied_volatility == 0.553
        assert quote.fetched_at == datetime(2025, 7, 1, 14, 30, tzinfo=timezone.utc)

    def test_missing_greeks_are_none(self) -> None:
        quote = parse_snapshot(KEY, {"results": [{"implied_volatility": 0.5}]})
        assert quote.delta is None
        assert quote.implied_volatility == 0.5
        assert quote.fetched_at.tzinfo is not None

    @pytest.mark.parametrize("payload", [{"results": []}, {}, [], "oops"])
    def test_no_contract(self, payload: object) -> None:
        with pytest.raises(QuoteFetchError) as exc_info:
            parse_snapshot(KEY, payload)
        assert not exc_info.value.is_recoverable

    def test_out_of_range_greeks(self) -> None:
        with pytest.raises(QuoteFetchError, match="invalid Greeks"):
            parse_snapshot(KEY, {"results": [{"greeks": {"delta": 3.0}}]})


@pytest.mark.parametrize(
    "status,expected", [(429, True), (500, True), (503, True), (400, False), (403, False), (404, False)]
)
def test_is_transient_status(status: int, expected: bool) -> None:
    assert is_transient_status(status) is expected


def test_request_params() -> None:
    provider = PolygonGreeksProvider(api_key="secret")
    assert provider.request_params(KEY) == {
        "strike_price": "61",
        "expiration_date": "2025-07-18",
        "contract_type": "call",
        "limit": "1",
        "apiKey": "secret",
    }


def _app() -> web.Application:
    async def snapshot(request: web.Request) -> web.Response:
        symbol = request.match_info["symbol"]
        if symbol == "BUSY":
            return web.json_response({"status": "ERROR"}, status=503)
        if symbol == "GONE":
            return web.json_response({"status": "NOT_FOUND"}, status=404)
        if symbol == "JUNK":
            return web.Response(text="<html>", content_type="text/html")
        assert request.query["apiKey"] == "secret"
        assert request.query["contract_type"] == "call"
        return web.json_response(SNAPSHOT)

    app = web.Application()
    app.router.add_get("/v3/snapshot/options/{symbol}", snapshot)
    return app


class TestPolygonHttp:
    """Requests against a local test server."""

    @pytest.mark.asyncio
    async def test_fetch(self) -> None:
        server = test_utils.TestServer(_app())
        await server.start_server()
        try:
            base_url = f"http://{server.host}:{server.port}"
            async with PolygonGreeksProvider(api_key="secret", base_url=base_url) as provider:
                quote = await provider.fetch(KEY)
            assert quote.delta == 0.4231
        finally:
            await server.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol,recoverable", [("BUSY", True), ("GONE", False), ("JUNK", False)])
    async def test_fetch_errors(self, symbol: str, recoverable: bool) -> None:
        server = test_utils.TestServer(_app())
        await server.start_server()
        key = QuoteKey(symbol, 61.0, date(2025, 7, 18), OptionKind.CALL)
        try:
            base_url = f"http://{server.host}:{server.port}"
            async with PolygonGreeksProvider(api_key="secret", base_url=base_url) as provider:
                with pytest.raises(QuoteFetchError) as exc_info:
                    await provider.fetch(key)
            assert exc_info.value.is_recoverable is recoverable
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_connection_refused_is_recoverable(self) -> None:
        server = test_utils.TestServer(_app())
        await server.start_server()
        base_url = f"http://{server.host}:{server.port}"
        await server.close()

        async with PolygonGreeksProvider(api_key="secret", base_url=base_url) as provider:
            with pytest.raises(QuoteFetchError) as exc_info:
                await provider.fetch(KEY)
        assert exc_info.value.is_recoverable

    @pytest.mark.asyncio
    async def test_missing_api_key(self) -> None:
        async with PolygonGreeksProvider() as provider:
            with pytest.raises(QuoteFetchError, match="API key"):
                await provider.fetch(KEY)

    @pytest.mark.asyncio
    async def test_session_required(self) -> None:
        provider = PolygonGreeksProvider(api_key="secret")
        with pytest.raises(RuntimeError, match="not initialized"):
            await provider.fetch(KEY)
