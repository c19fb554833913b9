"""
Test suite for backend/myquant/services/quote_fetcher.py
"""
import httpx
import pytest

from myquant.schemas.market import ChartResponse
from myquant.services.price_cache import PriceCache
from myquant.services.quote_fetcher import QuoteFetcher, snapshot_from_series

BASE = "https://chart.test/v8/finance/chart"


def _chart(price=None, prev=None, closes=None, chart_prev=None):
    return {
        "chart": {
            "result": [{
                "meta": {
                    "symbol": "X",
                    "longName": "X Holdings",
                    "regularMarketPrice": price,
                    "previousClose": prev,
                    "chartPreviousClose": chart_prev,
                },
                "timestamp": list(range(len(closes or []))),
                "indicators": {"quote": [{"close": closes or []}]},
            }],
            "error": None,
        }
    }


def _fetcher(handler, cache=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return QuoteFetcher(client, cache=cache, base_url=BASE, lookback_days=7, max_concurrency=2)


class TestSnapshotFromSeries:

    def test_null_closes_are_dropped_not_zero(self):
        result = ChartResponse.model_validate(
            _chart(price=110.0, prev=108.0, closes=[None, 100.0, None, 105.0, 110.0])
        ).first()
        snap = snapshot_from_series(result)
        assert snap.week_ago == 100.0
        assert snap.weekly_change == 10.0
        assert snap.weekly_change_percent == pytest.approx(10.0)

    def test_current_falls_back_to_last_close(self):
        result = ChartResponse.model_validate(_chart(closes=[50.0, 52.0])).first()
        snap = snapshot_from_series(result)
        assert snap.current == 52.0
        assert snap.previous_close == 52.0

    def test_week_ago_zero_gives_zero_percent(self):
        result = ChartResponse.model_validate(_chart(price=5.0, prev=5.0, closes=[0.0, 5.0])).first()
        snap = snapshot_from_series(result)
        assert snap.week_ago == 0.0
        assert snap.weekly_change_percent == 0.0

    def test_previous_close_uses_chart_previous_close(self):
        result = ChartResponse.model_validate(_chart(price=10.0, chart_prev=8.0, closes=[9.0, 10.0])).first()
        snap = snapshot_from_series(result)
        assert snap.previous_close == 8.0
        assert snap.daily_change_percent == pytest.approx(25.0)


class TestFetchPrices:

    @pytest.mark.asyncio
    async def test_series_request_shape(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json=_chart(price=101.0, prev=100.0, closes=[95.0, 101.0]))

        prices = await _fetcher(handler).fetch_prices(["aapl"])
        assert set(prices) == {"AAPL"}
        req = seen[0]
        assert req.url.path.endswith("/AAPL")
        assert req.url.params["interval"] == "1d"
        assert int(req.url.params["period2"]) - int(req.url.params["period1"]) == 7 * 24 * 3600
        assert prices["AAPL"].degraded is False

    @pytest.mark.asyncio
    async def test_falls_back_to_quote_when_series_fails(self):
        def handler(request: httpx.Request):
            if "period1" in request.url.params:
                return httpx.Response(500)
            return httpx.Response(200, json=_chart(price=210.0, prev=200.0))

        prices = await _fetcher(handler).fetch_prices(["TSLA"])
        snap = prices["TSLA"]
        assert snap.degraded is True
        assert snap.current == 210.0
        assert snap.week_ago == 200.0
        assert snap.weekly_change == snap.daily_change == 10.0
        assert snap.weekly_change_percent == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_ticker_absent_when_both_requests_fail(self):
        def handler(request: httpx.Request):
            if request.url.path.endswith("/BAD"):
                return httpx.Response(404, json={"chart": {"result": None, "error": {"code": "Not Found"}}})
            return httpx.Response(200, json=_chart(price=1.0, prev=1.0, closes=[1.0]))

        prices = await _fetcher(handler).fetch_prices(["BAD", "GOOD"])
        assert set(prices) == {"GOOD"}

    @pytest.mark.asyncio
    async def test_transport_error_never_raises(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("boom", request=request)

        assert await _fetcher(handler).fetch_prices(["AAPL"]) == {}

    @pytest.mark.asyncio
    async def test_invalid_payload_uses_fallback(self):
        def handler(request: httpx.Request):
            if "period1" in request.url.params:
                return httpx.Response(200, content=b"<html>nope</html>")
            return httpx.Response(200, json=_chart(price=3.0, prev=2.0))

        prices = await _fetcher(handler).fetch_prices(["X"])
        assert prices["X"].degraded is True

    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self):
        calls = []

        def handler(request: httpx.Request):
            calls.append(request)
            return httpx.Response(200, json=_chart(price=10.0, prev=9.0, closes=[9.0, 10.0]))

        fetcher = _fetcher(handler, cache=PriceCache(ttl_seconds=600))
        await fetcher.fetch_prices(["MSFT"])
        await fetcher.fetch_prices(["MSFT", "msft"])
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_empty_input(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await _fetcher(handler).fetch_prices([]) == {}


class TestPriceCache:

    def test_expires_after_ttl(self):
        now = [1000.0]
        cache = PriceCache(ttl_seconds=60, clock=lambda: now[0])
        result = ChartResponse.model_validate(_chart(price=1.0, closes=[1.0])).first()
        cache.put("abc", snapshot_from_series(result))
        assert cache.get("ABC") is not None
        now[0] += 61
        assert cache.get("ABC") is None
        assert len(cache) == 0


class TestValidateTicker:

    @pytest.mark.asyncio
    async def test_valid_ticker_resolves_company(self):
        def handler(request):
            return httpx.Response(200, json=_chart(price=5.0, prev=5.0))

        out = await _fetcher(handler).validate_ticker(" x ")
        assert out == {"is_valid": True, "company_name": "X Holdings", "error": None}

    @pytest.mark.asyncio
    async def test_rejects_bad_characters(self):
        def handler(request):
            raise AssertionError("no request expected")

        out = await _fetcher(handler).validate_ticker("AA$L")
        assert out["is_valid"] is False
