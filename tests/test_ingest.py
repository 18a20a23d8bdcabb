"""Tests for the quote / trend / search adapters against httpx.MockTransport."""
from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest

from quotewatch import _http
from quotewatch._http import FINGERPRINT_COOKIE
from quotewatch.common_types import Instrument, Market, SearchResult
from quotewatch.ingest_quotes import QuoteClient, build_secids, parse_quote_payload
from quotewatch.ingest_search import SearchClient, decode_unicode_escapes, parse_search_payload
from quotewatch.ingest_trends import TrendClient, parse_trend_payload

MOUTAI = Instrument(Market.SHANGHAI, "600519")
WULIANGYE = Instrument(Market.SHENZHEN, "000858")

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _json(payload: object, status: int = 200) -> httpx.Response:
    return httpx.Response(status, content=json.dumps(payload).encode(), headers={"content-type": "application/json"})


def _quote_payload(*records: dict) -> dict:
    return {"rc": 0, "data": {"total": len(records), "diff": list(records)}}


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class TestParseQuotePayload:
    def test_basic_record(self):
        quotes = parse_quote_payload(_quote_payload(
            {"f2": 1800.00, "f3": 0.7, "f4": 12.5, "f12": "600519", "f13": 1, "f14": "贵州茅台"},
        ))
        q = quotes[MOUTAI]
        assert q.price == 1800.00
        assert q.change_percent == 0.7
        assert q.change_absolute == 12.5
        assert q.name == "贵州茅台"

    def test_diff_as_object(self):
        payload = {"data": {"diff": {
            "0": {"f2": 1.0, "f3": 0, "f4": 0, "f12": "600519", "f13": 1, "f14": "a"},
            "1": {"f2": 2.0, "f3": 0, "f4": 0, "f12": "000858", "f13": 0, "f14": "b"},
        }}}
        assert list(parse_quote_payload(payload)) == [MOUTAI, WULIANGYE]

    def test_suspended_dash_values(self):
        quotes = parse_quote_payload(_quote_payload(
            {"f2": "-", "f3": "-", "f4": "-", "f12": "600519", "f13": 1, "f14": "x"},
        ))
        assert quotes[MOUTAI].price == 0.0

    def test_invalid_records_skipped(self):
        quotes = parse_quote_payload(_quote_payload(
            {"f2": 1.0, "f12": "12345", "f13": 1, "f14": "short"},
            {"f2": 1.0, "f12": "600519", "f13": 7, "f14": "bad market"},
            "not a dict",
            {"f2": 2.0, "f3": 1, "f4": 1, "f12": "000858", "f13": 0, "f14": "ok"},
        ))
        assert list(quotes) == [WULIANGYE]

    @pytest.mark.parametrize("payload", [None, [], {"data": None}, {"data": {"diff": None}}, "x"])
    def test_malformed(self, payload):
        assert parse_quote_payload(payload) == {}


class TestQuoteClient:
    def test_single_request_with_secids_and_cookie(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _json(_quote_payload(
                {"f2": 1800.0, "f3": 0.5, "f4": 9.0, "f12": "600519", "f13": 1, "f14": "贵州茅台"},
                {"f2": 150.0, "f3": -1.2, "f4": -1.8, "f12": "000858", "f13": 0, "f14": "五粮液"},
            ))

        async def go():
            async with _client(handler) as http:
                return await QuoteClient(http, "abc123").fetch_quotes([MOUTAI, WULIANGYE])

        quotes = asyncio.run(go())
        assert len(seen) == 1
        assert seen[0].url.params["secids"] == "1.600519,0.000858"
        assert seen[0].url.params["fields"] == "f12,f13,f14,f2,f3,f4"
        assert f"{FINGERPRINT_COOKIE}=abc123" in seen[0].headers["cookie"]
        assert set(quotes) == {MOUTAI, WULIANGYE}

    def test_empty_instruments_no_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async def go():
            async with _client(handler) as http:
                return await QuoteClient(http, "fp").fetch_quotes([])

        assert asyncio.run(go()) == {}

    @pytest.mark.parametrize(
        "response",
        [
            _json(_quote_payload()),                       # zero records (missing cookie)
            _json({"rc": 0, "data": None}),
            _json({"error": "x"}, status=500),
            httpx.Response(200, content=b"<html>oops</html>"),
        ],
    )
    def test_soft_failures_return_empty(self, response):
        async def go():
            async with _client(lambda request: response) as http:
                return await QuoteClient(http, "fp").fetch_quotes([MOUTAI])

        assert asyncio.run(go()) == {}

    def test_transport_error_returns_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        async def go():
            async with _client(handler) as http:
                return await QuoteClient(http, "fp").fetch_quotes([MOUTAI])

        assert asyncio.run(go()) == {}

    def test_build_secids(self):
        assert build_secids([MOUTAI, WULIANGYE]) == "1.600519,0.000858"


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------


class TestTrends:
    def test_parse_keeps_positive_close_only(self):
        payload = {"data": {"trends": [
            "2026-10-19 09:30,1800.00,1801.00",
            "2026-10-19 09:31,1801.00,0.00",
            "2026-10-19 09:32,1801.00,-",
            "broken",
            "2026-10-19 09:33,1802.00,1803.50,1804.0,1800.0,100,1e6,1802.1",
        ]}}
        assert parse_trend_payload(payload) == [1801.00, 1803.50]

    @pytest.mark.parametrize("payload", [None, {}, {"data": None}, {"data": {"trends": "x"}}])
    def test_parse_malformed(self, payload):
        assert parse_trend_payload(payload) == []

    def test_client_request_shape(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _json({"data": {"trends": ["t,1,2.5", "t,1,2.6"]}})

        async def go():
            async with _client(handler) as http:
                return await TrendClient(http, "fp").fetch_trend(WULIANGYE)

        assert asyncio.run(go()) == [2.5, 2.6]
        assert seen[0].url.params["secid"] == "0.000858"
        assert "cookie" in seen[0].headers

    def test_client_failure_returns_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async def go():
            async with _client(handler) as http:
                return await TrendClient(http, "fp").fetch_trend(MOUTAI)

        assert asyncio.run(go()) == []

    def test_forget_clears_failure_streak(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        async def go():
            async with _client(handler) as http:
                client = TrendClient(http, "fp")
                await client.fetch_trend(WULIANGYE)
                assert "trends 0.000858" in _http._FAILING_LABELS
                client.forget(WULIANGYE)

        asyncio.run(go())
        assert "trends 0.000858" not in _http._FAILING_LABELS


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

_RAW_SEARCH = (
    'v_hint="sh~600519~\\u8d35\\u5dde\\u8305\\u53f0~gzmt~GP-A'
    '^sz~000858~\\u4e94\\u7cae\\u6db2~wly~GP-A'
    '^hk~00700~\\u817e\\u8baf~tx~GP'
    '^sh~510300~300ETF~300etf~ETF'
    '^sh~000001~\\u4e0a\\u8bc1\\u6307\\u6570~szzs~ZS";'
)


class TestSearchParsing:
    def test_decode_unicode_escapes(self):
        assert decode_unicode_escapes("\\u8d35\\u5dde\\u8305\\u53f0") == "贵州茅台"

    def test_filters_types_and_markets(self):
        results = parse_search_payload(_RAW_SEARCH)
        assert results == [
            SearchResult("600519", "贵州茅台", Market.SHANGHAI),
            SearchResult("000858", "五粮液", Market.SHENZHEN),
            SearchResult("000001", "上证指数", Market.SHANGHAI),
        ]

    def test_limit_five(self):
        records = "^".join(f"sz~{300000 + i}~N{i}~n~GP-A" for i in range(8))
        assert len(parse_search_payload(f'v_hint="{records}"')) == 5

    @pytest.mark.parametrize("raw", ["", "garbage", 'v_hint=""', 'v_hint="N";', 'v_hint="sh~600519"'])
    def test_malformed(self, raw):
        assert parse_search_payload(raw) == []


class TestSearchClient:
    def test_blank_query_short_circuits(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async def go():
            async with _client(handler) as http:
                return await SearchClient(http).search("   ")

        assert asyncio.run(go()) == []

    def test_query_encoded_and_parsed(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=_RAW_SEARCH)

        async def go():
            async with _client(handler) as http:
                return await SearchClient(http).search(" 茅台 ")

        results = asyncio.run(go())
        assert seen[0].url.params["q"] == "茅台"
        assert seen[0].url.params["t"] == "all"
        assert results[0].code == "600519"

    def test_http_error_returns_empty(self):
        async def go():
            async with _client(lambda request: httpx.Response(503)) as http:
                return await SearchClient(http).search("600")

        assert asyncio.run(go()) == []
