from __future__ import annotations

import asyncio
from typing import Callable

import httpx

from zc_charts.errors import ErrorKind
from zc_charts.fetcher import RetryingFetcher
from zc_charts.models import FetchFailure, FetchSuccess, IndicatorSeries

API_KEY = "zc_0123456789abcdef0123456789abc"
URL = "https://example.test/wp-json/zc-dmt/v1/data/gdp_us"
GOOD_BODY = {"data": [{"date": "2023-01-01", "value": 1.0}], "name": "GDP"}


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _fetch(handler: Callable, *, timeout: float = 1.0, max_retries: int = 2, **kwargs):
    sleeper = RecordingSleep()

    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = RetryingFetcher(
                client, timeout=timeout, max_retries=max_retries, backoff_base=1.0, sleep=sleeper
            )
            return await fetcher.fetch(URL, params={"access_key": API_KEY}, **kwargs)

    return asyncio.run(runner()), sleeper.delays


def test_timeouts_then_success_within_retry_budget() -> None:
    calls: list[int] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) <= 2:
            await asyncio.sleep(5)
        return httpx.Response(200, json=GOOD_BODY)

    result, delays = _fetch(handler, timeout=0.05, max_retries=2)

    assert isinstance(result, FetchSuccess)
    assert isinstance(result.data, IndicatorSeries)
    assert result.data.name == "GDP"
    assert len(calls) == 3
    assert delays == [1.0, 2.0]


def test_server_errors_exhaust_retries_with_backoff() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, json={"message": "database offline"})

    result, delays = _fetch(handler, max_retries=2)

    assert isinstance(result, FetchFailure)
    assert result.kind is ErrorKind.SERVER_ERROR
    assert result.status == 500
    assert "database offline" in result.message
    assert len(calls) == 3
    assert delays == [1.0, 2.0]
    assert calls[0].url.params["access_key"] == API_KEY


def test_client_errors_short_circuit() -> None:
    for status, kind in ((401, ErrorKind.UNAUTHORIZED), (403, ErrorKind.UNAUTHORIZED),
                         (404, ErrorKind.NOT_FOUND), (422, ErrorKind.CLIENT_ERROR)):
        calls: list[int] = []

        def handler(request: httpx.Request, status=status) -> httpx.Response:
            calls.append(status)
            return httpx.Response(status, json={"message": "nope"})

        result, delays = _fetch(handler, max_retries=3)

        assert isinstance(result, FetchFailure)
        assert result.kind is kind
        assert len(calls) == 1
        assert delays == []


def test_network_errors_are_retried_then_reported() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    result, delays = _fetch(handler, max_retries=1)

    assert isinstance(result, FetchFailure)
    assert result.kind is ErrorKind.NETWORK_ERROR
    assert len(calls) == 2
    assert delays == [1.0]


def test_malformed_bodies_are_distinct_and_not_retried() -> None:
    calls: list[int] = []

    def not_json(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(200, text="<html>maintenance</html>")

    result, _ = _fetch(not_json)
    assert isinstance(result, FetchFailure)
    assert result.kind is ErrorKind.MALFORMED_RESPONSE
    assert len(calls) == 1

    def wrong_schema(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"values": []})

    result, _ = _fetch(wrong_schema)
    assert isinstance(result, FetchFailure)
    assert result.kind is ErrorKind.MALFORMED_RESPONSE


def test_failure_messages_never_contain_the_key() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": f"bad access_key {API_KEY}"})

    result, _ = _fetch(handler)

    assert isinstance(result, FetchFailure)
    assert API_KEY not in result.message
    assert "zc_012" in result.message


def test_fetch_json_returns_raw_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"available": True})

    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = RetryingFetcher(client, backoff_base=0.0)
            return await fetcher.fetch_json(URL)

    result = asyncio.run(runner())

    assert isinstance(result, FetchSuccess)
    assert result.data == {"available": True}
