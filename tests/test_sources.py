from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Awaitable, Callable

import httpx

from zc_charts.cache import SeriesCache
from zc_charts.errors import ErrorKind
from zc_charts.fetcher import RetryingFetcher
from zc_charts.models import BackupOutcome, ChartConfig, LiveOutcome, UnavailableOutcome
from zc_charts.settings import Settings
from zc_charts.sources import SourceResolver

API_KEY = "zc_0123456789abcdef0123456789abc"
BASE_URL = "https://example.test/wp-json/zc-dmt/v1"
TODAY = date(2024, 6, 15)


def _body(name: str, *values: float) -> dict[str, Any]:
    return {
        "name": name,
        "data": [{"date": f"2023-0{i + 1}-01", "value": value} for i, value in enumerate(values)],
    }


Reply = tuple[int, Any]


def _respond(reply: Reply) -> httpx.Response:
    status, body = reply
    if body is None:
        return httpx.Response(status)
    return httpx.Response(status, json=body)


class FakeApi:
    """Routes data/backup requests to canned responses and records them."""

    def __init__(self, live: Reply, backup: Reply | None = None) -> None:
        self.live = live
        self.backup = backup or (200, _body("GDP backup", 1.0, 2.0, 3.0))
        self.requests: list[httpx.Request] = []

    def paths(self, kind: str) -> list[httpx.Request]:
        return [request for request in self.requests if f"/{kind}/" in request.url.path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if "/backup/" in request.url.path:
            if request.url.path.endswith("/check"):
                return httpx.Response(200, json={"available": True})
            if request.url.path.endswith("/info"):
                return httpx.Response(200, json={"last_backup": "2024-06-01 03:00:00"})
            return _respond(self.backup)
        return _respond(self.live)


async def _no_sleep(delay: float) -> None:
    return None


def _run(api: FakeApi, action: Callable[[SourceResolver], Awaitable[Any]], **overrides: Any) -> Any:
    settings = Settings(
        **{"api_key": API_KEY, "api_base_url": BASE_URL, "cache_duration": 0, **overrides}
    )

    async def runner():
        async with httpx.AsyncClient(transport=httpx.MockTransport(api)) as client:
            fetcher = RetryingFetcher(client, timeout=1.0, max_retries=2, sleep=_no_sleep)
            resolver = SourceResolver(fetcher, settings, today=lambda: TODAY)
            return await action(resolver)

    return asyncio.run(runner())


def test_server_error_falls_back_to_backup() -> None:
    api = FakeApi(live=(500, {"message": "boom"}))
    config = ChartConfig(slug="gdp_us")

    outcome = _run(api, lambda resolver: resolver.resolve("gdp_us", config, True))

    assert isinstance(outcome, BackupOutcome)
    assert outcome.series.name == "GDP backup"
    assert len(api.paths("data")) == 3
    assert len(api.paths("backup")) == 1
    assert "start_date" not in api.paths("backup")[0].url.params
    assert outcome.live_failure is not None
    assert outcome.live_failure.kind is ErrorKind.SERVER_ERROR


def test_fallback_disabled_never_calls_backup() -> None:
    api = FakeApi(live=(503, None))
    config = ChartConfig(slug="gdp_us")

    outcome = _run(api, lambda resolver: resolver.resolve("gdp_us", config, False))

    assert isinstance(outcome, UnavailableOutcome)
    assert outcome.kind is ErrorKind.SERVER_ERROR
    assert api.paths("backup") == []


def test_fallback_defaults_to_settings() -> None:
    api = FakeApi(live=(404, {"message": "unknown slug"}))
    config = ChartConfig(slug="gdp_us")

    outcome = _run(api, lambda resolver: resolver.resolve("gdp_us", config), enable_fallback=False)

    assert isinstance(outcome, UnavailableOutcome)
    assert outcome.kind is ErrorKind.NOT_FOUND
    assert api.paths("backup") == []


def test_unauthorized_short_circuits_fallback() -> None:
    api = FakeApi(live=(401, {"message": "Invalid key"}))
    config = ChartConfig(slug="gdp_us")

    outcome = _run(api, lambda resolver: resolver.resolve("gdp_us", config, True))

    assert isinstance(outcome, UnavailableOutcome)
    assert outcome.kind is ErrorKind.UNAUTHORIZED
    assert len(api.paths("data")) == 1
    assert api.paths("backup") == []


def test_backup_failure_is_unavailable() -> None:
    api = FakeApi(
        live=(500, None),
        backup=(404, {"message": "Backup data not available."}),
    )

    outcome = _run(api, lambda resolver: resolver.resolve("gdp_us", ChartConfig(slug="gdp_us"), True))

    assert isinstance(outcome, UnavailableOutcome)
    assert outcome.kind is ErrorKind.UNAVAILABLE
    assert outcome.reason == "Both live and backup data are unavailable"


def test_live_request_carries_timeframe_cutoff_only_for_dynamic_charts() -> None:
    api = FakeApi(live=(200, _body("GDP", 1.0)))

    async def resolve_three(resolver: SourceResolver):
        return [
            await resolver.resolve("gdp_us", ChartConfig(slug="gdp_us", timeframe="1y")),
            await resolver.resolve("gdp_us", ChartConfig(slug="gdp_us", timeframe="all")),
            await resolver.resolve("gdp_us", ChartConfig(slug="gdp_us", timeframe="5y", static=True)),
        ]

    outcomes = _run(api, resolve_three)

    assert all(isinstance(outcome, LiveOutcome) for outcome in outcomes)
    params = [request.url.params for request in api.paths("data")]
    assert params[0]["start_date"] == "2023-06-15"
    assert "start_date" not in params[1]
    assert "start_date" not in params[2]
    assert all(p["access_key"] == API_KEY for p in params)
    assert api.paths("data")[0].url.path == "/wp-json/zc-dmt/v1/data/gdp_us"


def test_missing_configuration_makes_no_requests() -> None:
    api = FakeApi(live=(200, _body("GDP", 1.0)))

    no_key = _run(api, lambda resolver: resolver.resolve("gdp_us", ChartConfig(slug="gdp_us")), api_key=None)
    no_slug = _run(api, lambda resolver: resolver.resolve("", ChartConfig(slug="")))

    assert isinstance(no_key, UnavailableOutcome)
    assert no_key.kind is ErrorKind.CONFIG_MISSING
    assert no_key.reason == "API key not configured"
    assert isinstance(no_slug, UnavailableOutcome)
    assert no_slug.reason == "Indicator slug is required"
    assert api.requests == []


def test_live_results_are_cached_per_timeframe() -> None:
    api = FakeApi(live=(200, _body("GDP", 1.0)))
    now = [100.0]

    async def resolve_with_cache(resolver: SourceResolver):
        resolver.cache = SeriesCache(60, clock=lambda: now[0])
        config = ChartConfig(slug="gdp_us", timeframe="1y")
        first = await resolver.resolve("gdp_us", config)
        second = await resolver.resolve("gdp_us", config)
        await resolver.resolve("gdp_us", config.with_timeframe("3m"))
        now[0] += 61
        await resolver.resolve("gdp_us", config)
        return first, second

    first, second = _run(api, resolve_with_cache)

    assert first == second
    assert len(api.paths("data")) == 3


def test_backup_check_and_info_endpoints() -> None:
    api = FakeApi(live=(200, _body("GDP", 1.0)))

    async def inspect(resolver: SourceResolver):
        return await resolver.backup_available("gdp_us"), await resolver.last_backup_timestamp("gdp_us")

    available, last_backup = _run(api, inspect)

    assert available is True
    assert last_backup == "2024-06-01 03:00:00"
    assert [request.url.path for request in api.requests] == [
        "/wp-json/zc-dmt/v1/backup/gdp_us/check",
        "/wp-json/zc-dmt/v1/backup/gdp_us/info",
    ]
