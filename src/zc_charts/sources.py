"""Resolve indicator data from the live endpoint with backup fallback."""

from __future__ import annotations

import logging
from datetime import date
from functools import partial
from typing import Callable, Optional
from urllib.parse import quote

from .cache import SeriesCache
from .errors import ErrorKind
from .fetcher import RetryingFetcher
from .models import (
    BackupOutcome,
    ChartConfig,
    FetchFailure,
    LiveOutcome,
    SourceOutcome,
    UnavailableOutcome,
    parse_indicator_payload,
)
from .settings import Settings
from .timeframes import resolve_cutoff

LOGGER = logging.getLogger(__name__)

__all__ = ["SourceResolver"]

BOTH_SOURCES_FAILED = "Both live and backup data are unavailable"


class SourceResolver:
    """Fetch one indicator, preferring live data and falling back to backup.

    Each :meth:`resolve` call ends in exactly one of ``LiveOutcome``,
    ``BackupOutcome`` or ``UnavailableOutcome``. The backup endpoint is only
    contacted after the live request failed, fallback is enabled and the
    failure was not an authorization error.
    """

    def __init__(
        self,
        fetcher: RetryingFetcher,
        settings: Settings,
        *,
        cache: Optional[SeriesCache] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.fetcher = fetcher
        self.settings = settings
        self.cache = cache if cache is not None else SeriesCache(settings.cache_duration)
        self._today = today

    def data_url(self, slug: str) -> str:
        return f"{self.settings.api_base_url}/data/{quote(slug, safe='')}"

    def backup_url(self, slug: str, suffix: str = "") -> str:
        return f"{self.settings.api_base_url}/backup/{quote(slug, safe='')}{suffix}"

    def _auth_params(self) -> dict[str, str]:
        return {"access_key": self.settings.api_key or ""}

    async def resolve(
        self,
        slug: Optional[str],
        config: ChartConfig,
        fallback_enabled: Optional[bool] = None,
    ) -> SourceOutcome:
        slug = (slug or config.slug or "").strip()
        if not self.settings.api_key:
            return UnavailableOutcome(ErrorKind.CONFIG_MISSING, "API key not configured")
        if not slug:
            return UnavailableOutcome(ErrorKind.CONFIG_MISSING, "Indicator slug is required")

        params = self._auth_params()
        cutoff = None if config.static else resolve_cutoff(config.timeframe, self._today())
        if cutoff is not None:
            params["start_date"] = cutoff.isoformat()

        cache_key = (slug, params.get("start_date"))
        cached = self.cache.get(cache_key)
        if cached is not None:
            LOGGER.debug("Serving %s (start_date=%s) from cache", slug, params.get("start_date"))
            return LiveOutcome(cached)

        live = await self.fetcher.fetch(
            self.data_url(slug),
            params=params,
            parse=partial(parse_indicator_payload, slug=slug),
        )
        if isinstance(live, FetchFailure):
            return await self._after_live_failure(slug, live, fallback_enabled)

        self.cache.put(cache_key, live.data)
        LOGGER.debug("Loaded %s live points for %s", len(live.data), slug)
        return LiveOutcome(live.data)

    async def _after_live_failure(
        self,
        slug: str,
        live: FetchFailure,
        fallback_enabled: Optional[bool],
    ) -> SourceOutcome:
        if live.kind is ErrorKind.UNAUTHORIZED:
            LOGGER.warning("Live data for %s rejected the API key; skipping backup", slug)
            return UnavailableOutcome(ErrorKind.UNAUTHORIZED, live.message)

        enabled = self.settings.enable_fallback if fallback_enabled is None else fallback_enabled
        if not enabled:
            LOGGER.info("Live data for %s failed and fallback is disabled: %s", slug, live.message)
            return UnavailableOutcome(live.kind, live.message)

        LOGGER.info("Live data for %s failed (%s); attempting backup data", slug, live.message)
        backup = await self.fetcher.fetch(
            self.backup_url(slug),
            params=self._auth_params(),
            parse=partial(parse_indicator_payload, slug=slug),
        )
        if isinstance(backup, FetchFailure):
            LOGGER.warning("Backup data for %s failed: %s", slug, backup.message)
            return UnavailableOutcome(ErrorKind.UNAVAILABLE, BOTH_SOURCES_FAILED)

        LOGGER.info("Loaded backup data for %s (%s points)", slug, len(backup.data))
        return BackupOutcome(backup.data, live_failure=live)

    async def backup_available(self, slug: str) -> bool:
        """Ask the data plugin whether a backup snapshot exists for ``slug``."""

        if not self.settings.api_key or not slug:
            return False
        result = await self.fetcher.fetch_json(
            self.backup_url(slug, "/check"), params=self._auth_params(), max_retries=0
        )
        if isinstance(result, FetchFailure):
            LOGGER.debug("Backup availability check for %s failed: %s", slug, result.message)
            return False
        return isinstance(result.data, dict) and result.data.get("available") is True

    async def last_backup_timestamp(self, slug: str) -> Optional[str]:
        if not self.settings.api_key or not slug:
            return None
        result = await self.fetcher.fetch_json(
            self.backup_url(slug, "/info"), params=self._auth_params(), max_retries=0
        )
        if isinstance(result, FetchFailure) or not isinstance(result.data, dict):
            return None
        value = result.data.get("last_backup")
        return str(value) if value else None
