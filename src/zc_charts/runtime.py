"""Page lifecycle: owns the HTTP client, resolver and chart registry."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from pathlib import Path
from types import TracebackType
from typing import Callable, Optional

import httpx

from .fetcher import RetryingFetcher
from .page import Page
from .registry import ChartRegistry
from .settings import Settings, get_settings
from .sources import SourceResolver

__all__ = ["ChartRuntime", "render_page"]

logger = logging.getLogger(__name__)


class ChartRuntime:
    """Async context manager wiring settings to a ready chart registry.

    >>> async with ChartRuntime(settings) as runtime:   # doctest: +SKIP
    ...     registry = await runtime.mount(page)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], object] = asyncio.sleep,
        today: Callable[[], date] = date.today,
        export_dir: Optional[Path] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep
        self._today = today
        self.export_dir = export_dir
        self.client: Optional[httpx.AsyncClient] = None
        self.resolver: Optional[SourceResolver] = None
        self.registry: Optional[ChartRegistry] = None

    async def __aenter__(self) -> "ChartRuntime":
        self.client = httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.request_timeout,
            follow_redirects=True,
        )
        fetcher = RetryingFetcher(
            self.client,
            timeout=self.settings.request_timeout,
            max_retries=self.settings.max_retries,
            backoff_base=self.settings.backoff_base,
            sleep=self._sleep,
        )
        self.resolver = SourceResolver(fetcher, self.settings, today=self._today)
        self.registry = ChartRegistry(
            self.resolver,
            fallback_enabled=self.settings.enable_fallback,
            debug=self.settings.debug,
            export_dir=self.export_dir,
        )
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        if self.registry is not None:
            self.registry.destroy_all()
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    async def mount(self, page: Page) -> ChartRegistry:
        """Scan ``page`` and load every declared chart."""

        if self.registry is None:
            raise RuntimeError("ChartRuntime must be entered before mounting a page")
        self.registry.scan(page)
        await self.registry.load_all()
        logger.info("Mounted %s chart(s)", len(self.registry))
        return self.registry


async def render_page(
    page: Page,
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Load every chart on ``page`` and return the resulting markup."""

    async with ChartRuntime(settings, transport=transport) as runtime:
        await runtime.mount(page)
        return page.to_html()
