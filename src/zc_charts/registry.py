"""Table of active chart controllers for one page."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from .controller import ChartController, OutcomeSource
from .models import ChartLibrary
from .page import Page
from .renderers import RenderAdapter, get_adapter

__all__ = ["ChartRegistry"]

logger = logging.getLogger(__name__)


class ChartRegistry:
    """Controllers keyed by container id.

    Built when a page is scanned and torn down with :meth:`destroy_all` when
    the page unmounts. Duplicate container ids are logged and skipped; the
    first declaration keeps the key.
    """

    def __init__(
        self,
        resolver: OutcomeSource,
        *,
        fallback_enabled: Optional[bool] = None,
        debug: bool = False,
        export_dir: Optional[Path] = None,
        adapter_factory: Callable[[ChartLibrary], RenderAdapter] = get_adapter,
    ) -> None:
        self.resolver = resolver
        self.fallback_enabled = fallback_enabled
        self.debug = debug
        self.export_dir = export_dir
        self._adapter_factory = adapter_factory
        self._controllers: dict[str, ChartController] = {}

    def scan(self, page: Page) -> list[ChartController]:
        created: list[ChartController] = []
        for container in page:
            key = container.container_id
            if key in self._controllers:
                logger.error("Duplicate chart container id '%s'; skipping declaration", key)
                continue
            controller = ChartController(
                container,
                self.resolver,
                adapter=self._adapter_factory(container.config.library),
                fallback_enabled=self.fallback_enabled,
                debug=self.debug,
                export_dir=self.export_dir,
            )
            self._controllers[key] = controller
            created.append(controller)
        logger.debug("Registered %s chart(s)", len(created))
        return created

    def get(self, key: str) -> ChartController:
        if key not in self._controllers:
            raise KeyError(f"Chart '{key}' is not registered.")
        return self._controllers[key]

    def keys(self) -> Iterable[str]:
        return self._controllers.keys()

    def __len__(self) -> int:
        return len(self._controllers)

    def __contains__(self, key: object) -> bool:
        return key in self._controllers

    async def refresh(self, key: str) -> None:
        await self.get(key).load()

    async def load_all(self) -> None:
        await asyncio.gather(*(controller.load() for controller in self._controllers.values()))

    def destroy_all(self) -> None:
        for controller in self._controllers.values():
            controller.destroy()
        self._controllers.clear()
