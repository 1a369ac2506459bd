"""Lifecycle of one chart: load, render, react to controls, destroy."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional, Protocol

from .errors import ErrorKind, LibraryLoadError
from .models import (
    BackupOutcome,
    ChartConfig,
    ChartType,
    LiveOutcome,
    SourceOutcome,
    UnavailableOutcome,
)
from .page import ChartContainer, Controls, ErrorPanel
from .renderers import ChartHandle, RenderAdapter, get_adapter

__all__ = ["ChartController", "error_panel_text"]

logger = logging.getLogger(__name__)

_AUTH_DETAILS = "Please check your API key configuration in the admin settings."
_DATA_DETAILS = "Please try again later or contact the site administrator."

_ERROR_TEXT: dict[ErrorKind, tuple[str, str]] = {
    ErrorKind.CONFIG_MISSING: ("Chart is not configured.", _AUTH_DETAILS),
    ErrorKind.UNAUTHORIZED: ("Invalid API key.", _AUTH_DETAILS),
    ErrorKind.NOT_FOUND: ("Requested indicator data not available.", _DATA_DETAILS),
    ErrorKind.CLIENT_ERROR: ("The data request was rejected.", _DATA_DETAILS),
    ErrorKind.SERVER_ERROR: ("The data service is temporarily unavailable.", _DATA_DETAILS),
    ErrorKind.NETWORK_ERROR: ("Unable to load data. Check connection.", "Please try again later."),
    ErrorKind.MALFORMED_RESPONSE: ("Invalid data format received from API.", _DATA_DETAILS),
    ErrorKind.LIBRARY_LOAD_FAILURE: ("Chart library failed to load.", "Please try again later."),
    ErrorKind.UNAVAILABLE: ("Both live and backup data are unavailable.", _DATA_DETAILS),
}

_CONFIG_REASONS = {"API key not configured", "Indicator slug is required"}


class OutcomeSource(Protocol):
    async def resolve(
        self, slug: Optional[str], config: ChartConfig, fallback_enabled: Optional[bool] = None
    ) -> SourceOutcome: ...


def error_panel_text(kind: ErrorKind, reason: str = "") -> tuple[str, str]:
    """Return the user-facing message and details for a failure kind.

    Raw failure reasons are only shown for configuration problems, whose
    reasons are fixed strings; everything else gets a canned message.
    """

    message, details = _ERROR_TEXT[kind]
    if kind is ErrorKind.CONFIG_MISSING and reason in _CONFIG_REASONS:
        message = f"{reason}."
    return message, details


class ChartController:
    """Own one rendered chart and the controls of its container.

    A load increments a generation counter; only the result belonging to
    the latest generation is rendered. Plain :meth:`load` calls made while a
    load is in flight are ignored, while timeframe and chart-type changes
    start a new generation so an older, slower response is discarded.
    """

    def __init__(
        self,
        container: ChartContainer,
        resolver: OutcomeSource,
        *,
        adapter: Optional[RenderAdapter] = None,
        fallback_enabled: Optional[bool] = None,
        debug: bool = False,
        export_dir: Optional[Path] = None,
    ) -> None:
        self.container = container
        self.surface = container.surface
        self.controls = container.controls
        self.config = container.config
        self.resolver = resolver
        self.adapter = adapter or get_adapter(container.config.library)
        self.fallback_enabled = fallback_enabled
        self.debug = debug
        self.export_dir = export_dir

        self.handle: Optional[ChartHandle] = None
        self.outcome: Optional[SourceOutcome] = None
        self.loading = False
        self._generation = 0
        self._destroyed = False
        self._bindings: list[tuple[str, object]] = []

        self._bind(Controls.RETRY, self.load)
        if self.config.controls:
            self._bind(Controls.TIMEFRAME, self.on_timeframe_change)
            self._bind(Controls.CHART_TYPE, self.on_type_change)
            self._bind(Controls.EXPORT, self.export)
            self._bind(Controls.FULLSCREEN, self.toggle_fullscreen)

    @property
    def key(self) -> str:
        return self.container.container_id

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _bind(self, event: str, handler) -> None:
        self.controls.on(event, handler)
        self._bindings.append((event, handler))

    async def load(self) -> None:
        """Fetch and render the chart unless a load is already running."""

        if self.loading or self._destroyed:
            return
        await self._reload()

    async def _reload(self) -> None:
        self._generation += 1
        generation = self._generation
        config = self.config
        self.loading = True
        self.surface.show_loading()
        try:
            self.adapter.ensure_loaded()
            outcome = await self.resolver.resolve(config.slug, config, self.fallback_enabled)
            if generation != self._generation or self._destroyed:
                logger.debug(
                    "Discarding stale %s result for %s (timeframe=%s)",
                    outcome.source,
                    self.key,
                    config.timeframe,
                )
                return
            self.render(outcome)
        except LibraryLoadError as exc:
            if generation == self._generation and not self._destroyed:
                self._render_failure(ErrorKind.LIBRARY_LOAD_FAILURE, str(exc))
        except Exception:
            logger.exception("Chart %s failed to load", self.key)
            if generation == self._generation and not self._destroyed:
                self._render_failure(ErrorKind.UNAVAILABLE, "Failed to load chart data")
        finally:
            if generation == self._generation:
                self.loading = False
                self.surface.hide_loading()

    def render(self, outcome: SourceOutcome) -> None:
        """Replace whatever the container shows with ``outcome``."""

        self.outcome = outcome
        if isinstance(outcome, UnavailableOutcome):
            self._render_failure(outcome.kind, outcome.reason)
            return

        self._destroy_handle()
        try:
            handle = self.adapter.render(outcome.series, self.config)
        except LibraryLoadError as exc:
            self._render_failure(ErrorKind.LIBRARY_LOAD_FAILURE, str(exc))
            return
        except (TypeError, ValueError) as exc:
            logger.exception("Rendering %s failed", self.key)
            self._render_failure(ErrorKind.MALFORMED_RESPONSE, str(exc))
            return

        self.handle = handle
        is_backup = isinstance(outcome, BackupOutcome)
        self.surface.mount(handle, fallback=is_backup)
        if is_backup:
            self.surface.show_notice()
        elif isinstance(outcome, LiveOutcome):
            self.surface.clear_notice()
        self.surface.update_metadata(
            source=outcome.series.source, last_updated=outcome.series.last_updated
        )
        logger.debug(
            "Rendered %s (%s, %s points) with %s",
            self.key,
            outcome.source,
            handle.point_count,
            handle.library.value,
        )

    def _render_failure(self, kind: ErrorKind, reason: str) -> None:
        self._destroy_handle()
        self.surface.clear_notice()
        message, details = error_panel_text(kind, reason)
        if self.debug:
            logger.warning("Chart %s (%s) failed [%s]: %s", self.key, self.config.slug, kind.value, reason)
        else:
            logger.warning("Chart %s (%s) failed [%s]", self.key, self.config.slug, kind.value)
        self.surface.show_error(ErrorPanel(kind=kind, message=message, details=details, retry=self.load))

    async def on_timeframe_change(self, timeframe: str) -> None:
        token = (timeframe or "").strip().lower()
        if not token or token == self.config.timeframe or self._destroyed:
            return
        self.config = self.config.with_timeframe(token)
        await self._reload()

    async def on_type_change(self, chart_type: ChartType | str) -> None:
        try:
            new_type = ChartType(chart_type)
        except ValueError:
            self.surface.notify(f"Unsupported chart type: {chart_type}")
            return
        if new_type is self.config.chart_type or self._destroyed:
            return
        self.config = self.config.with_chart_type(new_type)
        await self._reload()

    def export(self, destination: Optional[Path] = None) -> Optional[Path]:
        """Export the current chart through the library's native export."""

        if self.handle is None:
            self.surface.notify("No chart to export")
            return None
        if not self.adapter.supports_export:
            self.surface.notify("Export not supported for this chart type")
            return None
        if destination is None and self.export_dir is not None:
            destination = self.export_dir / f"chart-{self.config.slug}-{int(time.time() * 1000)}.html"
        try:
            return self.adapter.export(self.handle, destination)
        except OSError as exc:
            logger.error("Export of %s failed: %s", self.key, exc)
            self.surface.notify(f"Export failed: {exc.strerror or exc}")
            return None

    def toggle_fullscreen(self) -> bool:
        if self._destroyed:
            return False
        return self.surface.toggle_fullscreen()

    def _destroy_handle(self) -> None:
        if self.handle is not None:
            self.handle.destroy()
            self.handle = None
            self.surface.unmount()

    def destroy(self) -> None:
        """Release the chart and detach listeners; safe to call repeatedly."""

        if self._destroyed:
            return
        self._destroyed = True
        self._generation += 1
        self._destroy_handle()
        for event, handler in self._bindings:
            self.controls.off(event, handler)
        self._bindings.clear()
        self.surface.fullscreen = False
        self.loading = False
        self.surface.hide_loading()
