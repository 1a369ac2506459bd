"""Page model: declared chart containers, their surfaces and control events."""

from __future__ import annotations

import html
import inspect
import json
import logging
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from .errors import ErrorKind
from .models import ChartConfig, ChartLibrary

if TYPE_CHECKING:
    from .renderers import ChartHandle

__all__ = [
    "ChartContainer",
    "ChartSurface",
    "Controls",
    "ErrorPanel",
    "Page",
]

logger = logging.getLogger(__name__)

FALLBACK_NOTICE = "Displaying cached data"

Handler = Callable[..., Union[None, Awaitable[None]]]


@dataclass
class ErrorPanel:
    kind: ErrorKind
    message: str
    details: str = "Please try again later."
    retry: Optional[Callable[[], Awaitable[None]]] = field(default=None, repr=False, compare=False)

    @property
    def retryable(self) -> bool:
        return self.retry is not None


class Controls:
    """Event listeners attached to one chart container's controls."""

    TIMEFRAME = "timeframe"
    CHART_TYPE = "chart_type"
    EXPORT = "export"
    FULLSCREEN = "fullscreen"
    RETRY = "retry"

    def __init__(self) -> None:
        self._listeners: dict[str, list[Handler]] = {}

    def on(self, event: str, handler: Handler) -> None:
        self._listeners.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        self._listeners.clear()

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(handlers) for handlers in self._listeners.values())

    async def trigger(self, event: str, *args: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result


class ChartSurface:
    """What one chart container currently displays."""

    def __init__(self, container_id: str) -> None:
        self.container_id = container_id
        self.loading = False
        self.handle: Optional["ChartHandle"] = None
        self.error: Optional[ErrorPanel] = None
        self.notice: Optional[str] = None
        self.metadata: dict[str, str] = {}
        self.messages: list[str] = []
        self.css_classes: set[str] = set()
        self.fullscreen = False

    def show_loading(self) -> None:
        self.loading = True

    def hide_loading(self) -> None:
        self.loading = False

    def mount(self, handle: "ChartHandle", *, fallback: bool) -> None:
        self.handle = handle
        self.error = None
        self.css_classes.discard("zc-chart-error-state")
        self.css_classes.add("zc-chart-loaded")
        if fallback:
            self.css_classes.add("zc-chart-fallback")
        else:
            self.css_classes.discard("zc-chart-fallback")

    def unmount(self) -> None:
        self.handle = None
        self.css_classes.discard("zc-chart-loaded")

    def show_error(self, panel: ErrorPanel) -> None:
        self.handle = None
        self.error = panel
        self.css_classes.discard("zc-chart-loaded")
        self.css_classes.add("zc-chart-error-state")

    def show_notice(self, text: str = FALLBACK_NOTICE) -> None:
        self.notice = text

    def clear_notice(self) -> None:
        self.notice = None

    def toggle_fullscreen(self) -> bool:
        self.fullscreen = not self.fullscreen
        return self.fullscreen

    def notify(self, message: str) -> None:
        self.messages.append(message)

    def update_metadata(self, *, source: Optional[str] = None, last_updated: Optional[str] = None) -> None:
        if source:
            self.metadata["source"] = source
        if last_updated:
            self.metadata["last_updated"] = last_updated

    def to_html(self) -> str:
        """Render the container markup for the current state."""

        classes = " ".join(["zc-chart-container", *sorted(self.css_classes)])
        wrapper_classes = "zc-chart-wrapper zc-fullscreen" if self.fullscreen else "zc-chart-wrapper"
        parts = [f'<div class="{wrapper_classes}" data-container="{html.escape(self.container_id)}">']
        if self.notice:
            parts.append(f'  <div class="zc-fallback-notice">{html.escape(self.notice)}</div>')
        parts.append(f'  <div id="{html.escape(self.container_id)}" class="{html.escape(classes)}">')
        if self.loading:
            parts.append('    <div class="zc-chart-loading">Loading chart...</div>')
        if self.error is not None:
            parts.append(
                f'    <div class="zc-chart-error zc-chart-error-{html.escape(self.error.kind.value)}">'
            )
            parts.append(f'      <div class="error-message">{html.escape(self.error.message)}</div>')
            parts.append(f'      <div class="error-details">{html.escape(self.error.details)}</div>')
            if self.error.retryable:
                parts.append('      <button type="button" class="zc-retry-btn">Retry</button>')
            parts.append("    </div>")
        elif self.handle is not None:
            options = json.dumps(self.handle.options, allow_nan=False).replace("</", "<\\/")
            parts.append(
                f'    <script type="application/json" class="zc-chart-options" '
                f'data-library="{html.escape(self.handle.library.value)}">{options}</script>'
            )
        parts.append("  </div>")
        if self.metadata:
            source = html.escape(self.metadata.get("source", ""))
            updated = html.escape(self.metadata.get("last_updated", ""))
            parts.append(
                f'  <div class="zc-chart-meta"><span class="zc-source-name">{source}</span>'
                f'<span class="zc-update-time">{updated}</span></div>'
            )
        parts.append("</div>")
        return "\n".join(parts)


@dataclass
class ChartContainer:
    container_id: str
    config: ChartConfig
    surface: ChartSurface = field(init=False)
    controls: Controls = field(default_factory=Controls)

    def __post_init__(self) -> None:
        self.surface = ChartSurface(self.container_id)


class _ChartConfigScanner(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.found: list[tuple[Optional[str], Mapping[str, Any]]] = []
        self._awaiting_container: Optional[int] = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        attributes = dict(attrs)
        raw_config = attributes.get("data-chart-config")
        if raw_config is not None:
            try:
                declared = json.loads(raw_config)
            except json.JSONDecodeError as exc:
                logger.error("Skipping chart with malformed data-chart-config: %s", exc)
                self._awaiting_container = None
                return
            if not isinstance(declared, Mapping):
                logger.error("Skipping chart whose data-chart-config is not an object")
                self._awaiting_container = None
                return
            self.found.append((declared.get("container_id") or None, declared))
            self._awaiting_container = len(self.found) - 1
            return

        classes = (attributes.get("class") or "").split()
        if self._awaiting_container is not None and "zc-chart-container" in classes:
            index = self._awaiting_container
            container_id, declared = self.found[index]
            if container_id is None and attributes.get("id"):
                self.found[index] = (attributes["id"], declared)
            self._awaiting_container = None


class Page:
    """An ordered collection of declared chart containers."""

    def __init__(self, containers: Iterable[ChartContainer] = ()) -> None:
        self.containers: list[ChartContainer] = list(containers)

    def __iter__(self):
        return iter(self.containers)

    def __len__(self) -> int:
        return len(self.containers)

    @classmethod
    def from_declarations(
        cls,
        declarations: Iterable[Mapping[str, Any]],
        *,
        default_library: str = ChartLibrary.CHARTJS.value,
    ) -> "Page":
        containers: list[ChartContainer] = []
        for index, declared in enumerate(declarations, start=1):
            config = ChartConfig.from_declaration(declared, default_library=default_library)
            container_id = declared.get("container_id") or f"zc-chart-{config.slug or 'chart'}-{index}"
            containers.append(ChartContainer(container_id=str(container_id), config=config))
        return cls(containers)

    @classmethod
    def from_html(cls, markup: str, *, default_library: str = ChartLibrary.CHARTJS.value) -> "Page":
        """Collect every element carrying a ``data-chart-config`` attribute."""

        scanner = _ChartConfigScanner()
        scanner.feed(markup)
        scanner.close()

        declarations = []
        for container_id, declared in scanner.found:
            merged = dict(declared)
            if container_id:
                merged["container_id"] = container_id
            declarations.append(merged)
        return cls.from_declarations(declarations, default_library=default_library)

    def to_html(self) -> str:
        return "\n".join(container.surface.to_html() for container in self.containers)
