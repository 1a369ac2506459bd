"""Library adapters turning formatted series into Chart.js / Highcharts options."""

from __future__ import annotations

import html
import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from .errors import LibraryLoadError, ZCChartsError
from .formatting import ChartJsData, FormattedSeries, HighchartsData, format_series
from .models import ChartConfig, ChartLibrary, ChartType, IndicatorSeries

__all__ = [
    "ChartHandle",
    "ChartJsAdapter",
    "HighchartsAdapter",
    "RenderAdapter",
    "get_adapter",
]

logger = logging.getLogger(__name__)

EMPTY_STATE_MESSAGE = "No data available for the selected timeframe"
_PRIMARY_COLOR = "#2271b1"
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_-]")


@dataclass
class ChartHandle:
    """A rendered chart instance owned by exactly one controller."""

    library: ChartLibrary
    slug: str
    options: dict[str, Any]
    point_count: int
    destroyed: bool = field(default=False)

    @property
    def empty(self) -> bool:
        return self.point_count == 0

    def destroy(self) -> None:
        self.destroyed = True


class RenderAdapter(ABC):
    """Common rendering capability; subclasses provide library options."""

    library: ChartLibrary
    script_urls: tuple[str, ...] = ()
    supports_export = True

    def __init__(self, loader: Optional[Callable[[], None]] = None) -> None:
        self._loader = loader
        self._loaded = loader is None

    def ensure_loaded(self) -> None:
        """Load the library once; failures raise :class:`LibraryLoadError`."""

        if self._loaded or self._loader is None:
            return
        try:
            self._loader()
        except LibraryLoadError:
            raise
        except Exception as exc:
            raise LibraryLoadError(f"{self.library.value} library failed to load: {exc}") from exc
        self._loaded = True

    def render(self, series: IndicatorSeries, config: ChartConfig) -> ChartHandle:
        self.ensure_loaded()
        data = format_series(series, self.library)
        options = self.build_options(data, series, config)
        return ChartHandle(
            library=self.library,
            slug=config.slug,
            options=options,
            point_count=len(data),
        )

    @abstractmethod
    def build_options(
        self, data: FormattedSeries, series: IndicatorSeries, config: ChartConfig
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def _export_script(self, element_id: str, options_json: str) -> str:
        raise NotImplementedError

    def export(self, handle: ChartHandle, destination: Optional[Path] = None) -> Path:
        """Write a standalone HTML document drawing ``handle`` with the library."""

        if not self.supports_export:
            raise ZCChartsError(f"Export is not supported for {self.library.value}")
        if destination is None:
            destination = Path(f"chart-{handle.slug}-{int(time.time() * 1000)}.html")
        destination.parent.mkdir(parents=True, exist_ok=True)

        element_id = "zc-export-" + _UNSAFE_ID_CHARS.sub("-", handle.slug)
        options_json = json.dumps(handle.options, allow_nan=False).replace("</", "<\\/")
        scripts = "\n".join(
            f'    <script src="{html.escape(url)}"></script>' for url in self.script_urls
        )
        document = f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <title>{html.escape(handle.slug)}</title>
{scripts}
  </head>
  <body>
{self._export_script(element_id, options_json)}
  </body>
</html>
"""
        destination.write_text(document, encoding="utf-8")
        logger.info("Exported %s chart for %s to %s", self.library.value, handle.slug, destination)
        return destination


class ChartJsAdapter(RenderAdapter):
    library = ChartLibrary.CHARTJS
    script_urls = ("https://cdn.jsdelivr.net/npm/chart.js@3.9.1/dist/chart.min.js",)

    _TYPE_MAP = {ChartType.LINE: "line", ChartType.AREA: "line", ChartType.BAR: "bar"}

    def build_options(
        self, data: FormattedSeries, series: IndicatorSeries, config: ChartConfig
    ) -> dict[str, Any]:
        if not isinstance(data, ChartJsData):
            raise TypeError("Chart.js adapter requires label/value data")

        chart_type = self._TYPE_MAP[config.chart_type]
        payload = data.to_dict(label=config.title or series.display_name)
        payload["datasets"][0].update(
            {
                "borderColor": _PRIMARY_COLOR,
                "backgroundColor": "rgba(34, 113, 177, 0.8)"
                if chart_type == "bar"
                else "rgba(34, 113, 177, 0.1)",
                "borderWidth": 2,
                "fill": config.chart_type is ChartType.AREA,
                "tension": 0.1,
            }
        )
        plugins: dict[str, Any] = {
            "legend": {"display": bool(config.title)},
            "title": {"display": bool(config.title), "text": config.title or ""},
        }
        if config.subtitle:
            plugins["subtitle"] = {"display": True, "text": config.subtitle}
        if not len(data):
            plugins["subtitle"] = {"display": True, "text": EMPTY_STATE_MESSAGE}

        return {
            "type": chart_type,
            "data": payload,
            "options": {
                "responsive": True,
                "maintainAspectRatio": False,
                "plugins": plugins,
                "scales": {
                    "y": {
                        "beginAtZero": False,
                        "title": {"display": bool(series.units), "text": series.units or ""},
                    },
                    "x": {"grid": {"color": "rgba(0,0,0,0.05)"}},
                },
                "interaction": {"intersect": False, "mode": "index"},
            },
        }

    def _export_script(self, element_id: str, options_json: str) -> str:
        return f"""    <canvas id="{element_id}"></canvas>
    <script>
      const chart = new Chart(document.getElementById("{element_id}").getContext("2d"), {options_json});
    </script>"""


class HighchartsAdapter(RenderAdapter):
    library = ChartLibrary.HIGHCHARTS
    script_urls = (
        "https://code.highcharts.com/highcharts.js",
        "https://code.highcharts.com/modules/exporting.js",
        "https://code.highcharts.com/modules/no-data-to-display.js",
    )

    _TYPE_MAP = {ChartType.LINE: "line", ChartType.AREA: "area", ChartType.BAR: "column"}

    def build_options(
        self, data: FormattedSeries, series: IndicatorSeries, config: ChartConfig
    ) -> dict[str, Any]:
        if not isinstance(data, HighchartsData):
            raise TypeError("Highcharts adapter requires timestamp/value pairs")

        name = config.title or series.display_name
        return {
            "chart": {
                "type": self._TYPE_MAP[config.chart_type],
                "height": config.height_px,
                "zoomType": "x",
            },
            "title": {"text": config.title or series.name},
            "subtitle": {"text": config.subtitle},
            "xAxis": {"type": "datetime", "title": {"text": "Date"}},
            "yAxis": {"title": {"text": series.units or "Value"}},
            "legend": {"enabled": bool(config.title)},
            "series": [{"name": name, "data": data.to_dict()["data"], "color": _PRIMARY_COLOR}],
            "credits": {"enabled": False},
            "exporting": {"enabled": True, "filename": f"chart-{config.slug}"},
            "lang": {"noData": EMPTY_STATE_MESSAGE},
            "responsive": {
                "rules": [
                    {"condition": {"maxWidth": 500}, "chartOptions": {"legend": {"enabled": False}}}
                ]
            },
        }

    def _export_script(self, element_id: str, options_json: str) -> str:
        return f"""    <div id="{element_id}"></div>
    <script>
      Highcharts.chart("{element_id}", {options_json});
    </script>"""


_ADAPTERS: dict[ChartLibrary, type[RenderAdapter]] = {
    ChartLibrary.CHARTJS: ChartJsAdapter,
    ChartLibrary.HIGHCHARTS: HighchartsAdapter,
}


def get_adapter(library: ChartLibrary | str) -> RenderAdapter:
    return _ADAPTERS[ChartLibrary(library)]()
