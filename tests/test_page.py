from __future__ import annotations

import asyncio
import logging

import pytest

from zc_charts.errors import ErrorKind
from zc_charts.models import ChartConfig, ChartLibrary, ChartType
from zc_charts.page import ChartSurface, Controls, ErrorPanel, Page
from zc_charts.renderers import ChartHandle

PAGE_MARKUP = """
<div class="zc-chart-wrapper"
     data-chart-config='{"slug": "gdp_us", "library": "highcharts", "type": "dynamic", "timeframe": "5Y"}'>
  <div id="zc-chart-gdp-1" class="zc-chart-container"></div>
</div>
<div class="zc-chart-wrapper" data-chart-config='{not json'>
  <div id="broken" class="zc-chart-container"></div>
</div>
<div class="zc-chart-wrapper" data-chart-config='{"id": "cpi_us", "type": "static", "height": 300}'>
  <div class="zc-chart-container zc-chart-static" id="cpi-box"></div>
</div>
"""


def test_declaration_defaults() -> None:
    config = ChartConfig.from_declaration({"id": "gdp_us"})

    assert config.slug == "gdp_us"
    assert config.library is ChartLibrary.CHARTJS
    assert config.chart_type is ChartType.LINE
    assert config.timeframe == "1y"
    assert config.height == "400px"
    assert config.width == "100%"
    assert config.controls is True
    assert config.static is False


def test_declaration_coerces_page_attributes(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="zc_charts.models"):
        config = ChartConfig.from_declaration(
            {
                "id": "cpi_us",
                "library": "d3",
                "chart_type": "Bar",
                "controls": "false",
                "height": "250",
                "class": "wide",
            },
            default_library="highcharts",
        )

    assert config.library is ChartLibrary.HIGHCHARTS
    assert config.chart_type is ChartType.BAR
    assert config.controls is False
    assert config.height == "250px"
    assert config.height_px == 250
    assert config.css_class == "wide"
    assert "Unknown library 'd3'" in caplog.text


def test_from_html_reads_chart_config_attributes(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR, logger="zc_charts.page"):
        page = Page.from_html(PAGE_MARKUP)

    containers = list(page)
    assert len(page) == 2
    assert "malformed data-chart-config" in caplog.text

    gdp, cpi = containers
    assert gdp.container_id == "zc-chart-gdp-1"
    assert gdp.config.slug == "gdp_us"
    assert gdp.config.library is ChartLibrary.HIGHCHARTS
    assert gdp.config.timeframe == "5y"
    assert gdp.config.static is False

    assert cpi.container_id == "cpi-box"
    assert cpi.config.slug == "cpi_us"
    assert cpi.config.static is True
    assert cpi.config.height == "300px"


def test_from_declarations_generates_container_ids() -> None:
    page = Page.from_declarations([{"id": "gdp_us"}, {"id": "gdp_us"}, {}])

    assert [container.container_id for container in page] == [
        "zc-chart-gdp_us-1",
        "zc-chart-gdp_us-2",
        "zc-chart-chart-3",
    ]


def test_surface_markup_is_escaped() -> None:
    surface = ChartSurface("chart-1")
    handle = ChartHandle(
        library=ChartLibrary.CHARTJS,
        slug="gdp_us",
        options={"title": "</script><script>alert(1)</script>"},
        point_count=1,
    )
    surface.mount(handle, fallback=True)
    surface.show_notice("<b>cached</b>")
    surface.update_metadata(source="BEA & Co", last_updated="2024-06-01")

    markup = surface.to_html()

    assert "</script><script>alert" not in markup
    assert "<\\/script><script>alert(1)<\\/script>" in markup
    assert "&lt;b&gt;cached&lt;/b&gt;" in markup
    assert "BEA &amp; Co" in markup
    assert "zc-chart-fallback" in markup


def test_error_state_replaces_chart() -> None:
    surface = ChartSurface("chart-1")
    surface.mount(ChartHandle(ChartLibrary.CHARTJS, "gdp_us", {}, 0), fallback=False)

    surface.show_error(ErrorPanel(kind=ErrorKind.NOT_FOUND, message="Requested indicator data not available."))
    markup = surface.to_html()

    assert surface.handle is None
    assert "zc-chart-error-not_found" in markup
    assert "zc-chart-options" not in markup
    assert "zc-retry-btn" not in markup


def test_controls_dispatch_sync_and_async_handlers() -> None:
    controls = Controls()
    seen: list[str] = []

    def sync_handler(value: str) -> None:
        seen.append(f"sync:{value}")

    async def async_handler(value: str) -> None:
        seen.append(f"async:{value}")

    controls.on(Controls.TIMEFRAME, sync_handler)
    controls.on(Controls.TIMEFRAME, async_handler)
    asyncio.run(controls.trigger(Controls.TIMEFRAME, "5y"))

    assert seen == ["sync:5y", "async:5y"]
    assert controls.listener_count(Controls.TIMEFRAME) == 2

    controls.off(Controls.TIMEFRAME, sync_handler)
    controls.off(Controls.TIMEFRAME, sync_handler)
    asyncio.run(controls.trigger(Controls.TIMEFRAME, "1y"))

    assert seen[-1] == "async:1y"
    assert controls.listener_count() == 1
