"""Core data types shared by the fetch, format and render stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional, Union

from .errors import ErrorKind, MalformedResponseError

__all__ = [
    "BackupOutcome",
    "ChartConfig",
    "ChartLibrary",
    "ChartType",
    "FetchFailure",
    "FetchResult",
    "FetchSuccess",
    "IndicatorSeries",
    "LiveOutcome",
    "ObservationPoint",
    "SourceOutcome",
    "UnavailableOutcome",
    "parse_indicator_payload",
]

logger = logging.getLogger(__name__)

DEFAULT_TIMEFRAME = "1y"
DEFAULT_HEIGHT = "400px"
DEFAULT_WIDTH = "100%"


class ChartLibrary(str, Enum):
    CHARTJS = "chartjs"
    HIGHCHARTS = "highcharts"


class ChartType(str, Enum):
    LINE = "line"
    BAR = "bar"
    AREA = "area"


@dataclass(frozen=True)
class ObservationPoint:
    """A single dated observation exactly as delivered by the API.

    Values are kept raw; numeric coercion happens when the series is
    formatted so partially corrupt payloads still parse.
    """

    date: Optional[str]
    value: Any


@dataclass(frozen=True)
class IndicatorSeries:
    """Time series for one indicator plus its optional metadata."""

    slug: str
    points: tuple[ObservationPoint, ...] = ()
    name: Optional[str] = None
    units: Optional[str] = None
    source: Optional[str] = None
    last_updated: Optional[str] = None

    def __len__(self) -> int:
        return len(self.points)

    @property
    def display_name(self) -> str:
        return self.name or self.slug


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_text(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        text = _optional_text(candidate)
        if text is not None:
            return text
    return None


def parse_indicator_payload(payload: Any, *, slug: str = "") -> IndicatorSeries:
    """Build an :class:`IndicatorSeries` from a data or backup endpoint body.

    Raises
    ------
    MalformedResponseError
        If the body is not an object or its ``data`` member is not a list.
    """

    if not isinstance(payload, Mapping):
        raise MalformedResponseError("Response body is not a JSON object")

    raw_points = payload.get("data")
    if not isinstance(raw_points, list):
        raise MalformedResponseError("Response is missing a 'data' list")

    points: list[ObservationPoint] = []
    for entry in raw_points:
        if isinstance(entry, Mapping):
            points.append(ObservationPoint(date=_optional_text(entry.get("date")), value=entry.get("value")))
        else:
            points.append(ObservationPoint(date=None, value=None))

    meta = payload.get("meta") if isinstance(payload.get("meta"), Mapping) else {}
    indicator = payload.get("indicator") if isinstance(payload.get("indicator"), Mapping) else {}

    return IndicatorSeries(
        slug=_first_text(payload.get("slug"), indicator.get("slug"), slug) or slug,
        points=tuple(points),
        name=_first_text(payload.get("name"), indicator.get("name"), meta.get("name")),
        units=_first_text(payload.get("units"), meta.get("units"), indicator.get("units")),
        source=_first_text(payload.get("source_name"), meta.get("source"), indicator.get("source")),
        last_updated=_first_text(payload.get("last_updated"), meta.get("last_updated")),
    )


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in {"true", "1", "yes", "on"}:
        return True
    if normalized in {"false", "0", "no", "off"}:
        return False
    return default


def _coerce_dimension(value: Any, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{int(value)}px"
    text = str(value).strip()
    if not text:
        return default
    if text.isdigit():
        return f"{text}px"
    return text


def _coerce_enum(enum_cls: type[Enum], value: Any, default: Enum, label: str) -> Any:
    if value is None or value == "":
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.warning("Unknown %s '%s'; using '%s'", label, value, default.value)
        return default


@dataclass(frozen=True)
class ChartConfig:
    """Immutable per-render parameters for one chart container."""

    slug: str
    library: ChartLibrary = ChartLibrary.CHARTJS
    chart_type: ChartType = ChartType.LINE
    timeframe: str = DEFAULT_TIMEFRAME
    height: str = DEFAULT_HEIGHT
    width: str = DEFAULT_WIDTH
    controls: bool = True
    static: bool = False
    title: Optional[str] = None
    subtitle: Optional[str] = None
    css_class: Optional[str] = None

    @property
    def height_px(self) -> int:
        digits = "".join(ch for ch in self.height if ch.isdigit())
        return int(digits) if digits else 400

    def with_timeframe(self, timeframe: str) -> "ChartConfig":
        return replace(self, timeframe=timeframe.strip().lower())

    def with_chart_type(self, chart_type: ChartType | str) -> "ChartConfig":
        return replace(self, chart_type=ChartType(chart_type))

    @classmethod
    def from_declaration(
        cls,
        declaration: Mapping[str, Any],
        *,
        default_library: str = ChartLibrary.CHARTJS.value,
    ) -> "ChartConfig":
        """Build a config from page-declared attributes, applying defaults.

        Accepts the embedding attributes (``id``, ``library``, ``timeframe``,
        ``height``, ``width``, ``controls``, ``title``) as well as the keys the
        data plugin writes into ``data-chart-config`` (``slug``, ``type``,
        ``chart_type``, ``subtitle``, ``class``).
        """

        slug = _optional_text(declaration.get("slug")) or _optional_text(declaration.get("id")) or ""

        render_mode = declaration.get("type")
        if "static" in declaration:
            static = _coerce_bool(declaration.get("static"), False)
        else:
            static = str(render_mode or "").strip().lower() == "static"

        default_lib = _coerce_enum(ChartLibrary, default_library, ChartLibrary.CHARTJS, "library")
        timeframe = _optional_text(declaration.get("timeframe")) or DEFAULT_TIMEFRAME

        return cls(
            slug=slug,
            library=_coerce_enum(ChartLibrary, declaration.get("library"), default_lib, "library"),
            chart_type=_coerce_enum(ChartType, declaration.get("chart_type"), ChartType.LINE, "chart type"),
            timeframe=timeframe.lower(),
            height=_coerce_dimension(declaration.get("height"), DEFAULT_HEIGHT),
            width=_coerce_dimension(declaration.get("width"), DEFAULT_WIDTH),
            controls=_coerce_bool(declaration.get("controls"), True),
            static=static,
            title=_optional_text(declaration.get("title")),
            subtitle=_optional_text(declaration.get("subtitle")),
            css_class=_optional_text(declaration.get("class") or declaration.get("css_class")),
        )


@dataclass(frozen=True)
class FetchSuccess:
    data: Any

    ok = True


@dataclass(frozen=True)
class FetchFailure:
    kind: ErrorKind
    message: str
    status: Optional[int] = None

    ok = False


FetchResult = Union[FetchSuccess, FetchFailure]


@dataclass(frozen=True)
class LiveOutcome:
    series: IndicatorSeries

    source = "live"


@dataclass(frozen=True)
class BackupOutcome:
    """Backup snapshot served after the live request failed."""

    series: IndicatorSeries
    live_failure: Optional[FetchFailure] = field(default=None, compare=False)

    source = "backup"


@dataclass(frozen=True)
class UnavailableOutcome:
    kind: ErrorKind
    reason: str

    source = "unavailable"


SourceOutcome = Union[LiveOutcome, BackupOutcome, UnavailableOutcome]
