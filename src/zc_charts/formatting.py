"""Convert indicator series into the data shapes each chart library expects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np
import pandas as pd

from .models import ChartLibrary, IndicatorSeries

__all__ = [
    "ChartJsData",
    "FormattedSeries",
    "HighchartsData",
    "format_series",
    "normalize_points",
]

_EPOCH = pd.Timestamp("1970-01-01", tz="UTC")


@dataclass(frozen=True)
class ChartJsData:
    """Parallel label/value arrays for Chart.js."""

    labels: tuple[str, ...]
    values: tuple[float, ...]

    def __len__(self) -> int:
        return len(self.values)

    def to_dict(self, *, label: Optional[str] = None) -> dict[str, Any]:
        return {
            "labels": list(self.labels),
            "datasets": [{"label": label or "", "data": list(self.values)}],
        }


@dataclass(frozen=True)
class HighchartsData:
    """``[timestamp_ms, value]`` samples for Highcharts datetime axes."""

    points: tuple[tuple[int, float], ...]

    def __len__(self) -> int:
        return len(self.points)

    def to_dict(self) -> dict[str, Any]:
        return {"data": [[timestamp, value] for timestamp, value in self.points]}


FormattedSeries = Union[ChartJsData, HighchartsData]


def _clean_value(value: Any) -> Any:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip().replace(",", "")
    return value


def normalize_points(series: IndicatorSeries) -> pd.DataFrame:
    """Return the usable points of ``series`` as a ``date``/``value`` frame.

    Points without a parseable date or a finite value are dropped, the rest
    are sorted by calendar day and duplicate days keep the last occurrence.
    """

    if not series.points:
        return pd.DataFrame(
            {
                "date": pd.Series(dtype="datetime64[ns, UTC]"),
                "value": pd.Series(dtype="float64"),
            }
        )

    raw_dates = pd.Series([point.date for point in series.points], dtype="object")
    raw_values = pd.Series([_clean_value(point.value) for point in series.points], dtype="object")

    dates = pd.to_datetime(raw_dates, errors="coerce", utc=True, format="ISO8601").dt.normalize()
    values = pd.to_numeric(raw_values, errors="coerce").astype("float64")

    frame = pd.DataFrame({"date": dates, "value": values})
    frame = frame[frame["date"].notna() & np.isfinite(frame["value"])]
    frame = frame.sort_values("date", kind="stable")
    frame = frame.drop_duplicates(subset="date", keep="last")
    return frame.reset_index(drop=True)


def format_series(series: IndicatorSeries, library: ChartLibrary | str) -> FormattedSeries:
    """Format ``series`` for ``library``.

    An empty result is valid; renderers show an empty state for it.
    """

    target = ChartLibrary(library)
    frame = normalize_points(series)

    if target is ChartLibrary.HIGHCHARTS:
        timestamps = ((frame["date"] - _EPOCH) // pd.Timedelta(milliseconds=1)).astype("int64")
        return HighchartsData(
            points=tuple(
                (int(timestamp), float(value))
                for timestamp, value in zip(timestamps, frame["value"])
            )
        )

    labels = frame["date"].dt.strftime("%Y-%m-%d")
    return ChartJsData(
        labels=tuple(str(label) for label in labels),
        values=tuple(float(value) for value in frame["value"]),
    )
