"""Translate timeframe tokens into cutoff dates."""

from __future__ import annotations

from datetime import date
from typing import Mapping, Optional

import pandas as pd

__all__ = [
    "TIMEFRAMES",
    "describe_timeframes",
    "is_valid_timeframe",
    "resolve_cutoff",
]

_TIMEFRAME_MONTHS: Mapping[str, int] = {
    "3m": 3,
    "6m": 6,
    "1y": 12,
    "2y": 24,
    "3y": 36,
    "5y": 60,
    "10y": 120,
    "15y": 180,
    "20y": 240,
    "25y": 300,
}

TIMEFRAMES: tuple[str, ...] = (*_TIMEFRAME_MONTHS, "all")


def is_valid_timeframe(token: Optional[str]) -> bool:
    if token is None:
        return False
    return token.strip().lower() in TIMEFRAMES


def resolve_cutoff(token: Optional[str], today: Optional[date] = None) -> Optional[date]:
    """Return the first date covered by ``token``, or ``None`` for no cutoff.

    ``all`` and unrecognized tokens both mean "no cutoff"; callers needing
    strict validation should check :func:`is_valid_timeframe` first.
    """

    if token is None:
        return None
    months = _TIMEFRAME_MONTHS.get(token.strip().lower())
    if months is None:
        return None

    anchor = pd.Timestamp(today or date.today())
    # DateOffset clamps to month end, e.g. 2024-05-31 minus 3 months -> 2024-02-29
    cutoff = anchor - pd.DateOffset(months=months)
    return cutoff.date()


def describe_timeframes(today: Optional[date] = None) -> list[tuple[str, Optional[date]]]:
    return [(token, resolve_cutoff(token, today)) for token in TIMEFRAMES]
