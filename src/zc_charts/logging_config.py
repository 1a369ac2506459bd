"""Logging configuration helpers for the ZC Charts package."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .security import SecretRedactingFilter

_LOG_LEVELS: Mapping[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def configure_logging(level: str | int = logging.INFO, *, api_key: Optional[str] = None) -> None:
    """Configure application-wide logging.

    Parameters
    ----------
    level:
        Either a logging level name (``"INFO"``) or numeric level (``20``).
    api_key:
        When given, every root handler masks this key in emitted records.
    """

    resolved_level = _resolve_level(level)
    logging.basicConfig(
        level=resolved_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    if api_key:
        install_redaction(api_key)


def install_redaction(api_key: str) -> None:
    for handler in logging.getLogger().handlers:
        if any(
            isinstance(existing, SecretRedactingFilter) and existing.api_key == api_key
            for existing in handler.filters
        ):
            continue
        handler.addFilter(SecretRedactingFilter(api_key))


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level

    upper = level.upper()
    if upper not in _LOG_LEVELS:
        raise ValueError(
            f"Unsupported log level '{level}'. Choose from {', '.join(_LOG_LEVELS)}."
        )
    return _LOG_LEVELS[upper]
