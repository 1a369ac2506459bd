"""API key format checks and redaction helpers.

Keys are looked up from :class:`~zc_charts.settings.Settings` and only ever
checked for shape here; validation against the data plugin happens server
side.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

__all__ = [
    "SecretRedactingFilter",
    "mask_key",
    "redact",
    "validate_key_format",
]

_KEY_PATTERN = re.compile(r"^zc_[a-f0-9]{29}$")


def validate_key_format(api_key: Optional[str]) -> bool:
    """Return ``True`` when ``api_key`` looks like a ZC data API key."""

    if not api_key:
        return False
    return _KEY_PATTERN.match(api_key) is not None


def mask_key(api_key: Optional[str]) -> str:
    """Return a display-safe preview of ``api_key``."""

    if not api_key:
        return ""
    if len(api_key) < 12:
        return "*" * len(api_key)
    return api_key[:6] + "*" * (len(api_key) - 10) + api_key[-4:]


def redact(text: str, api_key: Optional[str]) -> str:
    if not api_key or api_key not in text:
        return text
    return text.replace(api_key, mask_key(api_key))


class SecretRedactingFilter(logging.Filter):
    """Replace an API key with its masked form in every log record."""

    def __init__(self, api_key: str) -> None:
        super().__init__()
        self.api_key = api_key

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if self.api_key in message:
            record.msg = redact(message, self.api_key)
            record.args = None
        return True
