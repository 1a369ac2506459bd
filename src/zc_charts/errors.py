"""Error kinds and exceptions shared across the chart pipeline."""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ConfigurationError",
    "ErrorKind",
    "LibraryLoadError",
    "MalformedResponseError",
    "ZCChartsError",
]


class ErrorKind(str, Enum):
    """Closed set of failure categories surfaced to charts."""

    CONFIG_MISSING = "config_missing"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"
    LIBRARY_LOAD_FAILURE = "library_load_failure"
    UNAVAILABLE = "unavailable"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.NETWORK_ERROR, ErrorKind.SERVER_ERROR)


class ZCChartsError(Exception):
    """Base class for errors raised by the package."""

    kind: ErrorKind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class ConfigurationError(ZCChartsError):
    kind = ErrorKind.CONFIG_MISSING


class MalformedResponseError(ZCChartsError):
    kind = ErrorKind.MALFORMED_RESPONSE


class LibraryLoadError(ZCChartsError):
    kind = ErrorKind.LIBRARY_LOAD_FAILURE
