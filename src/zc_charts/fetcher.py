"""Bounded-retry HTTP GET for the indicator data API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from .errors import ErrorKind, MalformedResponseError
from .models import FetchFailure, FetchResult, FetchSuccess, parse_indicator_payload
from .security import redact

LOGGER = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_BACKOFF_BASE",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_TIMEOUT",
    "RetryingFetcher",
]

DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_BACKOFF_BASE = 1.0

Parser = Callable[[Any], Any]
Sleeper = Callable[[float], Awaitable[Any]]


def _identity(payload: Any) -> Any:
    return payload


def _display_url(url: str) -> str:
    return url.split("?", 1)[0]


def _error_body_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:200] or None
    if isinstance(body, Mapping) and body.get("message"):
        return str(body["message"])
    return None


def _status_failure(response: httpx.Response) -> FetchFailure:
    status = response.status_code
    if status in (401, 403):
        kind = ErrorKind.UNAUTHORIZED
    elif status == 404:
        kind = ErrorKind.NOT_FOUND
    elif status >= 500:
        kind = ErrorKind.SERVER_ERROR
    else:
        kind = ErrorKind.CLIENT_ERROR

    detail = _error_body_message(response)
    message = f"HTTP {status}: {detail}" if detail else f"HTTP {status}"
    return FetchFailure(kind=kind, message=message, status=status)


class RetryingFetcher:
    """Issue GET requests with a per-attempt timeout and exponential backoff.

    Network errors, timeouts and 5xx responses are retried up to
    ``max_retries`` additional times, waiting ``backoff_base * 2 ** attempt``
    seconds between attempts. 4xx responses and unparseable bodies are
    returned immediately. No exception escapes :meth:`fetch` for transport,
    status or decoding problems; callers always receive a
    :class:`~zc_charts.models.FetchSuccess` or
    :class:`~zc_charts.models.FetchFailure`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        self.client = client
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * (2 ** attempt)

    async def fetch(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        parse: Parser = parse_indicator_payload,
    ) -> FetchResult:
        """GET ``url`` and run the decoded JSON body through ``parse``."""

        timeout = self.timeout if timeout is None else timeout
        retries = self.max_retries if max_retries is None else max_retries
        secret = (params or {}).get("access_key")
        display = _display_url(url)

        failure = FetchFailure(kind=ErrorKind.NETWORK_ERROR, message=f"No request made to {display}")
        for attempt in range(retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.client.get(url, params=dict(params or {})), timeout
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                failure = FetchFailure(
                    kind=ErrorKind.NETWORK_ERROR,
                    message=f"Request to {display} timed out after {timeout:g}s",
                )
            except httpx.HTTPError as exc:
                failure = FetchFailure(
                    kind=ErrorKind.NETWORK_ERROR,
                    message=redact(f"Network error contacting {display}: {exc.__class__.__name__}", secret),
                )
            else:
                if response.is_success:
                    return self._decode(response, parse, display)
                failure = _status_failure(response)
                failure = FetchFailure(kind=failure.kind, message=redact(failure.message, secret), status=failure.status)
                if not failure.kind.retryable:
                    LOGGER.debug("Request to %s failed without retry: %s", display, failure.message)
                    return failure

            if attempt < retries:
                delay = self.backoff_delay(attempt)
                LOGGER.warning(
                    "Temporary error fetching %s; retry %s/%s in %.2fs: %s",
                    display,
                    attempt + 1,
                    retries,
                    delay,
                    failure.message,
                )
                await self._sleep(delay)

        LOGGER.warning("Giving up on %s after %s attempt(s): %s", display, retries + 1, failure.message)
        return failure

    async def fetch_json(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> FetchResult:
        return await self.fetch(
            url, params=params, timeout=timeout, max_retries=max_retries, parse=_identity
        )

    @staticmethod
    def _decode(response: httpx.Response, parse: Parser, display: str) -> FetchResult:
        try:
            payload = response.json()
        except ValueError:
            return FetchFailure(
                kind=ErrorKind.MALFORMED_RESPONSE,
                message=f"Response from {display} is not valid JSON",
                status=response.status_code,
            )
        try:
            data = parse(payload)
        except MalformedResponseError as exc:
            return FetchFailure(
                kind=ErrorKind.MALFORMED_RESPONSE,
                message=f"Unexpected response from {display}: {exc}",
                status=response.status_code,
            )
        return FetchSuccess(data=data)
