"""HTTP request wrapper with retry and exponential backoff."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from chinese_tutor.errors import RateLimitError, TransientNetworkError, UpstreamServiceError

logger = structlog.get_logger()

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

SleepFn = Callable[[float], Awaitable[Any]]


class RetryOptions(BaseModel):
    """Retry policy. Delays are in seconds."""

    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    retryable_statuses: frozenset[int] = DEFAULT_RETRYABLE_STATUSES


class ResilientTransport:
    """Sends requests through an ``httpx.AsyncClient``, retrying on failure.

    Transport-level errors (``httpx.TransportError``) and responses whose
    status is in ``retryable_statuses`` are retried after a growing delay.
    Any other response is returned unchanged, even when it is not 2xx. Once
    retries are exhausted the last response is returned, or the last
    exception re-raised. There is no built-in timeout beyond the client's own.

    Args:
        client: HTTP client used for every attempt.
        options: Default retry policy.
        sleep: Awaitable delay function, replaceable in tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        options: RetryOptions | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.client = client
        self.options = options or RetryOptions()
        self._sleep = sleep

    async def send(
        self, request: httpx.Request, options: RetryOptions | None = None
    ) -> httpx.Response:
        """Send ``request``, retrying per ``options`` (or the default policy)."""
        config = options or self.options
        delay = config.initial_delay

        for attempt in range(config.max_retries + 1):
            is_last = attempt == config.max_retries
            try:
                response = await self.client.send(request)
            except httpx.TransportError as e:
                if is_last:
                    logger.error(
                        "request_failed",
                        url=str(request.url),
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    raise
                logger.warning(
                    "network_error_retrying",
                    error=str(e),
                    delay=delay,
                    attempt=attempt + 1,
                    max_retries=config.max_retries,
                )
            else:
                if response.is_success or response.status_code not in config.retryable_statuses:
                    return response
                if is_last:
                    return response
                logger.warning(
                    "request_status_retrying",
                    status=response.status_code,
                    delay=delay,
                    attempt=attempt + 1,
                    max_retries=config.max_retries,
                )
                await response.aclose()

            await self._sleep(delay)
            delay = min(delay * config.backoff_multiplier, config.max_delay)

        raise AssertionError("unreachable")  # loop always returns or raises

    async def send_json(
        self, request: httpx.Request, options: RetryOptions | None = None
    ) -> dict[str, Any]:
        """Send ``request`` and decode a JSON object body.

        Raises:
            RateLimitError: Final status was 429.
            TransientNetworkError: Retries exhausted on a retryable failure.
            UpstreamServiceError: Any other non-2xx status or a malformed body,
                or any other httpx failure.
        """
        config = options or self.options
        try:
            response = await self.send(request, config)
        except httpx.TransportError as e:
            raise TransientNetworkError(str(e)) from e
        except httpx.HTTPError as e:
            raise UpstreamServiceError(str(e)) from e

        if response.status_code == 429:
            raise RateLimitError(_error_detail(response))
        if response.status_code in config.retryable_statuses:
            raise TransientNetworkError(
                _error_detail(response), status_code=response.status_code
            )
        if not response.is_success:
            raise UpstreamServiceError(
                _error_detail(response), status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamServiceError("malformed JSON reply") from e
        if not isinstance(data, dict):
            raise UpstreamServiceError("reply is not a JSON object")
        return data


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return f"HTTP {response.status_code}"
