"""
Async HTTP client with the retry policy shared by all collaborators.
Retries only on HTTP 429/5xx and network failures, with exponential backoff.
"""

import logging
from typing import Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from booking_intake.config import get_settings


logger = logging.getLogger(__name__)


def is_retryable_response(response: httpx.Response) -> bool:
    return response.status_code == 429 or response.status_code >= 500


def _last_outcome(retry_state: RetryCallState) -> httpx.Response:
    # Hand back the final response so callers can classify it;
    # re-raises if the final attempt was a transport error.
    return retry_state.outcome.result()


class RetryingHttpClient:
    """
    Thin wrapper over httpx.AsyncClient.

    A fresh AsyncClient is opened per request so instances hold no
    connection state and can be shared across requests.
    """

    def __init__(
        self,
        base_url: str = "",
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = base_url
        self.headers = headers or {}
        self.timeout = settings.http_timeout_seconds if timeout is None else timeout
        self.max_retries = settings.http_max_retries if max_retries is None else max_retries
        self.backoff_seconds = settings.http_backoff_seconds if backoff_seconds is None else backoff_seconds
        self.transport = transport

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds),
            retry=(
                retry_if_exception_type(httpx.TransportError)
                | retry_if_result(is_retryable_response)
            ),
            retry_error_callback=_last_outcome,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying transient failures."""
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            return await self._retrying()(client.request, method, url, **kwargs)
