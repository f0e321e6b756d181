"""Async HTTP client with retry logic.

httpx + tenacity for the payment gateway, payout rail and notification calls.

Features:
- Async HTTP client with connection pooling
- Retry with exponential backoff for idempotent calls
- Single-attempt requests for calls that must not be repeated
"""

import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


# Retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_MIN_WAIT = 1  # seconds
DEFAULT_MAX_WAIT = 10  # seconds

RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.NetworkError)


class AsyncHttpClient:
    """Async HTTP client with retry logic and connection pooling.

    Usage:
        async with AsyncHttpClient(base_url="https://api.example.com") as client:
            data = await client.get_json("/data")
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        connect_timeout: float = 5.0,
        max_connections: int = 50,
        max_retries: int = DEFAULT_MAX_RETRIES,
        min_wait: float = DEFAULT_MIN_WAIT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HTTP client.

        Args:
            base_url: Prefix for relative request URLs
            headers: Default headers sent with every request
            timeout: Total request timeout in seconds
            connect_timeout: Connection timeout in seconds
            max_connections: Maximum concurrent connections
            max_retries: Attempts for retried requests
            min_wait: Initial backoff in seconds
            transport: Custom transport (tests use httpx.MockTransport)
        """
        self._base_url = base_url
        self._headers = headers or {}
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._limits = httpx.Limits(max_connections=max_connections)
        self._max_retries = max_retries
        self._min_wait = min_wait
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AsyncHttpClient":
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout,
            limits=self._limits,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the underlying httpx client."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")
        return self._client

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Request with retry on timeouts and network errors.

        Only use for idempotent calls (GET, or POST with an idempotency key).
        The last error is re-raised once attempts are exhausted.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=1, min=self._min_wait, max=DEFAULT_MAX_WAIT),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                response = await self.client.request(method, url, **kwargs)
                response.raise_for_status()
        return response

    async def request_once(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Single attempt, no retry."""
        response = await self.client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    async def get_json(self, url: str, **kwargs) -> dict[str, Any]:
        response = await self.request("GET", url, **kwargs)
        return response.json()

    async def post_json(
        self,
        url: str,
        data: dict[str, Any],
        *,
        retry: bool = True,
        **kwargs,
    ) -> dict[str, Any]:
        """POST a JSON body and return the parsed JSON response."""
        send = self.request if retry else self.request_once
        response = await send("POST", url, json=data, **kwargs)
        return response.json()
