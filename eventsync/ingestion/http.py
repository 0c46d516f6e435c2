"""
Shared async HTTP helper.

Every outbound call made by the pipeline (adapter page fetches, geocoding,
image downloads, cache warm-ups) goes through ``HttpClient`` so that the
timeout, the politeness delay and the retry policy are applied uniformly.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0
DEFAULT_USER_AGENT = "Blissbase"


@dataclass(frozen=True)
class RetryPolicy:
    """Capped exponential backoff for retryable failures (5xx, network errors)."""

    max_retries: int = 5
    base_delay_s: float = 1.0
    max_delay_s: float = 10.0

    def compute_backoff_s(self, attempt: int) -> float:
        """
        attempt: 1..N
        """
        return min(self.base_delay_s * (2 ** max(0, attempt - 1)), self.max_delay_s)


class HttpClient:
    """
    Thin wrapper around ``httpx.AsyncClient``.

    - explicit timeout on every request
    - minimum delay between consecutive requests made through this client
    - retries with backoff on 5xx and transport errors; timeouts and unsupported
      URLs are final
    """

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        delay_s: float = 0.0,
        retry: RetryPolicy | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.timeout_s = timeout_s
        self.delay_s = delay_s
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request_at: float | None = None
        self._client = httpx.AsyncClient(
            headers={"User-Agent": DEFAULT_USER_AGENT, **(headers or {})},
            timeout=httpx.Timeout(timeout_s),
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def _throttle(self) -> None:
        if self.delay_s <= 0:
            return
        async with self._lock:
            if self._last_request_at is not None:
                wait = self._last_request_at + self.delay_s - time.monotonic()
                if wait > 0:
                    await self._sleep(wait)
            self._last_request_at = time.monotonic()

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Perform a request and return the successful response.

        Raises:
            FetchError: on any request failure, non-2xx status or exhausted retries
        """
        attempt = 0
        while True:
            if attempt > 0:
                backoff = self.retry.compute_backoff_s(attempt)
                logger.warning(
                    f"Retry attempt {attempt}/{self.retry.max_retries} for {url} after {backoff:.1f}s"
                )
                await self._sleep(backoff)
            else:
                logger.debug(f"Fetching: {url}")

            await self._throttle()

            try:
                response = await self._client.request(
                    method, url, params=params, timeout=self.timeout_s
                )
            except httpx.TimeoutException as e:
                raise FetchError(
                    url, f"request took longer than {self.timeout_s}s"
                ) from e
            except httpx.UnsupportedProtocol as e:
                raise FetchError(url, f"unsupported URL: {e}") from e
            except httpx.TransportError as e:
                if attempt < self.retry.max_retries:
                    logger.warning(f"Network error fetching {url}: {e}")
                    attempt += 1
                    continue
                raise FetchError(url, f"network error: {e}") from e
            except (httpx.RequestError, httpx.InvalidURL) as e:
                # redirect loops, undecodable bodies, malformed URLs
                raise FetchError(url, f"request failed: {e}") from e

            if response.is_success:
                return response

            status = response.status_code
            if 500 <= status < 600 and attempt < self.retry.max_retries:
                logger.warning(f"Error fetching {url}: {status} {response.reason_phrase}")
                attempt += 1
                continue

            raise FetchError(url, f"{status} {response.reason_phrase}", status_code=status)

    async def get_bytes(self, url: str) -> bytes:
        response = await self.request("GET", url)
        return response.content

    async def get_text(self, url: str) -> str:
        response = await self.request("GET", url)
        return response.text

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        response = await self.request("GET", url, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(url, f"invalid JSON body: {e}") from e
