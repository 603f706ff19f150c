"""
Rate-limited, retrying access to external services.

Every outbound call made by the pipeline goes through a RateLimitedClient:
- a Throttle enforces a minimum interval between consecutive calls
- HTTP 429 honours Retry-After, other failures back off linearly
- after max_retries attempts FetchExhausted carries the last failure
"""

import asyncio
import time
import httpx
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, TypeVar
from core.config import settings
from core.exceptions import FetchExhausted
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Throttle:
    """
    Minimum spacing between consecutive calls.

    The lock serializes concurrent callers so that two coroutines sharing a
    client never observe the same ``last_request_time``.
    """

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self.last_request_time: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self):
        async with self._lock:
            if self.last_request_time is not None:
                elapsed = time.monotonic() - self.last_request_time
                delay = max(0.0, self.min_interval - elapsed)
                if delay > 0:
                    await asyncio.sleep(delay)
            self.last_request_time = time.monotonic()


class RetryableStatus(Exception):
    """Non-2xx response that should be attempted again"""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code} for {response.request.url}")


class RateLimitedClient:
    """
    Throttled httpx client with a bounded retry loop.

    Attributes:
        name: Short label used in logs and error context
        min_interval: Seconds between two consecutive calls
        max_retries: Attempts per call, including the first one
        retry_delay: Base delay in seconds; attempt n waits retry_delay * n
        non_retry_statuses: Statuses returned to the caller as-is (e.g. 404)
    """

    def __init__(
        self,
        name: str,
        min_interval: float = 0.0,
        max_retries: int = settings.MAX_RETRIES,
        retry_delay: float = settings.RETRY_DELAY_SECONDS,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        non_retry_statuses: Iterable[int] = (),
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.non_retry_statuses = set(non_retry_statuses)
        self.throttle = Throttle(min_interval)
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers=headers or {"User-Agent": settings.USER_AGENT},
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """GET with throttle and retries. Returns the 2xx (or non-retry) response."""
        return await self.request("GET", url, params=params, headers=headers, timeout=timeout)

    async def post(
        self,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        return await self.request("POST", url, params=params, json=json, headers=headers)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        timeout = kwargs.pop("timeout", None) or self.timeout

        async def send() -> httpx.Response:
            response = await self._client.request(method, url, timeout=timeout, **kwargs)
            if response.is_success or response.status_code in self.non_retry_statuses:
                return response
            raise RetryableStatus(response)

        return await self.call(send, description=f"{method} {url}")

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
    ) -> T:
        """
        Run ``operation`` under the throttle and retry contract.

        Used directly for non-HTTP calls such as browser navigation.

        Raises:
            FetchExhausted: after max_retries failed attempts
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_retries + 1):
            await self.throttle.wait()
            try:
                return await operation()

            except RetryableStatus as e:
                last_error = e
                if attempt == self.max_retries:
                    break
                delay = self._delay_for(e.response, attempt)
                logger.warning(
                    f"[{self.name}] {description} returned {e.response.status_code}. "
                    f"Retrying in {delay:.2f}s (attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(delay)

            except Exception as e:
                # Timeouts, transport errors and browser failures alike
                last_error = e
                if attempt == self.max_retries:
                    break
                delay = self.retry_delay * attempt
                logger.warning(
                    f"[{self.name}] {description} raised {type(e).__name__}: {e}. "
                    f"Retrying in {delay:.2f}s (attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(delay)

        logger.error(f"[{self.name}] {description} failed after {self.max_retries} attempts: {last_error}")
        context: Dict[str, Any] = {"client": self.name, "target": description}
        if isinstance(last_error, RetryableStatus):
            context["status_code"] = last_error.response.status_code
        raise FetchExhausted(
            f"{description} failed after {self.max_retries} attempts",
            context=context,
            last_error=last_error,
            attempts=self.max_retries,
        )

    def _delay_for(self, response: httpx.Response, attempt: int) -> float:
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    return max(0.0, float(retry_after))
                except ValueError:
                    logger.debug(f"[{self.name}] Unparseable Retry-After header: {retry_after}")
        return self.retry_delay * attempt
