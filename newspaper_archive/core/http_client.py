"""Shared aiohttp client used for board pages, page images and AI provider calls."""

import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, Deque, Dict, Optional, Tuple

import aiohttp
from aiohttp import ClientError, ClientTimeout
from tenacity import (
    before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential
)

from ..config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Retry policy for GET requests
transient_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((ClientError, asyncio.TimeoutError)),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True
)


class RequestThrottle:
    """Sliding-window limit of ``max_calls`` per ``period`` seconds."""

    def __init__(self, max_calls: int, period: float = 1.0):
        self.max_calls = max_calls
        self.period = period
        self._sent: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def wait(self):
        async with self._lock:
            while True:
                now = time.monotonic()
                while self._sent and now - self._sent[0] >= self.period:
                    self._sent.popleft()
                if len(self._sent) < self.max_calls:
                    self._sent.append(now)
                    return
                await asyncio.sleep(self.period - (now - self._sent[0]))


class AsyncHTTPClient:
    """Pooled aiohttp session with retried GETs and throttled POSTs."""

    def __init__(self, user_agent: Optional[str] = None, max_posts_per_second: int = 3,
                 config: Settings = default_settings):
        self.session: Optional[aiohttp.ClientSession] = None
        self.user_agent = user_agent or config.user_agent
        self.throttle = RequestThrottle(max_posts_per_second)
        self.timeout = ClientTimeout(total=config.source_timeout, connect=10)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def is_open(self) -> bool:
        return self.session is not None and not self.session.closed

    async def start(self):
        """Open the session and its connector."""
        if self.is_open:
            return
        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=20, limit_per_host=5, ttl_dns_cache=300),
            timeout=self.timeout,
            headers={'User-Agent': self.user_agent}
        )

    async def close(self):
        if self.is_open:
            await self.session.close()
        self.session = None

    @transient_retry
    async def get(self, url: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> aiohttp.ClientResponse:
        """GET with retries on connection errors and timeouts. The caller releases the response."""
        await self.start()
        return await self.session.get(url, headers=headers, **kwargs)

    async def post(self, url: str, json: Any = None, headers: Optional[Dict[str, str]] = None,
                   **kwargs) -> aiohttp.ClientResponse:
        await self.start()
        await self.throttle.wait()
        return await self.session.post(url, json=json, headers=headers, **kwargs)

    async def fetch_text(self, url: str, timeout: Optional[float] = None, **kwargs) -> str:
        """GET a page and return its body; non-2xx raises ClientResponseError."""
        if timeout is not None:
            kwargs['timeout'] = ClientTimeout(total=timeout)
        async with await self.get(url, **kwargs) as response:
            response.raise_for_status()
            return await response.text()

    async def post_json(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None,
                        timeout: Optional[float] = None, **kwargs) -> Tuple[int, str]:
        """POST a JSON payload and return ``(status, body)`` without raising on HTTP errors."""
        if timeout is not None:
            kwargs['timeout'] = ClientTimeout(total=timeout)
        async with await self.post(url, json=payload, headers=headers, **kwargs) as response:
            return response.status, await response.text()


_shared_client: Optional[AsyncHTTPClient] = None


@asynccontextmanager
async def get_http_client():
    """Yield the process-wide client, opening it on first use. It stays open afterwards."""
    global _shared_client

    if _shared_client is None:
        _shared_client = AsyncHTTPClient()
    await _shared_client.start()
    yield _shared_client


async def close_http_client():
    global _shared_client
    if _shared_client is not None:
        await _shared_client.close()
        _shared_client = None
        logger.debug("Shared HTTP client closed")


@asynccontextmanager
async def use_http_client(client: Optional[AsyncHTTPClient] = None):
    """Yield ``client`` when given, otherwise the shared one."""
    if client is not None:
        yield client
    else:
        async with get_http_client() as shared:
            yield shared
