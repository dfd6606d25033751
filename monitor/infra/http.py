"""
Outbound HTTP for monitors, job actions and the CLI.

Every request carries a total timeout so that a hung upstream cannot tie up
a scheduled job indefinitely. Rate limiting (429) and upstream 5xx answers
are retried with exponential back-off and jitter; any other error status
fails at once.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional

import aiohttp

logger = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


def retry_after_seconds(value: Optional[str]) -> Optional[float]:
    """Seconds to wait according to a Retry-After header (delta or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class RetryPolicy:
    """How many attempts a request gets and how long to wait between them."""

    def __init__(self, attempts: int = 3, base_delay: float = 1.0, max_delay: float = 60.0):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    def retryable(self, error: Exception) -> bool:
        if isinstance(error, aiohttp.ClientResponseError):
            return error.status in RETRY_STATUSES
        return isinstance(error, (aiohttp.ClientConnectionError, asyncio.TimeoutError))

    def delay(self, attempt: int, error: Exception) -> float:
        if isinstance(error, aiohttp.ClientResponseError) and error.headers:
            hinted = retry_after_seconds(error.headers.get("Retry-After"))
            if hinted is not None:
                return min(hinted, self.max_delay)
        backoff = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        return backoff + random.uniform(0, self.base_delay)


class HttpClient:
    """aiohttp session owner with default headers and a :class:`RetryPolicy`.

    Usable as an async context manager; otherwise call :meth:`close`.
    Response bodies are read inside the retry loop, so callers never hold an
    open response.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.timeout = timeout
        self.retry = RetryPolicy(attempts=max_retries, base_delay=base_delay)
        self.headers: Dict[str, str] = dict(default_headers or {})
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpClient":
        self._open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _open(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _fetch(self, method: str, url: str, **kwargs) -> str:
        """Send a request and return the decoded body, retrying per policy."""
        session = self._open()
        headers = {**self.headers, **(kwargs.pop("headers", None) or {})}

        attempt = 0
        while True:
            attempt += 1
            try:
                async with session.request(method, url, headers=headers, **kwargs) as resp:
                    resp.raise_for_status()
                    return await resp.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt >= self.retry.attempts or not self.retry.retryable(e):
                    logger.error(f"{method} {url} failed after {attempt} attempt(s): {e}")
                    raise
                wait = self.retry.delay(attempt, e)
                logger.warning(
                    f"{method} {url} failed (attempt {attempt}/{self.retry.attempts}), "
                    f"retrying in {wait:.1f}s: {str(e).splitlines()[0] if str(e) else type(e).__name__}"
                )
                await asyncio.sleep(wait)

    async def get_text(self, url: str, **kwargs) -> str:
        return await self._fetch("GET", url, **kwargs)

    async def get_json(self, url: str, **kwargs) -> Any:
        return json.loads(await self._fetch("GET", url, **kwargs))

    async def post_json(self, url: str, data: Any = None, **kwargs) -> Any:
        """POST ``data`` as JSON; returns the decoded reply, or None when empty."""
        if data is not None:
            kwargs["json"] = data
        body = await self._fetch("POST", url, **kwargs)
        return json.loads(body) if body.strip() else None
