"""MangaDex API client with rate limiting and retry logic."""

from __future__ import annotations

import asyncio
import random
import time
from collections import deque
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from mangaquest.core.exceptions import ConfigurationError
from mangaquest.core.metrics import (
    mangadex_rate_limit_waits_total,
    mangadex_request_duration_seconds,
    mangadex_requests_total,
)

if TYPE_CHECKING:
    from mangaquest.core.config import Settings

logger = structlog.get_logger("mangaquest.mangadex.client")

RETRYABLE_STATUS_CODES = (429, 502, 503, 504)


class MangaDexClient:
    """MangaDex API client.

    Features:
    - Sliding-window rate limiting (MangaDex allows 5 requests per second)
    - Exponential backoff retry on HTTP 429/5xx gateway errors and network errors
    - Client identification header on every request
    - search_manga() never raises for upstream failures; it returns no candidates
    """

    def __init__(
        self,
        user_agent: str,
        base_url: str = "https://api.mangadex.org",
        rate_limit: int = 5,  # requests per period
        rate_limit_period: float = 1.0,  # seconds
        max_retries: int = 2,
        timeout: float = 15.0,
        retry_backoff_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize MangaDex client.

        Args:
            user_agent: Client identification sent as User-Agent (required by MangaDex)
            base_url: MangaDex API base URL
            rate_limit: Maximum requests per rate_limit_period
            rate_limit_period: Time window in seconds for rate limiting
            max_retries: Maximum number of retries on retryable errors
            timeout: Request timeout in seconds
            retry_backoff_seconds: Base delay for exponential backoff
            transport: Optional httpx transport (used by tests)

        Raises:
            ConfigurationError: If user_agent or base_url is empty
        """
        if not user_agent or not user_agent.strip():
            raise ConfigurationError("MangaDex client identification (user agent) not configured")
        if not base_url or not base_url.strip():
            raise ConfigurationError("MangaDex base URL not configured")

        self.user_agent = user_agent.strip()
        self.base_url = base_url.strip().rstrip("/")
        self.rate_limit = rate_limit
        self.rate_limit_period = rate_limit_period
        self.max_retries = max_retries
        self.timeout = timeout
        self.retry_backoff_seconds = retry_backoff_seconds
        self._transport = transport

        self._request_times: deque[float] = deque()
        self._rate_limit_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> MangaDexClient:
        """Build a client from application settings."""
        return cls(
            user_agent=settings.mangadex_user_agent,
            base_url=settings.mangadex_base_url,
            rate_limit=settings.mangadex_rate_limit,
            rate_limit_period=settings.mangadex_rate_limit_period,
            max_retries=settings.mangadex_max_retries,
            timeout=settings.mangadex_timeout_seconds,
            transport=transport,
        )

    async def _wait_for_rate_limit(self) -> None:
        """Wait until another request fits in the rate limit window.

        Requests are serialized through the lock and recorded before it is
        released, so concurrent callers see each other's requests.
        """
        async with self._rate_limit_lock:
            now = time.monotonic()

            while self._request_times and self._request_times[0] <= now - self.rate_limit_period:
                self._request_times.popleft()

            if len(self._request_times) >= self.rate_limit:
                wait_time = self._request_times[0] + self.rate_limit_period - now
                if wait_time > 0:
                    mangadex_rate_limit_waits_total.inc()
                    logger.debug(
                        "Rate limit reached, waiting",
                        wait_seconds=round(wait_time, 3),
                        current_count=len(self._request_times),
                    )
                    await asyncio.sleep(wait_time)
                    now = time.monotonic()
                    while (
                        self._request_times
                        and self._request_times[0] <= now - self.rate_limit_period
                    ):
                        self._request_times.popleft()

            self._request_times.append(now)

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "application/json",
        }

    async def fetch(self, endpoint: str, params: dict[str, Any] | list[tuple[str, Any]]) -> Any:
        """GET an API endpoint with rate limiting and retry.

        Args:
            endpoint: API path (e.g., "manga")
            params: Query parameters

        Returns:
            Decoded JSON response body

        Raises:
            httpx.HTTPStatusError: For HTTP errors (after retries)
            httpx.RequestError: For network errors (after retries)
        """
        url = f"{self.base_url}/{endpoint.strip('/')}"

        for attempt in range(self.max_retries + 1):
            await self._wait_for_rate_limit()
            started = time.monotonic()
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.get(url, params=params, headers=self._headers())
                mangadex_request_duration_seconds.observe(time.monotonic() - started)
                mangadex_requests_total.labels(status=str(response.status_code)).inc()
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code in RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                    base_wait = self.retry_backoff_seconds * 2**attempt
                    wait_time = base_wait + random.uniform(0, base_wait * 0.5)
                    logger.warning(
                        "MangaDex request failed, retrying",
                        status_code=status_code,
                        attempt=attempt + 1,
                        wait_seconds=round(wait_time, 2),
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise

            except httpx.RequestError as e:
                mangadex_requests_total.labels(status="error").inc()
                if attempt < self.max_retries:
                    wait_time = self.retry_backoff_seconds * 2**attempt
                    logger.warning(
                        "Network error, retrying",
                        error=str(e),
                        attempt=attempt + 1,
                        wait_seconds=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise

        raise RuntimeError("Unexpected error in MangaDex client")

    async def search_manga(self, title: str, limit: int = 10) -> list[dict[str, Any]]:
        """Search MangaDex by free-text title.

        Requests author, artist and cover art relationships inline, ordered by
        MangaDex relevance. Upstream failures are logged and return [].

        Args:
            title: Raw (non-normalized) title used as the query
            limit: Maximum number of candidates

        Returns:
            Candidate manga records in provider relevance order
        """
        params: list[tuple[str, Any]] = [
            ("title", title),
            ("limit", limit),
            ("includes[]", "author"),
            ("includes[]", "artist"),
            ("includes[]", "cover_art"),
            ("order[relevance]", "desc"),
        ]

        try:
            data = await self.fetch("manga", params)
        except httpx.HTTPStatusError as e:
            logger.error(
                "MangaDex search error",
                title=title,
                status_code=e.response.status_code,
            )
            return []
        except httpx.RequestError as e:
            logger.error("MangaDex search failed", title=title, error=str(e))
            return []
        except ValueError as e:
            # Body was not valid JSON
            logger.error("MangaDex search returned invalid JSON", title=title, error=str(e))
            return []

        candidates = data.get("data") if isinstance(data, dict) else None
        if not isinstance(candidates, list):
            return []
        return [candidate for candidate in candidates if isinstance(candidate, dict)]
