"""HTTP fetching with bounded retries for survey adapters."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "AI-Survey-Agent/1.0 (+https://github.com/toolscout/toolscout)"

SleepFunc = Callable[[float], Awaitable[None]]


class FetchError(Exception):
    """Raised when a URL cannot be fetched after all retry attempts."""

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


@dataclass
class FetchedPage:
    """Body and response details of a successful fetch."""
    url: str
    status: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {self.url}: {e}", url=self.url, status=self.status) from e


class SurveyFetcher:
    """Shared aiohttp client with exponential backoff and Retry-After support."""

    def __init__(self,
                 user_agent: str = DEFAULT_USER_AGENT,
                 request_timeout: int = 30,
                 backoff_base: float = 1.0,
                 max_backoff: float = 60.0,
                 sleep: Optional[SleepFunc] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize fetcher.

        Args:
            user_agent: User agent sent with every request
            request_timeout: Total request timeout in seconds
            backoff_base: Delay multiplier for exponential backoff (seconds)
            max_backoff: Upper bound for a computed backoff delay (seconds)
            sleep: Coroutine used for every wait; defaults to asyncio.sleep
            session: Pre-built client session, mainly for tests
        """
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.backoff_base = backoff_base
        self.max_backoff = max_backoff
        self.sleep: SleepFunc = sleep or asyncio.sleep
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": self.user_agent},
            )
            self._owns_session = True
        return self.session

    async def close(self):
        """Close the client session if this fetcher created it."""
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None

    def calculate_retry_delay(self, attempt: int, base: Optional[float] = None,
                              cap: Optional[float] = None) -> float:
        """Exponential backoff: base * 2^attempt, capped."""
        base = self.backoff_base if base is None else base
        cap = self.max_backoff if cap is None else cap
        return min(base * (2 ** attempt), cap)

    def _retry_after_delay(self, header: Optional[str], fallback: float) -> float:
        """Seconds to wait for a Retry-After header (delta-seconds or HTTP date)."""
        if not header:
            return fallback
        try:
            return max(0.0, float(header))
        except ValueError:
            pass
        try:
            retry_at = parsedate_to_datetime(header)
        except (TypeError, ValueError):
            return fallback
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=timezone.utc)
        return max(0.0, (retry_at - datetime.now(timezone.utc)).total_seconds())

    async def fetch_with_retry(self, url: str, headers: Optional[Dict[str, str]] = None,
                               max_retries: int = 3,
                               backoff: Optional[Dict[str, float]] = None) -> FetchedPage:
        """GET a URL, retrying rate limits and transient failures.

        At most `max_retries` requests are issued. A 429 waits for its
        Retry-After value (or the backoff delay when absent); any other
        failure waits base * 2^attempt. No wait follows the final attempt.

        Args:
            url: URL to fetch
            headers: Extra request headers
            max_retries: Total number of attempts
            backoff: Optional {"base", "max"} overriding the fetcher defaults

        Returns:
            FetchedPage for the first 2xx response

        Raises:
            FetchError: The last failure once attempts are exhausted
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        backoff = backoff or {}
        base = backoff.get("base", self.backoff_base)
        cap = backoff.get("max", self.max_backoff)

        request_headers = {"User-Agent": self.user_agent}
        request_headers.update(headers or {})

        session = self._get_session()
        last_error: Optional[FetchError] = None

        for attempt in range(max_retries):
            is_last = attempt == max_retries - 1
            try:
                async with session.get(url, headers=request_headers) as response:
                    if response.status == 429:
                        delay = self._retry_after_delay(
                            response.headers.get("Retry-After"),
                            self.calculate_retry_delay(attempt, base, cap),
                        )
                        last_error = FetchError(f"Rate limited (429) by {url}", url=url, status=429)
                        if not is_last:
                            logger.warning(f"Rate limited by {url}, waiting {delay:.1f}s "
                                           f"(attempt {attempt + 1}/{max_retries})")
                            await self.sleep(delay)
                        continue

                    if not 200 <= response.status < 300:
                        raise FetchError(f"HTTP {response.status} from {url}", url=url, status=response.status)

                    text = await response.text()
                    return FetchedPage(
                        url=url,
                        status=response.status,
                        text=text,
                        headers=dict(response.headers),
                    )

            except FetchError as e:
                last_error = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = FetchError(f"Request to {url} failed: {e or type(e).__name__}", url=url)
                last_error.__cause__ = e

            if not is_last:
                delay = self.calculate_retry_delay(attempt, base, cap)
                logger.warning(f"{last_error}, retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries})")
                await self.sleep(delay)

        logger.error(f"Giving up on {url} after {max_retries} attempts: {last_error}")
        raise last_error
