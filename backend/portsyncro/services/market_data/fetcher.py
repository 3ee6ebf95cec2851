# backend/portsyncro/services/market_data/fetcher.py
"""
Single upstream HTTP call with a hard timeout and a bounded retry budget.

Every price and exchange rate integration goes through SourceFetcher, so the
retry policy lives in exactly one place:

- Timeout: the call is cancelled after ``timeout`` seconds. Not retried.
- HTTP 429: retried after ``rate_limit_backoff * attempt_number`` seconds.
- Any other failure (non-2xx, connection error): retried after a fixed
  ``retry_delay``.
- After ``max_attempts`` the last FetchError propagates. Callers never
  retry on top of this.

Each attempt picks a random User-Agent from a small pool. This only helps
against naive upstream filters and carries no correctness weight.
"""

import asyncio
import json
import logging
import random
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from portsyncro.services.constants import (
    FETCH_MAX_ATTEMPTS,
    FETCH_RATE_LIMIT_BACKOFF_SECONDS,
    FETCH_RETRY_DELAY_SECONDS,
    FETCH_TIMEOUT_SECONDS,
    USER_AGENTS,
)
from portsyncro.services.exceptions import (
    FetchTimeoutError,
    MalformedPayloadError,
    UpstreamHTTPError,
    UpstreamRateLimitError,
)

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT = "application/json, text/html;q=0.9, */*;q=0.8"


@dataclass(frozen=True)
class RawResponse:
    """A successful (2xx) upstream response."""

    url: str
    status_code: int
    text: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            MalformedPayloadError: If the body is not valid JSON
        """
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise MalformedPayloadError(f"Invalid JSON from {self.url}") from e


class SourceFetcher:
    """
    Performs one GET against one upstream with timeout and retry policy.

    Args:
        client: Shared httpx.AsyncClient (owned by the application lifespan)
        timeout: Default hard timeout per attempt, in seconds
        max_attempts: Total attempts including the first
        rate_limit_backoff: Base backoff after an HTTP 429
        retry_delay: Fixed delay after other retryable failures
        sleep: Awaitable sleep used between attempts (injectable for tests)
        rng: Random source for User-Agent selection
        user_agents: Pool of User-Agent strings
    """

    def __init__(
            self,
            client: httpx.AsyncClient,
            timeout: float = FETCH_TIMEOUT_SECONDS,
            max_attempts: int = FETCH_MAX_ATTEMPTS,
            rate_limit_backoff: float = FETCH_RATE_LIMIT_BACKOFF_SECONDS,
            retry_delay: float = FETCH_RETRY_DELAY_SECONDS,
            sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
            rng: random.Random | None = None,
            user_agents: Sequence[str] = USER_AGENTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.rate_limit_backoff = rate_limit_backoff
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._user_agents = tuple(user_agents)

    async def fetch(
            self,
            url: str,
            headers: Mapping[str, str] | None = None,
            params: Mapping[str, Any] | None = None,
            timeout: float | None = None,
    ) -> RawResponse:
        """
        GET ``url`` under the retry policy.

        Returns:
            RawResponse for a 2xx answer

        Raises:
            FetchTimeoutError: The attempt exceeded its timeout
            UpstreamRateLimitError: Still HTTP 429 after the last attempt
            UpstreamHTTPError: Non-2xx or transport failure after the last attempt
        """
        effective_timeout = timeout if timeout is not None else self.timeout

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait_before_retry,
            retry=retry_if_exception_type((UpstreamRateLimitError, UpstreamHTTPError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                return await self._attempt(
                    url,
                    headers,
                    params,
                    effective_timeout,
                    attempt.retry_state.attempt_number,
                )

        raise AssertionError("unreachable: tenacity reraises the last error")

    def _wait_before_retry(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, UpstreamRateLimitError):
            return self.rate_limit_backoff * retry_state.attempt_number
        return self.retry_delay

    async def _attempt(
            self,
            url: str,
            headers: Mapping[str, str] | None,
            params: Mapping[str, Any] | None,
            timeout: float,
            attempt_number: int,
    ) -> RawResponse:
        request_headers = {
            "User-Agent": self._rng.choice(self._user_agents),
            "Accept": DEFAULT_ACCEPT,
        }
        if headers:
            request_headers.update(headers)

        try:
            response = await asyncio.wait_for(
                self._client.get(url, headers=request_headers, params=params),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise FetchTimeoutError(url, timeout, attempts=attempt_number) from e
        except httpx.HTTPError as e:
            raise UpstreamHTTPError(
                url,
                reason=str(e) or type(e).__name__,
                attempts=attempt_number,
            ) from e

        if response.status_code == 429:
            raise UpstreamRateLimitError(url, attempts=attempt_number)
        if not response.is_success:
            raise UpstreamHTTPError(url, status_code=response.status_code, attempts=attempt_number)

        logger.debug(f"GET {url} -> {response.status_code} (attempt {attempt_number})")
        return RawResponse(
            url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )
