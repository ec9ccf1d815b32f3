"""Resilient HTTP client — retry, backoff and error normalization over httpx.

This module is a transport-robustness wrapper only.  It decides whether a
response is retryable, how long to wait, and how to turn a failed response
into a ``ForgeError``; it never decides what a successful response means
for a particular endpoint.

Retry policy
------------
At most ``max_attempts`` requests are issued per call.

- 429, and 403 carrying rate-limit signals, are retried after the
  server-supplied delay (``Retry-After``, else ``X-RateLimit-Reset``) or,
  when none is given, after exponential backoff (1s, 2s, 4s, ...).
- Transient network failures (connect errors, timeouts, protocol errors)
  are retried with the same backoff, except on the final attempt, where
  they surface as ``NetworkError``.
- When every attempt was rate limited the call fails with
  ``RetryExhaustedError``.
- Failures that retrying cannot fix (undecodable bodies, redirect loops,
  malformed URLs) surface at once as classified ``ForgeError``s.

The attempt loop is a ``tenacity.AsyncRetrying``.  All delays are capped at
``max_retry_delay`` and go through an injectable ``sleep`` coroutine so
tests never wait on real timers.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import time
from collections.abc import Awaitable, Callable, Generator
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from actionforge.core.errors import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    NotFoundError,
    ResponseParseError,
    RetryExhaustedError,
)

if TYPE_CHECKING:
    from actionforge.config import ForgeSettings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

ACCEPT_HEADER = "application/vnd.github.v3+json"
_SNIPPET_LENGTH = 200


class BearerTokenAuth(httpx.Auth):
    """Sends the credential as ``Authorization: Bearer <token>``.

    One canonical scheme is used for every call; probing alternative
    schemes would spend rate-limit budget.
    """

    def __init__(self, token: str) -> None:
        self._token = token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def body_snippet(response: httpx.Response) -> str:
    text = response.text
    if len(text) > _SNIPPET_LENGTH:
        return text[:_SNIPPET_LENGTH] + "..."
    return text


def parse_json(response: httpx.Response) -> Any:
    """Decode a JSON body, raising ``ResponseParseError`` with a snippet on failure."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        snippet = body_snippet(response)
        raise ResponseParseError(
            f"Malformed JSON from {response.request.method} {response.request.url} "
            f"(status {response.status_code}): {snippet!r}",
            snippet=snippet,
            status_code=response.status_code,
        ) from exc


def extract_error_message(response: httpx.Response) -> str:
    """Best available error message: JSON ``message``, else raw text, else reason."""
    text = response.text.strip()
    try:
        data = json.loads(text) if text else None
    except ValueError:
        data = None

    if isinstance(data, dict) and data.get("message"):
        message = str(data["message"])
        if data.get("errors"):
            message += f" - {json.dumps(data['errors'])}"
        return message
    if text:
        return text[:_SNIPPET_LENGTH]
    return response.reason_phrase or f"HTTP {response.status_code}"


def is_rate_limited(response: httpx.Response) -> bool:
    """429 always; 403 only when the provider signals a rate limit."""
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    headers = response.headers
    if "retry-after" in headers or headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in extract_error_message(response).lower()


def error_for_response(response: httpx.Response) -> ApiError:
    """Translate a failed response into the matching ``ApiError`` subclass."""
    status = response.status_code
    message = extract_error_message(response)
    described = f"{response.request.method} {response.request.url.path} failed ({status}): {message}"
    if status == 401:
        return AuthenticationError(described, status_code=status)
    if status == 403:
        return AuthorizationError(described, status_code=status)
    if status == 404:
        return NotFoundError(described, status_code=status)
    return ApiError(described, status_code=status)


class _RateLimited(Exception):
    """Raised inside the attempt loop so tenacity schedules another try."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(response.status_code)
        self.response = response


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ResilientClient:
    """Async HTTP client for the hosting API with bounded retries.

    Parameters
    ----------
    base_url:
        API root, e.g. ``https://api.github.com``.
    token:
        Access credential, sent on every authenticated request.
    user_agent:
        Product-identifying client header.
    max_attempts:
        Upper bound on requests issued per ``request()`` call.
    initial_backoff:
        First exponential backoff delay in seconds; doubles per attempt.
    max_retry_delay:
        Cap applied to every computed or server-supplied delay.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport (tests pass ``httpx.MockTransport``).
    sleep:
        Coroutine used for every delay; defaults to ``asyncio.sleep``.
    clock:
        Returns the current epoch time; used for ``X-RateLimit-Reset``.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        user_agent: str = "actionforge",
        max_attempts: int = 3,
        initial_backoff: float = 1.0,
        max_retry_delay: float = 60.0,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._max_retry_delay = max_retry_delay
        self._backoff = wait_exponential(multiplier=initial_backoff, max=max_retry_delay)
        self._sleep = sleep
        self._clock = clock
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=BearerTokenAuth(token),
            headers={"Accept": ACCEPT_HEADER, "User-Agent": user_agent},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: ForgeSettings, **kwargs: Any) -> ResilientClient:
        """Build a client from ``ForgeSettings``; *kwargs* override (e.g. transport)."""
        options: dict[str, Any] = {
            "user_agent": settings.user_agent,
            "max_attempts": settings.max_attempts,
            "initial_backoff": settings.initial_backoff,
            "max_retry_delay": settings.max_retry_delay,
            "timeout": settings.request_timeout,
        }
        options.update(kwargs)
        return cls(settings.api_base_url, settings.token.get_secret_value(), **options)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        allow_not_found: bool = False,
        authenticated: bool = True,
        follow_redirects: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue a request with rate-limit and transient-failure retries.

        Parameters
        ----------
        allow_not_found:
            Return a 404 response instead of raising, for callers that treat
            absence as a valid state.
        authenticated:
            When False the credential is omitted entirely.
        follow_redirects:
            When False a 3xx response is returned to the caller unchanged.

        Raises
        ------
        RetryExhaustedError
            Every attempt was rate limited.
        NetworkError
            A transient network failure occurred on the final attempt, or
            the request could not be sent at all.
        ResponseParseError
            The response body could not be decoded.
        ApiError
            Any other non-success status (subclassed for 401/403/404).
        """
        auth_kwargs: dict[str, Any] = {} if authenticated else {"auth": None}
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type((_RateLimited, httpx.TransportError)),
            wait=self._retry_delay,
            sleep=self._sleep,
            before_sleep=functools.partial(self._log_retry, method, url),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._send(
                        method, url, follow_redirects=follow_redirects, **auth_kwargs, **kwargs
                    )
        except _RateLimited:
            raise RetryExhaustedError(
                f"{method} {url}: max retries exceeded ({self._max_attempts} attempts rate limited)"
            ) from None
        except httpx.TransportError as exc:
            raise NetworkError(
                f"{method} {url} failed after {self._max_attempts} attempts: {exc!r}"
            ) from exc
        except httpx.DecodingError as exc:
            snippet = str(exc)[:_SNIPPET_LENGTH]
            raise ResponseParseError(
                f"Undecodable response body from {method} {url}: {snippet}", snippet=snippet
            ) from exc
        except httpx.TooManyRedirects as exc:
            raise ApiError(f"{method} {url}: too many redirects") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NetworkError(f"{method} {url} could not be sent: {exc!r}") from exc

        if response.is_success or (not follow_redirects and response.is_redirect):
            return response
        if response.status_code == 404 and allow_not_found:
            return response
        raise error_for_response(response)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """GET *url* and decode the JSON body."""
        response = await self.request("GET", url, **kwargs)
        return parse_json(response)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internal: attempts and delays
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.request(method, url, **kwargs)
        if is_rate_limited(response):
            raise _RateLimited(response)
        return response

    def _retry_delay(self, retry_state: RetryCallState) -> float:
        """Server-supplied delay when present, else exponential backoff."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, _RateLimited):
            delay = self._server_delay(exc.response)
            if delay is not None:
                return min(max(delay, 0.0), self._max_retry_delay)
        return self._backoff(retry_state)

    def _log_retry(self, method: str, url: str, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, _RateLimited):
            reason = f"rate limited ({exc.response.status_code})"
        else:
            reason = f"transient failure ({exc.__class__.__name__})"
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "%s %s: %s, retrying in %.1fs (attempt %d/%d)",
            method, url, reason, delay, retry_state.attempt_number, self._max_attempts,
        )

    def _server_delay(self, response: httpx.Response) -> float | None:
        retry_after = response.headers.get("retry-after")
        if retry_after is not None:
            delay = self._parse_retry_after(retry_after)
            if delay is not None:
                return delay

        reset = response.headers.get("x-ratelimit-reset")
        if reset is not None and response.headers.get("x-ratelimit-remaining") == "0":
            try:
                return float(reset) - self._clock()
            except ValueError:
                return None
        return None

    def _parse_retry_after(self, value: str) -> float | None:
        try:
            return float(value)
        except ValueError:
            pass
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return when.timestamp() - self._clock()
