"""Async HTTP fetcher with per-source throttling, bounded retries and fan-out."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
)
from urllib.parse import urlencode

import aiohttp

from .exceptions import ConnectionError, DataValidationError, create_http_error
from .monitoring import MetricsCollector
from .results import Err, FetchOutcome, Ok
from .throttle import ThrottlerRegistry

logger = logging.getLogger(__name__)

# Transient upstream failures, including Cloudflare edge errors 520-524
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504, 520, 521, 522, 523, 524})

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


def is_retryable_status(status: int) -> bool:
    """Default classifier for retryable HTTP statuses."""
    return status in RETRYABLE_STATUSES


@dataclass
class HttpRequest:
    """An outbound request tagged with the upstream source it targets."""

    source: str
    url: str
    method: str = "GET"
    params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    json_body: Optional[Any] = None
    timeout: Optional[float] = None

    @property
    def display_url(self) -> str:
        """URL including the query string, for logs and error messages."""
        if not self.params:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode(self.params)}"


@dataclass
class HttpResponse:
    """Status and body of an upstream response."""

    status: int
    text: str
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Parse the body as JSON."""
        try:
            return json.loads(self.text)
        except (TypeError, ValueError) as e:
            raise DataValidationError(
                f"Malformed JSON from {self.url or 'upstream'}: {e}",
                validation_type="json",
            )


class AiohttpTransport:
    """Sends HttpRequests over a shared aiohttp session."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self.session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def send(self, request: HttpRequest, timeout: float) -> HttpResponse:
        session = await self._get_session()
        async with session.request(
            request.method,
            request.url,
            params=request.params or None,
            json=request.json_body,
            headers=request.headers,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as response:
            text = await response.text()
            return HttpResponse(status=response.status, text=text, url=str(response.url))

    async def close(self) -> None:
        """Close HTTP session if this transport created it."""
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()
        self.session = None


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base: float = 0.3,
        timeout: float = 10.0,
        body_snippet_chars: int = 200,
    ):
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.timeout = timeout
        self.body_snippet_chars = body_snippet_chars

    def delay_for(self, attempt: int) -> float:
        """Linear backoff after the given (1-based) attempt."""
        return self.backoff_base * attempt


class RetryingFetcher:
    """
    Bounded-retry HTTP invocation.

    Every attempt, retries included, is paced by the source's throttler.
    Transport errors, timeouts and transient statuses are retried with
    linear backoff; any other non-success status fails immediately.
    Parsing the response body is the caller's responsibility.
    """

    def __init__(
        self,
        transport,
        throttlers: Optional[ThrottlerRegistry] = None,
        retry_config: Optional[RetryConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.transport = transport
        self.throttlers = throttlers or ThrottlerRegistry()
        self.retry_config = retry_config or RetryConfig()
        self.metrics = metrics
        self._sleep = sleep or asyncio.sleep

        self._stats = {
            "requests_made": 0,
            "requests_successful": 0,
            "requests_failed": 0,
            "total_retry_attempts": 0,
        }

    async def fetch(
        self,
        request: HttpRequest,
        classify_retryable: Optional[Callable[[int], bool]] = None,
        max_attempts: Optional[int] = None,
    ) -> HttpResponse:
        """
        Fetch a request with throttling and retry logic.

        Args:
            request: The request to send
            classify_retryable: Status classifier, defaults to RETRYABLE_STATUSES
            max_attempts: Override for the configured attempt bound

        Returns:
            The first successful response

        Raises:
            UpstreamHTTPError: Non-retryable status, or retryable status on the
                final attempt
            ConnectionError: Transport failure on the final attempt
        """
        classify = classify_retryable or is_retryable_status
        attempts = max_attempts or self.retry_config.max_attempts
        timeout = request.timeout or self.retry_config.timeout
        url = request.display_url

        last_status: Optional[int] = None
        last_snippet = ""
        last_diagnostic = "no attempt made"

        for attempt in range(1, attempts + 1):
            await self.throttlers.throttle(request.source)

            self._stats["requests_made"] += 1
            start_time = time.monotonic()

            try:
                response = await asyncio.wait_for(
                    self.transport.send(request, timeout), timeout
                )
            except TRANSPORT_ERRORS as e:
                last_status = None
                last_diagnostic = f"{e.__class__.__name__}: {e}".rstrip(": ")
                self._record(request, start_time, False, error_type=e.__class__.__name__)
                logger.warning(
                    f"Request to {request.source} failed (attempt {attempt}/{attempts}): "
                    f"{last_diagnostic}"
                )
            else:
                if response.ok:
                    self._stats["requests_successful"] += 1
                    self._record(request, start_time, True, status=response.status)
                    logger.debug(
                        f"Fetched {url} in {(time.monotonic() - start_time):.2f}s "
                        f"(attempt {attempt})"
                    )
                    return response

                snippet = response.text[: self.retry_config.body_snippet_chars]
                self._record(
                    request, start_time, False, status=response.status, error_type="http"
                )

                if not classify(response.status):
                    self._stats["requests_failed"] += 1
                    logger.error(
                        f"Non-retryable status {response.status} from {request.source}: {url}"
                    )
                    raise create_http_error(
                        response.status,
                        f"{snippet} ({request.method} {url})",
                        provider=request.source,
                        url=url,
                        body_snippet=snippet,
                        retryable=False,
                        attempts=attempt,
                    )

                last_status = response.status
                last_snippet = snippet
                last_diagnostic = f"status {response.status}: {snippet}"
                logger.warning(
                    f"Transient status {response.status} from {request.source} "
                    f"(attempt {attempt}/{attempts})"
                )

            if attempt < attempts:
                delay = self.retry_config.delay_for(attempt)
                logger.debug(f"Waiting {delay:.2f}s before retry...")
                await self._sleep(delay)
                self._stats["total_retry_attempts"] += 1

        self._stats["requests_failed"] += 1
        message = (
            f"All {attempts} attempts failed for {request.source}: "
            f"{last_diagnostic} ({request.method} {url})"
        )
        logger.error(message)

        if last_status is not None:
            raise create_http_error(
                last_status,
                message,
                provider=request.source,
                url=url,
                body_snippet=last_snippet,
                retryable=True,
                attempts=attempts,
            )
        raise ConnectionError(message, url=url, attempts=attempts, provider=request.source)

    async def fetch_json(self, request: HttpRequest, **kwargs) -> Any:
        """Fetch and parse a JSON body."""
        response = await self.fetch(request, **kwargs)
        return response.json()

    def _record(
        self,
        request: HttpRequest,
        start_time: float,
        success: bool,
        status: Optional[int] = None,
        error_type: Optional[str] = None,
    ) -> None:
        if self.metrics is None:
            return
        self.metrics.record_request(
            provider=request.source,
            method=request.method,
            duration_ms=(time.monotonic() - start_time) * 1000,
            success=success,
            status=status,
            error_type=error_type,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get fetcher statistics."""
        success_rate = 0.0
        if self._stats["requests_made"] > 0:
            success_rate = (
                self._stats["requests_successful"] / self._stats["requests_made"]
            )

        return {
            **self._stats,
            "success_rate": success_rate,
            "retry_config": {
                "max_attempts": self.retry_config.max_attempts,
                "backoff_base": self.retry_config.backoff_base,
                "timeout": self.retry_config.timeout,
            },
            "throttle": self.throttlers.get_stats(),
        }

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        for key in self._stats:
            self._stats[key] = 0


async def fan_out(
    keys: Iterable[str],
    worker: Callable[[str], Awaitable[Any]],
    concurrency: int = 6,
) -> List[FetchOutcome]:
    """
    Run ``worker`` for every key with bounded concurrency.

    Returns:
        One Ok/Err per key, in input order. Worker exceptions become Err.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run(key: str) -> FetchOutcome:
        async with semaphore:
            try:
                return Ok(key, await worker(key))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Fetch for {key} failed: {e}")
                return Err(key, str(e) or e.__class__.__name__)

    return list(await asyncio.gather(*(run(key) for key in keys)))
