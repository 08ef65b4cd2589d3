"""HTTP client with retry/backoff and request budgeting."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import requests

from . import config
from .errors import ApiError, TourApiError, TransportError

logger = logging.getLogger(__name__)


class BudgetExceededError(TourApiError):
    pass


@dataclass
class RequestMetrics:
    network_requests: int = 0
    retries: int = 0
    api_errors: int = 0
    transport_errors: int = 0

    def inc_network(self) -> None:
        self.network_requests += 1

    def inc_retry(self) -> None:
        self.retries += 1

    def inc_failure(self, error: BaseException) -> None:
        if isinstance(error, TransportError):
            self.transport_errors += 1
        elif isinstance(error, ApiError):
            self.api_errors += 1
        else:
            raise ValueError(f"Unknown failure kind: {type(error).__name__}")


class RequestBudget:
    """Caps upstream requests per run; the service key has a daily quota."""

    def __init__(
        self,
        max_requests: int,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.max_requests = max_requests
        self.metrics = metrics
        self._count = 0

    @property
    def count(self) -> int:
        if self.metrics is not None:
            return int(self.metrics.network_requests)
        return self._count

    def consume(self) -> None:
        if self.count >= self.max_requests:
            raise BudgetExceededError(
                f"Request budget exceeded: {self.count} >= {self.max_requests}"
            )
        if self.metrics is not None:
            self.metrics.inc_network()
        else:
            self._count += 1


SleepFn = Callable[[float], Awaitable[Any]]


class HttpClient:
    def __init__(
        self,
        timeout: Optional[float] = None,
        retry_delays: Optional[Sequence[float]] = None,
        session: Optional[requests.Session] = None,
        sleep: Optional[SleepFn] = None,
        budget: Optional[RequestBudget] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT_SECONDS
        self.retry_delays = tuple(retry_delays if retry_delays is not None else config.HTTP_RETRY_DELAYS)
        self.session = session if session is not None else requests.Session()
        self._sleep = sleep or asyncio.sleep
        self.budget = budget
        self.metrics = metrics

    async def get_json(
        self,
        url: str,
        params: Dict[str, str],
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ) -> Any:
        """GET and decode JSON, retrying network failures and 5xx responses.

        4xx responses and undecodable bodies fail at once with ApiError. When
        every attempt failed, TransportError wraps the last failure.
        """
        max_retries = len(self.retry_delays) if retries is None else max(0, int(retries))
        attempts = max_retries + 1
        request_timeout = self.timeout if timeout is None else timeout
        headers = {"Accept": "application/json"}

        last_error: Optional[BaseException] = None
        last_status: Optional[int] = None
        for attempt in range(1, attempts + 1):
            self._consume()
            try:
                resp = await asyncio.to_thread(
                    self.session.get, url, params=params, headers=headers, timeout=request_timeout
                )
            except requests.RequestException as exc:
                last_error = exc
                last_status = None
                logger.warning("Request to %s failed: %s (attempt %s/%s)", url, exc, attempt, attempts)
            else:
                status = resp.status_code
                if status >= 500:
                    last_error = requests.HTTPError(f"HTTP {status}", response=resp)
                    last_status = status
                    logger.warning("HTTP %s from %s (attempt %s/%s)", status, url, attempt, attempts)
                elif status >= 400:
                    # Non-retryable
                    logger.error("HTTP %s from %s", status, url)
                    raise ApiError(resp.reason or "Request rejected", status_code=status)
                else:
                    try:
                        return resp.json()
                    except ValueError:
                        logger.error("Non-JSON response from %s", url)
                        raise ApiError(
                            "Response body is not valid JSON",
                            code="INVALID_RESPONSE",
                            status_code=status,
                        )

            if attempt < attempts:
                if self.metrics is not None:
                    self.metrics.inc_retry()
                await self._sleep(self._delay_for(attempt))

        raise TransportError(
            f"Request to {url} failed after {attempts} attempts: {last_error}",
            attempts=attempts,
            last_error=last_error,
            status_code=last_status,
        )

    def _delay_for(self, attempt: int) -> float:
        if not self.retry_delays:
            return 0.0
        index = min(attempt - 1, len(self.retry_delays) - 1)
        return self.retry_delays[index]

    def _consume(self) -> None:
        if self.budget is not None:
            self.budget.consume()
        elif self.metrics is not None:
            self.metrics.inc_network()

    def close(self) -> None:
        self.session.close()
