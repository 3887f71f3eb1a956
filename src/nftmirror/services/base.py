"""Base HTTP client with circuit breaker.

This module provides:
- CircuitState enum for circuit breaker states
- CircuitBreaker dataclass guarding one external service
- BaseAPIClient for bounded, circuit-protected HTTP requests
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import httpx
import structlog

from nftmirror.core.exceptions import CircuitBreakerOpenError, ExternalServiceError

log = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # requests allowed
    OPEN = "open"  # requests blocked
    HALF_OPEN = "half_open"  # one trial request allowed


@dataclass
class CircuitBreaker:
    """Opens after consecutive failures of one service.

    After `cooldown_seconds` a single trial request is let through (half-open);
    its outcome closes or reopens the circuit.

    Attributes:
        service: Name used in logs and errors.
        failure_threshold: Consecutive failures before opening.
        cooldown_seconds: Seconds before a trial request is allowed.
    """

    service: str = "external"
    failure_threshold: int = 5
    cooldown_seconds: int = 30
    failure_count: int = field(default=0, init=False)
    opened_at: datetime | None = field(default=None, init=False)
    state: CircuitState = field(default=CircuitState.CLOSED, init=False)

    def record_success(self) -> None:
        if self.state is not CircuitState.CLOSED:
            log.info("circuit_breaker_closed", service=self.service)
        self.failure_count = 0
        self.opened_at = None
        self.state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self.failure_count += 1

        if self.state is CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            reopened = self.state is CircuitState.HALF_OPEN
            self.state = CircuitState.OPEN
            self.opened_at = datetime.now(UTC)
            log.warning(
                "circuit_breaker_reopened" if reopened else "circuit_breaker_opened",
                service=self.service,
                failure_count=self.failure_count,
            )

    def can_execute(self) -> bool:
        """Check whether a request may be sent now.

        An open circuit whose cooldown has elapsed moves to half-open.
        """
        if self.state is not CircuitState.OPEN:
            return True

        if self.opened_at is None or self.seconds_until_trial() > 0:
            return False

        self.state = CircuitState.HALF_OPEN
        log.info("circuit_breaker_half_open", service=self.service)
        return True

    def raise_if_open(self) -> None:
        """Raise if the circuit blocks requests.

        Raises:
            CircuitBreakerOpenError: If open and cooling down.
        """
        if not self.can_execute():
            raise CircuitBreakerOpenError(
                f"{self.service}: circuit open, next trial in "
                f"{self.seconds_until_trial():.1f}s"
            )

    def seconds_until_trial(self) -> float:
        if self.opened_at is None:
            return 0.0
        elapsed = datetime.now(UTC) - self.opened_at
        return max(0.0, (timedelta(seconds=self.cooldown_seconds) - elapsed).total_seconds())


class BaseAPIClient:
    """HTTP client with a lazy httpx session and a circuit breaker.

    Requests may target absolute URLs, so one client can serve several
    gateways. `max_retries` of 1 means a single attempt.

    Example:
        client = BaseAPIClient(service="ipfs", timeout=5.0)
        response = await client.get("https://ipfs.io/ipfs/Qm...")
        await client.close()
    """

    def __init__(
        self,
        service: str,
        base_url: str = "",
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        max_retries: int = 3,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_cooldown: int = 30,
    ) -> None:
        """Initialize BaseAPIClient.

        Args:
            service: Service name for logs and errors.
            base_url: Prefix for relative request paths.
            timeout: Per-request timeout in seconds.
            headers: Default headers for all requests.
            max_retries: Attempts per request (1 disables retries).
            circuit_breaker_threshold: Failures before circuit opens.
            circuit_breaker_cooldown: Seconds before half-open.
        """
        self.service = service
        self.base_url = base_url
        self.timeout = timeout
        self.headers = headers or {}
        self.max_retries = max_retries
        self._client: httpx.AsyncClient | None = None
        self._circuit_breaker = CircuitBreaker(
            service=service,
            failure_threshold=circuit_breaker_threshold,
            cooldown_seconds=circuit_breaker_cooldown,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
            )
            log.debug("httpx_client_created", service=self.service)
        return self._client

    async def close(self) -> None:
        """Close the httpx client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            log.debug("httpx_client_closed", service=self.service)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying 429/5xx and transport errors.

        Args:
            method: HTTP method.
            url: Absolute URL or path relative to `base_url`.
            **kwargs: Passed through to httpx.

        Returns:
            Successful response.

        Raises:
            CircuitBreakerOpenError: If the circuit is open.
            ExternalServiceError: On a 4xx response or once attempts run out.
        """
        self._circuit_breaker.raise_if_open()
        client = await self._get_client()
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                self._circuit_breaker.record_success()
                return response

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if 400 <= status_code < 500 and status_code != 429:
                    log.warning(
                        "request_client_error",
                        service=self.service,
                        url=url,
                        status_code=status_code,
                    )
                    raise ExternalServiceError(
                        service=self.service,
                        message=f"HTTP {status_code} for {url}",
                        status_code=status_code,
                    ) from e
                self._circuit_breaker.record_failure()
                last_error = e
                log.warning(
                    "request_server_error",
                    service=self.service,
                    url=url,
                    status_code=status_code,
                    attempt=attempt,
                )

            except httpx.RequestError as e:
                self._circuit_breaker.record_failure()
                last_error = e
                log.warning(
                    "request_connection_error",
                    service=self.service,
                    url=url,
                    error=repr(e),
                    attempt=attempt,
                )

            if attempt < self.max_retries:
                await asyncio.sleep(min(2 ** (attempt - 1), 4))

        raise ExternalServiceError(
            service=self.service,
            message=f"{url} failed after {self.max_retries} attempt(s): {last_error!r}",
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Make a GET request."""
        return await self._request("GET", url, **kwargs)
