"""
Rate limiting and API request management for external services.

This module provides per-service request throttling and a small HTTP client
with exponential backoff for the tools that call out to third-party APIs
(web search, geocoding, IP geolocation).
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from aiolimiter import AsyncLimiter
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from task_orchestrator.utils.error_handling import APIError, is_recoverable

# HTTP Status Codes
HTTP_STATUS_OK = 200
HTTP_STATUS_REDIRECT = 300
HTTP_STATUS_TOO_MANY_REQUESTS = 429


@dataclass
class RateLimitConfig:
    """Configuration for a service's rate limits."""

    service_name: str
    requests_per_minute: int
    max_retries: int = 3
    min_wait_seconds: float = 1.0
    max_wait_seconds: float = 30.0
    timeout_seconds: float = 10.0
    retry_status_codes: list[int] = field(
        default_factory=lambda: [429, 500, 502, 503, 504]
    )


class ServiceRateLimiter:
    """
    Rate limiter for a specific service.

    Wraps an AsyncLimiter sized to the service's requests-per-minute budget.
    """

    def __init__(self, config: RateLimitConfig):
        self.config = config
        self.limiter = AsyncLimiter(max(1, config.requests_per_minute), 60)
        logger.debug(
            f"Initialized rate limiter for {config.service_name} "
            f"({config.requests_per_minute}/min)"
        )

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        await self.limiter.acquire()

    def should_retry_exception(self, exception: BaseException) -> bool:
        """
        Determine if an exception should trigger a retry.

        Args:
            exception: The exception to check

        Returns:
            True if should retry, False otherwise
        """
        if isinstance(exception, APIError):
            return exception.status_code in self.config.retry_status_codes
        return is_recoverable(exception)


class RateLimitManager:
    """
    Manager for rate limiters across multiple services.

    Unregistered services get a limiter built from the default configuration.
    """

    def __init__(self, configs: list[RateLimitConfig] | None = None):
        self.limiters: dict[str, ServiceRateLimiter] = {}
        self.default_config = RateLimitConfig(
            service_name="default", requests_per_minute=30
        )
        for config in configs or []:
            self.register_service(config)

    def register_service(self, config: RateLimitConfig) -> ServiceRateLimiter:
        limiter = ServiceRateLimiter(config)
        self.limiters[config.service_name] = limiter
        return limiter

    def get_limiter(self, service_name: str) -> ServiceRateLimiter:
        """
        Get the rate limiter for a service.

        Args:
            service_name: Name of the service

        Returns:
            ServiceRateLimiter for the service, or a default one if not registered
        """
        if service_name not in self.limiters:
            logger.warning(
                f"No rate limiter configured for {service_name}, "
                f"using default configuration."
            )
            self.register_service(
                RateLimitConfig(
                    service_name=service_name,
                    requests_per_minute=self.default_config.requests_per_minute,
                )
            )
        return self.limiters[service_name]


def before_sleep_callback(retry_state: RetryCallState) -> None:
    """
    Callback executed before sleeping between retries.

    Args:
        retry_state: Current retry state
    """
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    if exception:
        sleep = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Request failed (attempt {retry_state.attempt_number}), "
            f"retrying in {sleep:.2f} seconds: {exception!s}"
        )


async def with_rate_limit(
    limiter: ServiceRateLimiter, func: Callable[[], Awaitable[Any]]
) -> Any:
    """
    Execute a request factory with throttling and retries.

    Args:
        limiter: Limiter of the service being called
        func: Zero-argument callable returning a fresh awaitable per attempt

    Returns:
        Result of the function
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception(limiter.should_retry_exception),
        stop=stop_after_attempt(limiter.config.max_retries),
        wait=wait_exponential(
            multiplier=1,
            min=limiter.config.min_wait_seconds,
            max=limiter.config.max_wait_seconds,
        ),
        reraise=True,
        before_sleep=before_sleep_callback,
    ):
        with attempt:
            await limiter.acquire()
            return await func()
    return None  # pragma: no cover


DEFAULT_RATE_LIMITS = [
    RateLimitConfig(service_name="firecrawl", requests_per_minute=10, timeout_seconds=10),
    RateLimitConfig(service_name="mapbox", requests_per_minute=300, timeout_seconds=5),
    RateLimitConfig(
        service_name="ip-api", requests_per_minute=45, max_retries=1, timeout_seconds=5
    ),
]


class APIClient:
    """
    Base client for API requests with rate limiting and retries.

    Provides a foundation for service-specific API clients with built-in
    throttling, exponential backoff, per-call timeouts, and error mapping.
    """

    def __init__(
        self,
        service_name: str,
        base_url: str,
        api_key: str | None = None,
        manager: RateLimitManager | None = None,
        timeout_seconds: float | None = None,
    ):
        """
        Initialize the API client.

        Args:
            service_name: Name of the service
            base_url: Base URL for API requests
            api_key: Bearer token sent with every request (optional)
            manager: Rate limit manager owning this service's limiter
            timeout_seconds: Per-request timeout overriding the limiter default
        """
        self.service_name = service_name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.limiter = (manager or RateLimitManager(DEFAULT_RATE_LIMITS)).get_limiter(
            service_name
        )
        self.timeout = aiohttp.ClientTimeout(
            total=timeout_seconds or self.limiter.config.timeout_seconds
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Make an API request with rate limiting and retries.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            params: Query parameters (optional)
            json_data: JSON data for request body (optional)
            headers: Additional HTTP headers (optional)

        Returns:
            Parsed JSON response

        Raises:
            APIError: If the request fails after retries
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}" if endpoint else self.base_url

        request_headers = {}
        if headers:
            request_headers.update(headers)
        if self.api_key:
            request_headers["Authorization"] = f"Bearer {self.api_key}"

        async def do_request() -> dict[str, Any]:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    method.upper(),
                    url,
                    params=params,
                    json=json_data,
                    headers=request_headers,
                ) as response:
                    status_code = response.status
                    response_text = await response.text()

                    if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
                        logger.warning(f"Rate limited by {self.service_name} API")
                        raise APIError(
                            "Rate limit exceeded",
                            self.service_name,
                            status_code=status_code,
                        )

                    if not (HTTP_STATUS_OK <= status_code < HTTP_STATUS_REDIRECT):
                        raise APIError(
                            f"API request failed: {response_text[:500]}",
                            self.service_name,
                            status_code=status_code,
                        )

                    try:
                        return await response.json()
                    except aiohttp.ContentTypeError:
                        return {"text": response_text}

        try:
            return await with_rate_limit(self.limiter, do_request)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise APIError(
                "Request could not be completed", self.service_name, original_error=e
            ) from e
