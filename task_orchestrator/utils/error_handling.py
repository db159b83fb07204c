"""
Error handling utilities for the Task Orchestrator.

This module provides the exception hierarchy, error categorization for
outbound calls, decorators and helpers for retrying or containing
failures, and the apology shown to users when a turn fails.
"""

import asyncio
import functools
import traceback
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar, cast

import aiohttp
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR = 500


class ErrorCategory(str, Enum):
    """Categories used to decide whether an outbound call is retried."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    API = "api"
    UNKNOWN = "unknown"


class OrchestratorError(Exception):
    """Base exception class for all Task Orchestrator errors."""

    def __init__(self, message: str, original_error: Exception | None = None):
        """
        Initialize an OrchestratorError.

        Args:
            message: Error message
            original_error: The original exception that caused this error (optional)
        """
        self.original_error = original_error
        if original_error:
            message = f"{message} - Original error: {original_error!s}"
        super().__init__(message)


class APIError(OrchestratorError):
    """Error raised when an external API request fails."""

    def __init__(
        self,
        message: str,
        service_name: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ):
        """
        Initialize an APIError.

        Args:
            message: Error message
            service_name: Name of the API service
            status_code: HTTP status code (optional)
            original_error: The original exception that caused this error (optional)
        """
        self.service_name = service_name
        self.status_code = status_code
        status_str = f" (status: {status_code})" if status_code else ""
        full_message = f"Error in {service_name} API{status_str}: {message}"
        super().__init__(full_message, original_error)


class LLMError(OrchestratorError):
    """Error raised when an LLM call fails, tagged with a retry category."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        recoverable: bool = False,
        original_error: Exception | None = None,
    ):
        self.category = category
        self.recoverable = recoverable
        super().__init__(f"LLM call failed ({category.value}): {message}", original_error)


class ToolError(OrchestratorError):
    """Error raised by a tool that could not produce a result."""

    def __init__(
        self, message: str, tool_name: str, original_error: Exception | None = None
    ):
        self.tool_name = tool_name
        super().__init__(message, original_error)


class ToolNotFoundError(OrchestratorError):
    """Error raised when a plan references a tool that is not registered."""

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool not found: {tool_name}")


class PlanParseError(OrchestratorError):
    """Error raised when a model reply cannot be turned into plan steps."""

    pass


class ValidationError(OrchestratorError):
    """Error raised when validation of input or data fails."""

    pass


class ResourceNotFoundError(OrchestratorError):
    """Error raised when a requested task, session or user does not exist."""

    def __init__(self, message: str, resource_id: str | None = None):
        self.resource_id = resource_id
        super().__init__(message)



def handle_errors(
    default_value: T | None = None, error_cls: type[Exception] = OrchestratorError
) -> Callable[[F], F]:
    """
    Decorator to catch and handle exceptions, logging them and
    optionally returning a default value.

    Args:
        default_value: Value to return if an exception occurs (optional)
        error_cls: Exception type to re-raise (default: OrchestratorError)

    Returns:
        Decorated function
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except error_cls:
                raise
            except Exception as e:
                func_name = func.__name__
                logger.error(f"Error in {func_name}: {e!s}")
                logger.debug(f"Traceback: {traceback.format_exc()}")

                if default_value is not None:
                    logger.info(f"Returning default value from {func_name}")
                    return default_value

                raise error_cls(str(e), original_error=e) from e

        return cast(F, wrapper)

    return decorator


def with_retry(
    max_attempts: int = 3,
    min_wait_seconds: float = 1.0,
    max_wait_seconds: float = 10.0,
    retry_exceptions: tuple = (APIError,),
) -> Callable[[F], F]:
    """
    Decorator to retry a function with exponential backoff when specific
    exceptions occur.

    Exceptions outside `retry_exceptions` propagate on the first attempt.

    Args:
        max_attempts: Maximum number of attempts
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries
        retry_exceptions: Tuple of exception types to retry on

    Returns:
        Decorated function

    Raises:
        OrchestratorError: When every attempt failed with a retryable error
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            @retry(
                retry=retry_if_exception_type(retry_exceptions),
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(
                    multiplier=1, min=min_wait_seconds, max=max_wait_seconds
                ),
            )
            def retry_func() -> Any:
                return func(*args, **kwargs)

            try:
                return retry_func()
            except RetryError as e:
                original_error = e.last_attempt.exception()
                func_name = func.__name__
                logger.error(
                    f"All retry attempts failed for {func_name}: {original_error!s}"
                )
                raise OrchestratorError(
                    f"Function {func_name} failed after {max_attempts} attempts",
                    original_error=original_error,
                ) from original_error

        return cast(F, wrapper)

    return decorator


def safe_execute(
    func: Callable[..., T], *args: Any, default: T | None = None, **kwargs: Any
) -> T | None:
    """
    Execute a function safely, catching any exceptions and
    optionally returning a default value.

    Args:
        func: Function to execute
        *args: Positional arguments to pass to the function
        default: Default value to return if an exception occurs (optional)
        **kwargs: Keyword arguments to pass to the function

    Returns:
        Result of the function or default value if an exception occurs
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        func_name = getattr(func, "__name__", str(func))
        logger.error(f"Error executing {func_name}: {e!s}")
        logger.debug(f"Traceback: {traceback.format_exc()}")
        return default

def categorize_error(error: BaseException) -> tuple[ErrorCategory, bool]:
    """
    Categorize an exception raised by an outbound call.

    Args:
        error: The exception to categorize

    Returns:
        Tuple of (category, recoverable)
    """
    if isinstance(error, LLMError):
        return error.category, error.recoverable
    if isinstance(error, TimeoutError | asyncio.TimeoutError):
        return ErrorCategory.TIMEOUT, True
    if isinstance(error, aiohttp.ClientConnectionError | ConnectionError):
        return ErrorCategory.NETWORK, True
    if isinstance(error, ValidationError | ValueError | TypeError):
        return ErrorCategory.VALIDATION, False
    if isinstance(error, APIError):
        status = error.status_code or 0
        recoverable = (
            status == HTTP_STATUS_TOO_MANY_REQUESTS or status >= HTTP_STATUS_SERVER_ERROR
        )
        return ErrorCategory.API, recoverable

    # google-genai surfaces HTTP failures with a numeric `code`
    code = getattr(error, "code", None)
    if isinstance(code, int):
        recoverable = (
            code == HTTP_STATUS_TOO_MANY_REQUESTS or code >= HTTP_STATUS_SERVER_ERROR
        )
        category = ErrorCategory.API if recoverable else ErrorCategory.VALIDATION
        return category, recoverable

    return ErrorCategory.UNKNOWN, False


def is_recoverable(error: BaseException) -> bool:
    """Return True when the error belongs to a retryable category."""
    return categorize_error(error)[1]


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    min_wait_seconds: float = 1.0,
    max_wait_seconds: float = 10.0,
    should_retry: Callable[[BaseException], bool] = is_recoverable,
    label: str = "call",
) -> T:
    """
    Await a coroutine factory, retrying recoverable failures with
    exponential backoff.

    Args:
        func: Zero-argument callable returning a fresh awaitable per attempt
        max_attempts: Maximum number of attempts
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries
        should_retry: Predicate deciding whether an exception is retried
        label: Name used in log messages

    Returns:
        Result of the first successful attempt

    Raises:
        The last exception when attempts are exhausted or it is not retryable
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception(should_retry),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait_seconds, max=max_wait_seconds),
        reraise=True,
    ):
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.warning(
                    f"Retrying {label} (attempt {attempt.retry_state.attempt_number}"
                    f"/{max_attempts})"
                )
            return await func()
    raise OrchestratorError(f"{label} produced no attempts")  # pragma: no cover


def user_facing_error(error: BaseException | str, production: bool) -> str:
    """
    Build the apology shown to the user for a terminal error.

    The raw error text is appended outside production only.
    """
    message = "I encountered an error processing your request. Please try again."
    if production:
        return message
    return f"{message}\n\n(Details: {error!s})"
