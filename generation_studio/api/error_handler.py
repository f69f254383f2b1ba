"""
Generation Provider Error Handling Module
==========================================

Maps provider responses onto a small exception taxonomy with recovery strategies:
- 401/403: Invalid API token
- 429: Rate limit / quota exceeded (retried with exponential backoff)
- 502/503/504: Transient transport failures (retried with exponential backoff)
- Anything else: Generic upstream error (not retried)
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Dict, Any, Optional, Callable, Awaitable

logger = logging.getLogger(__name__)


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class StudioAPIError(Exception):
    """Base exception for generation provider errors."""

    def __init__(self, status_code: int, message: str, response: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.message = message
        self.response = response or {}
        super().__init__(f"[{status_code}] {message}")

    def get_user_message(self) -> str:
        """Get user-friendly error message."""
        return self.message


class AuthenticationError(StudioAPIError):
    """401/403 - Invalid or expired API token."""

    def get_user_message(self) -> str:
        return (
            "Authentication failed. Your API token is invalid or expired. "
            "Check the api_token entry in your studio configuration."
        )


class RateLimitError(StudioAPIError):
    """429 - Rate limit or quota exceeded."""

    def __init__(self, status_code: int, message: str, response: Optional[Dict[str, Any]] = None,
                 retry_after: Optional[float] = None):
        super().__init__(status_code, message, response)
        self.retry_after = retry_after or self.response.get('retry_after', 5)

    def get_user_message(self) -> str:
        return (
            f"Your API key has exceeded its quota. "
            f"Wait about {self.retry_after} seconds or reduce the concurrency limit."
        )


class TransientAPIError(StudioAPIError):
    """502/503/504 - Gateway, connection or timeout failure worth retrying."""

    def get_user_message(self) -> str:
        return "Network error. Please check your connection."


class ResponseFormatError(StudioAPIError):
    """Transport succeeded but the payload could not be used."""


class PreflightValidationError(ValueError):
    """Required input missing before a batch is built."""


class InvalidTransitionError(RuntimeError):
    """A result status change that the lifecycle does not allow."""


TRANSIENT_STATUS_CODES = {502, 503, 504}


# ============================================================================
# RETRY LOGIC WITH EXPONENTIAL BACKOFF
# ============================================================================

@dataclass
class RetryConfig:
    """Configuration for transport retry behavior."""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt using exponential backoff."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


async def retry_with_backoff(
    func: Callable[[], Awaitable[Any]],
    retry_config: RetryConfig = RetryConfig(),
    retry_on: tuple = (TransientAPIError, RateLimitError),
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Await func() with exponential backoff retry logic.

    Args:
        func: Zero-argument coroutine function to execute
        retry_config: Retry configuration
        retry_on: Tuple of exception types to retry on
        sleep: Coroutine used to wait between attempts

    Returns:
        Result of function execution

    Raises:
        Last exception if all retries exhausted
    """
    last_exception = None

    for attempt in range(retry_config.max_attempts):
        try:
            return await func()
        except retry_on as e:
            last_exception = e

            if attempt < retry_config.max_attempts - 1:
                delay = retry_config.get_delay(attempt)

                if isinstance(e, RateLimitError):
                    # Use API-provided retry_after if available
                    delay = max(delay, e.retry_after)

                logger.warning(
                    f"Attempt {attempt + 1}/{retry_config.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await sleep(delay)
            else:
                logger.error(f"All {retry_config.max_attempts} attempts exhausted")

    raise last_exception


# ============================================================================
# ERROR RESPONSE HANDLER
# ============================================================================

def _extract_error_message(response: Dict[str, Any]) -> str:
    for field in ('error', 'Error', 'message'):
        value = response.get(field)
        if isinstance(value, dict):
            value = value.get('message')
        if value:
            return str(value)
    return 'Unknown error'


def handle_api_response(status_code: int, response: Dict[str, Any]) -> Dict[str, Any]:
    """
    Centralized error handling for provider responses.

    Args:
        status_code: HTTP status code
        response: Response JSON data

    Returns:
        Response data if successful

    Raises:
        Appropriate StudioAPIError subclass for error codes
    """
    if 200 <= status_code < 300:
        return response

    error_msg = _extract_error_message(response)

    if status_code in (401, 403):
        raise AuthenticationError(
            status_code=status_code,
            message=f"Invalid API token: {error_msg}",
            response=response
        )

    elif status_code == 429:
        raise RateLimitError(
            status_code=status_code,
            message=f"Rate limit exceeded: {error_msg}",
            response=response,
            retry_after=response.get('retry_after', 5)
        )

    elif status_code in TRANSIENT_STATUS_CODES:
        raise TransientAPIError(
            status_code=status_code,
            message=error_msg,
            response=response
        )

    else:
        raise StudioAPIError(
            status_code=status_code,
            message=error_msg,
            response=response
        )


def sanitize_error_for_display(error: Any, hide_token: bool = True) -> str:
    """
    Sanitize error messages to prevent token leakage.

    Args:
        error: Exception (or message) to sanitize
        hide_token: Whether to mask API tokens in error messages

    Returns:
        Safe error message for display
    """
    error_str = str(error)

    if hide_token:
        error_str = re.sub(r'Bearer\s+[a-zA-Z0-9._:-]+', 'Bearer ***MASKED***', error_str)
        error_str = re.sub(r'api_token["\']?\s*[:=]\s*["\']?[a-zA-Z0-9._:-]+', 'api_token=***MASKED***', error_str)

    return error_str


def describe_error(error: Any, context: Optional[str] = None) -> str:
    """
    Build the message shown on a failed result card.

    Quota, safety-filter and network failures get a fixed explanation; an
    embedded JSON error body is unwrapped; anything else is passed through.
    """
    prefix = f"Failed on {context}" if context else "Operation failed"
    if isinstance(error, StudioAPIError):
        message = error.message
    else:
        message = str(error) or error.__class__.__name__
    message = sanitize_error_for_display(message)

    match = re.search(r'\{.*\}', message, re.DOTALL)
    if match:
        try:
            body = json.loads(match.group(0))
        except json.JSONDecodeError:
            body = None
        if isinstance(body, dict):
            api_message = _extract_error_message(body)
            if api_message == 'Unknown error':
                api_message = 'An unknown API error occurred.'
            return f"{prefix}: {api_message.split('. For more information')[0]}"

    if isinstance(error, RateLimitError) or '429' in message or 'RESOURCE_EXHAUSTED' in message \
            or 'quota' in message.lower():
        return f"{prefix}: Your API key has exceeded its quota."

    if 'safety' in message.lower():
        return f"{prefix}: Generation failed due to safety filters."

    if isinstance(error, (TransientAPIError, ConnectionError)) or 'network' in message.lower():
        return f"{prefix}: Network error. Please check your connection."

    return f"{prefix}: {message}"
