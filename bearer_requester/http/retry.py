"""Retry logic with exponential backoff for transient transport failures."""

import asyncio
import random
from typing import Any, Awaitable, Callable, TypeVar

from bearer_requester.exceptions import AuthExpiredError, HttpError, TransportError
from bearer_requester.logging import get_requester_logger

T = TypeVar('T')

logger = get_requester_logger(__name__)


class RetryHandler:
  """Retries transport-level failures with exponential backoff.

  The last error is re-raised unchanged once attempts are exhausted.
  """

  def __init__(
    self,
    max_retries: int = 0,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    jitter: bool = True
  ):
    """Initialize retry handler with configuration parameters.

    Args:
      max_retries: Maximum number of retry attempts (0 disables retries)
      base_delay: Base delay in seconds for first retry
      max_delay: Maximum delay in seconds between retries
      backoff_factor: Multiplier for exponential backoff
      jitter: Whether to add random jitter to delays
    """
    if max_retries < 0:
      raise ValueError("max_retries cannot be negative")

    self.max_retries = max_retries
    self.base_delay = base_delay
    self.max_delay = max_delay
    self.backoff_factor = backoff_factor
    self.jitter = jitter

  async def execute(
    self,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any
  ) -> T:
    """Execute function with retry logic on transient failures.

    Args:
      func: Async function to execute
      *args: Positional arguments to pass to function
      **kwargs: Keyword arguments to pass to function

    Returns:
      Result of successful function execution

    Raises:
      Exception: Non-retryable exceptions immediately, retryable ones once
        max retries are exceeded
    """
    attempt = 0
    while True:
      try:
        return await func(*args, **kwargs)
      except Exception as e:
        if not self.is_retryable(e) or attempt >= self.max_retries:
          if attempt > 0:
            logger.warning(
              "Retries exhausted",
              attempts=attempt + 1,
              error=str(e),
            )
          raise

        delay = self._calculate_delay(attempt + 1)
        logger.debug(
          "Retrying request",
          attempt=attempt + 1,
          delay=delay,
          error=str(e),
        )
        await asyncio.sleep(delay)
        attempt += 1

  def is_retryable(self, exception: Exception) -> bool:
    """Determine if an exception should trigger a retry.

    Network failures and timeouts are retryable, and so are 5xx
    responses. Expired tokens and other 4xx responses are not.
    """
    if isinstance(exception, AuthExpiredError):
      return False

    if isinstance(exception, HttpError):
      return 500 <= exception.status < 600

    return isinstance(exception, TransportError)

  def _calculate_delay(self, attempt: int) -> float:
    """Calculate delay for retry attempt using exponential backoff.

    Args:
      attempt: Current attempt number (1-based)

    Returns:
      Delay in seconds
    """
    delay = self.base_delay * (self.backoff_factor ** attempt)
    delay = min(delay, self.max_delay)

    if self.jitter:
      # +/-50% of the delay
      jitter_range = delay * 0.5
      delay += random.uniform(-jitter_range, jitter_range)
      delay = max(0.0, delay)

    return delay
