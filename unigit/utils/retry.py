"""
Retry with exponential backoff for async operations.

This is the single retry policy point shared by every provider adapter.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from unigit.exceptions import ConfigurationException, MalformedResponseException
from unigit.utils.errors import direct_status, response_status

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_should_retry(error: BaseException) -> bool:
    """
    Decide whether an error is worth another attempt.

    Server errors (5xx) and rate limits (429) are retried, other statuses are
    not. Errors without a recognizable status are retried. Configuration
    errors and malformed responses never are.
    """
    if isinstance(error, (ConfigurationException, MalformedResponseException)):
        return False

    status = direct_status(error)
    if status is None:
        status = response_status(error)
    if status is None:
        return True
    return status >= 500 or status == 429


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff settings for ``execute_with_retry``.

    :param max_retries: Retries after the initial attempt.
    :param base_delay: Delay before the first retry, in seconds.
    :param max_delay: Upper bound for any single delay, in seconds.
    :param jitter: Scale each delay by a random factor in [0.5, 1.0].
    :param should_retry: Predicate deciding whether an error is retryable.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: bool = True
    should_retry: Callable[[BaseException], bool] = default_should_retry


def compute_delay(attempt: int, policy: RetryPolicy) -> float:
    """
    Delay in seconds before retrying after the given (0-indexed) attempt.
    """
    delay = min(policy.base_delay * (2**attempt), policy.max_delay)
    if policy.jitter:
        delay *= random.uniform(0.5, 1.0)
    return delay


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
) -> T:
    """
    Run an async operation, retrying failures with exponential backoff.

    :param operation: Zero-argument callable returning an awaitable.
    :param policy: Retry settings. Defaults to ``RetryPolicy()``.
    :return: The operation's result.
    :raises Exception: The last error, unchanged, once retries are exhausted
        or the error is not retryable.
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= policy.max_retries or not policy.should_retry(e):
                raise

            delay = compute_delay(attempt, policy)
            logger.warning(
                f"Attempt {attempt + 1}/{policy.max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
            attempt += 1


def retry_with_backoff(
    policy: Optional[RetryPolicy] = None,
    **policy_fields: Any,
):
    """
    Decorator form of ``execute_with_retry`` for async functions.

    The policy is resolved per call in this order:

    * an explicit ``policy`` argument,
    * keyword policy fields (``max_retries=5, base_delay=0.5``),
    * the ``retry_policy`` attribute of the bound instance, when decorating
      a method,
    * ``RetryPolicy()``.

    :param policy: Explicit retry policy.
    :param policy_fields: Fields for a ``RetryPolicy`` built on the spot.
    """
    if policy is None and policy_fields:
        policy = RetryPolicy(**policy_fields)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            effective = policy
            if effective is None and args:
                effective = getattr(args[0], "retry_policy", None)
            return await execute_with_retry(lambda: func(*args, **kwargs), effective)

        return wrapper

    return decorator
