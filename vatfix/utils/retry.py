"""Retry utility for VIES calls with exponential backoff."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from ..exceptions import (
    LookupHttpError,
    LookupTimeoutError,
    ProtocolFaultError,
    ServiceUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Free-text fault codes VIES puts in <faultstring>
PERMANENT_FAULT_TOKENS = ("INVALID_INPUT",)  # also matches MS_INVALID_INPUT
TRANSIENT_FAULT_TOKENS = (
    "SERVICE_UNAVAILABLE",
    "MS_UNAVAILABLE",
    "TIMEOUT",
    "SERVER_BUSY",
    "MS_MAX_CONCURRENT_REQ",
    "GLOBAL_MAX_CONCURRENT_REQ",
)


class FailureKind(Enum):
    """Whether another attempt can change the outcome."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"


def classify_failure(error: BaseException) -> FailureKind:
    """
    Classify a lookup failure as transient (retry) or permanent (give up).

    Args:
        error: The exception raised by one attempt

    Returns:
        FailureKind.TRANSIENT for timeouts, 5xx, unreachable service and
        service-side faults; FailureKind.PERMANENT otherwise
    """
    if isinstance(error, ProtocolFaultError):
        message = str(error.message or "").upper()
        if any(token in message for token in PERMANENT_FAULT_TOKENS):
            return FailureKind.PERMANENT
        if any(token in message for token in TRANSIENT_FAULT_TOKENS):
            return FailureKind.TRANSIENT
        return FailureKind.PERMANENT

    if isinstance(error, (LookupTimeoutError, ServiceUnavailableError)):
        return FailureKind.TRANSIENT

    if isinstance(error, LookupHttpError):
        return FailureKind.TRANSIENT if error.status >= 500 else FailureKind.PERMANENT

    return FailureKind.PERMANENT


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 0.3,
    backoff_factor: float = 2.0,
    classify: Callable[[BaseException], FailureKind] = classify_failure,
) -> T:
    """
    Retry an async function with exponential backoff.

    The delay before retry ``i`` (0-based) is ``initial_delay * backoff_factor ** i``.

    Args:
        func: The async function to retry
        max_attempts: Maximum number of attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 0.3)
        backoff_factor: Multiplier for delay between retries (default: 2.0)
        classify: Decides whether a failure is worth another attempt

    Returns:
        The result of the function call

    Raises:
        The last exception if it is permanent or all attempts fail
    """
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except Exception as exc:
            kind = classify(exc)
            if kind is FailureKind.PERMANENT:
                logger.warning(f"Attempt {attempt}/{max_attempts} failed permanently: {exc}")
                raise

            if attempt >= max_attempts:
                logger.error(f"All {max_attempts} attempts failed. Last error: {exc}")
                raise

            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed: {exc}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            delay *= backoff_factor

    raise RuntimeError("max_attempts must be at least 1")


class RetryPolicy:
    """Bounded retries around a single lookup call.

    Args:
        max_attempts: Total attempts including the first one
        base_delay: Seconds to wait before the first retry
    """

    def __init__(self, max_attempts: int = 3, base_delay: float = 0.3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def run(self, func: Callable[[], Awaitable[T]]) -> T:
        return await retry_async(
            func,
            max_attempts=self.max_attempts,
            initial_delay=self.base_delay,
            backoff_factor=2.0,
        )
