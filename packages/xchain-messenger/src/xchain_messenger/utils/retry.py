"""Retry helper with exponential back-off for chain queries."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..errors import TransientError, classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    timeout: float | None = None,
    **kwargs: Any,
) -> T:
    """Call *fn* with retries on transient failures.

    Uses exponential back-off with jitter::

        delay = min(base_delay * 2^attempt, max_delay) * uniform(0.5, 1.0)

    Only failures that classify as TransientError are retried. Anything else
    (validation rejections in particular) is raised after classification on
    the first attempt.

    Args:
        fn: An async callable to invoke
        max_attempts: Total number of tries (including the first)
        base_delay: Starting delay in seconds
        max_delay: Cap on the computed delay
        timeout: Per-attempt timeout in seconds
        *args, **kwargs: Forwarded to *fn*

    Returns:
        The return value of *fn* on the first successful call.

    Raises:
        MessengerError: The classified last error if all attempts fail
    """
    name = getattr(fn, "__qualname__", repr(fn))

    for attempt in range(max(1, max_attempts)):
        try:
            if timeout is None:
                return await fn(*args, **kwargs)
            return await asyncio.wait_for(fn(*args, **kwargs), timeout=timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = classify_error(exc)
            if not isinstance(error, TransientError) or attempt + 1 >= max_attempts:
                if isinstance(error, TransientError):
                    logger.error(f"All {max_attempts} attempts exhausted for {name}: {error}")
                if error is exc:
                    raise
                raise error from exc

            sleep_time = min(base_delay * (2 ** attempt), max_delay) * random.uniform(0.5, 1.0)
            logger.warning(
                f"Retry {attempt + 1}/{max_attempts} for {name} after {sleep_time:.1f}s (error: {error})"
            )
            await asyncio.sleep(sleep_time)

    raise AssertionError("unreachable")
