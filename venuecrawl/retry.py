"""Bounded retry with exponential backoff for flaky browser work."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """Await ``fn()`` up to ``attempts`` times.

    Delays grow as ``base_delay * 2 ** (attempt - 1)``, capped at
    ``max_delay``. The last exception is re-raised when every attempt fails.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=base_delay, min=0, max=max_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(LOGGER, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await fn()
    return result
