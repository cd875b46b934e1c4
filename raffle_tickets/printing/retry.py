"""Timeout + single retry for calls to external collaborators."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

T = TypeVar("T")


async def call_with_retry(
    factory: Callable[[], Awaitable[T]],
    *,
    timeout: float,
    attempts: int = 2,
    label: str = "call",
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    before_retry: Callable[[], Awaitable[None]] | None = None,
) -> T:
    """Await ``factory()`` with a per-attempt timeout.

    ``factory`` is called again for each attempt since a coroutine can only
    be awaited once. Only exceptions in ``retry_on`` are retried; anything
    else, and the last failure, propagates to the caller. ``before_retry``
    runs between attempts, e.g. to roll a session back.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(factory(), timeout=timeout)
        except retry_on as e:
            if attempt == attempts:
                raise
            logger.warning(
                "{} failed (attempt {}/{}): {!r}; retrying",
                label, attempt, attempts, e,
            )
            if before_retry is not None:
                await before_retry()
