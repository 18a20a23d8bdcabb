"""Bounded-concurrency fan-out over a list of instruments.

The trend endpoint is per-instrument, so a large watchlist must not open
one connection per entry at once.  ``BoundedFetchPool.run`` starts tasks
in input order, keeps at most ``limit`` in flight, and waits for every
item.  A failing task becomes a ``FetchFailure`` in its slot; it never
cancels siblings or aborts the batch.

Completion order across items is unspecified – callers merge by key,
never by position in time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .error_taxonomy import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY: int = 15


@dataclass(frozen=True)
class FetchFailure(Generic[T]):
    """Per-item failure marker returned in place of a result."""

    item: T
    error: Exception


class BoundedFetchPool:
    """Semaphore-bounded ``gather`` with per-item failure isolation."""

    def __init__(self, limit: int = DEFAULT_CONCURRENCY) -> None:
        if limit < 1:
            raise ConfigError(f"pool limit must be >= 1, got {limit}")
        self.limit = limit

    async def run(
        self,
        items: Sequence[T],
        task: Callable[[T], Awaitable[R]],
        limit: int | None = None,
    ) -> list[Union[R, FetchFailure[T]]]:
        """Run ``task(item)`` for every item; results align with *items*."""
        bound = self.limit if limit is None else limit
        if bound < 1:
            raise ConfigError(f"pool limit must be >= 1, got {bound}")
        if not items:
            return []

        sem = asyncio.Semaphore(bound)

        async def _one(item: T) -> Union[R, FetchFailure[T]]:
            async with sem:
                try:
                    return await task(item)
                except Exception as exc:
                    logger.warning("Pool task failed for %s: %s", item, exc)
                    return FetchFailure(item, exc)

        return list(await asyncio.gather(*(_one(item) for item in items)))
