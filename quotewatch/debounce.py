"""Debounced symbol search.

Each keystroke cancels the pending timer and arms a new one; only a
timer that survives the quiet period (300 ms by default) issues a
search.  A superseded search that is already in flight is cancelled
along with its timer, so published results always belong to the last
query typed.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from .common_types import SearchResult

logger = logging.getLogger(__name__)

DEFAULT_DELAY_S: float = 0.3


class _Searcher(Protocol):
    async def search(self, query: str) -> list[SearchResult]: ...


class CancellableTimer:
    """One-shot delayed coroutine call that can be cancelled until it finishes."""

    def __init__(self, delay_s: float, callback: Callable[[], Awaitable[None]]) -> None:
        self.delay_s = delay_s
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        """Arm the timer on the running event loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self.delay_s)
        await self._callback()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait(self) -> None:
        """Wait until the timer fires and its callback completes (or is cancelled)."""
        if self._task is None:
            return
        await asyncio.wait({self._task})
        if not self._task.cancelled() and self._task.exception() is not None:
            raise self._task.exception()  # type: ignore[misc]


class SearchDebouncer:
    """Coalesces query input into at most one in-flight search."""

    def __init__(
        self,
        client: _Searcher,
        delay_s: float = DEFAULT_DELAY_S,
        on_results: Callable[[str, list[SearchResult]], None] | None = None,
    ) -> None:
        self._client = client
        self.delay_s = delay_s
        self._on_results = on_results
        self._timer: CancellableTimer | None = None
        self._generation = 0

        self.query: str = ""
        self.results: list[SearchResult] = []
        self.is_searching: bool = False
        self.show_results: bool = False

    def set_query(self, query: str) -> None:
        """Feed the latest input text.  Must be called on the event loop."""
        self.query = query
        self._generation += 1
        self._cancel_timer()

        if not query.strip():
            self._publish([], show=False)
            return

        generation = self._generation
        self._timer = CancellableTimer(self.delay_s, lambda: self._search(query, generation))
        self._timer.start()

    def clear(self) -> None:
        """Reset after a pick: drop the query, pending work and results."""
        self.set_query("")

    async def wait(self) -> None:
        """Wait for the current timer (if any) to settle."""
        if self._timer is not None:
            await self._timer.wait()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.is_searching = False

    async def _search(self, query: str, generation: int) -> None:
        self.is_searching = True
        try:
            results = await self._client.search(query)
        finally:
            if generation == self._generation:
                self.is_searching = False
        if generation != self._generation:
            logger.debug("Discarding stale search results for %r", query)
            return
        self._publish(results, show=True)

    def _publish(self, results: list[SearchResult], *, show: bool) -> None:
        self.results = list(results)
        self.show_results = show
        if self._on_results is not None:
            self._on_results(self.query, self.results)
