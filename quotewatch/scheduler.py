"""Session-aware refresh scheduler.

Runs two independent timed loops on the event loop:

  - quote loop: every ``refresh_interval_s`` (user setting, floor 10 s)
  - trend loop: every ``trend_interval_s`` (30 s), full-watchlist sweep

Each timer is re-armed after every tick.  A tick only fetches while
auto-refresh is on *and* the exchange is in session; otherwise it is a
no-op and the timer keeps running, so sessions open and close without
restarting anything.  Periodic ticks skip when the previous periodic
fetch of the same kind is still in flight.

On startup the scheduler fetches quotes and the full trend map once,
regardless of session.  Watchlist mutations (via ``WatchlistStore``
subscription) trigger an immediate quote refresh plus a trend fetch for
newly added instruments only.

Fetches run as fire-and-forget tasks relative to the timers: a hung
request delays its own cycle, never the loop.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine, Sequence
from datetime import datetime
from typing import Any, Protocol

from .common_types import Instrument, Quote
from .config import clamp_refresh_interval
from .fetch_pool import DEFAULT_CONCURRENCY, BoundedFetchPool, FetchFailure
from .trading_calendar import is_in_session
from .watchlist import Snapshot, WatchlistStore

logger = logging.getLogger(__name__)

DEFAULT_TREND_INTERVAL_S: float = 30.0


class _QuoteSource(Protocol):
    async def fetch_quotes(self, instruments: Sequence[Instrument]) -> dict[Instrument, Quote]: ...


class _TrendSource(Protocol):
    async def fetch_trend(self, instrument: Instrument) -> list[float]: ...

    def forget(self, instrument: Instrument) -> None: ...


class Scheduler:
    """Owns the quote and trend polling loops for one ``WatchlistStore``.

    Parameters
    ----------
    store : WatchlistStore
        State owner; results are merged through its methods only.
    quote_client, trend_client
        Async fetchers (``QuoteClient`` / ``TrendClient`` in production).
    pool : BoundedFetchPool, optional
        Fan-out for per-instrument trend fetches (default limit 15).
    refresh_interval_s : int
        Quote poll interval, clamped to the 10 s floor.
    auto_refresh : bool
        User toggle gating periodic ticks.
    in_session : callable
        ``in_session(now) -> bool``; defaults to the exchange calendar.
    on_refresh : callable, optional
        Called after each applied quote batch.
    on_interval_change : callable, optional
        Persistence hook for the refresh interval setting.
    """

    def __init__(
        self,
        store: WatchlistStore,
        quote_client: _QuoteSource,
        trend_client: _TrendSource,
        *,
        pool: BoundedFetchPool | None = None,
        refresh_interval_s: int = 10,
        auto_refresh: bool = True,
        trend_interval_s: float = DEFAULT_TREND_INTERVAL_S,
        in_session: Callable[[datetime | None], bool] = is_in_session,
        on_refresh: Callable[[], None] | None = None,
        on_interval_change: Callable[[int], None] | None = None,
    ) -> None:
        self._store = store
        self._quotes = quote_client
        self._trends = trend_client
        self._pool = pool or BoundedFetchPool(DEFAULT_CONCURRENCY)
        self.refresh_interval_s = clamp_refresh_interval(refresh_interval_s)
        self.auto_refresh = auto_refresh
        self.trend_interval_s = trend_interval_s
        self._in_session = in_session
        self._on_refresh = on_refresh
        self._on_interval_change = on_interval_change

        self._running = False
        self._loops: list[asyncio.Task[None]] = []
        self._inflight: set[asyncio.Task[Any]] = set()
        self._periodic_quote: asyncio.Task[Any] | None = None
        self._periodic_trend: asyncio.Task[Any] | None = None

        # Whole-batch ordering: a batch issued before the last applied
        # one is stale and gets dropped.
        self._quote_seq = 0
        self._applied_quote_seq = 0
        # Same rule for full trend sweeps.
        self._trend_seq = 0
        self._applied_trend_seq = 0

        # Observable status
        self.quote_refresh_count: int = 0
        self.trend_sweep_count: int = 0
        self.last_quote_refresh_ts: float = 0.0
        self.last_trend_sweep_ts: float = 0.0

        store.subscribe(self._on_watchlist_change)

    # ── Lifecycle ───────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Initial fetch of quotes and all trends, then arm both loops (idempotent)."""
        if self._running:
            return
        self._running = True
        # Startup fetches count as the first periodic run so a tick cannot overlap them.
        self._periodic_quote = self._spawn(self.refresh_quotes(), "quotes-startup")
        self._periodic_trend = self._spawn(self.refresh_all_trends(), "trends-startup")
        loop = asyncio.get_running_loop()
        self._loops = [
            loop.create_task(self._quote_loop(), name="quotewatch-quote-loop"),
            loop.create_task(self._trend_loop(), name="quotewatch-trend-loop"),
        ]
        logger.info(
            "Scheduler started (quotes every %ds, trends every %.0fs, auto_refresh=%s)",
            self.refresh_interval_s, self.trend_interval_s, self.auto_refresh,
        )

    async def stop(self) -> None:
        """Cancel both loops and any in-flight fetch."""
        if not self._running:
            return
        self._running = False
        pending = [*self._loops, *self._inflight]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._loops = []
        self._inflight.clear()
        logger.info("Scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait until no fetch task is in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ── Settings ────────────────────────────────────────────

    def set_auto_refresh(self, enabled: bool) -> None:
        """Toggle periodic polling; switching on refreshes quotes right away."""
        was = self.auto_refresh
        self.auto_refresh = enabled
        if enabled and not was and self._running:
            self._spawn(self.refresh_quotes(), "quotes-toggle")

    def set_refresh_interval(self, seconds: int) -> int:
        """Set the quote interval (floor 10 s); applies when the timer next arms."""
        self.refresh_interval_s = clamp_refresh_interval(seconds)
        if self._on_interval_change is not None:
            try:
                self._on_interval_change(self.refresh_interval_s)
            except Exception as exc:
                logger.warning("Failed to persist refresh interval: %s", exc)
        return self.refresh_interval_s

    # ── Ticks ───────────────────────────────────────────────

    def should_poll(self) -> bool:
        return self.auto_refresh and self._in_session(None)

    def tick_quotes(self) -> bool:
        """One quote-loop tick.  Returns True when a fetch was started."""
        if not self.should_poll():
            return False
        if self._periodic_quote is not None and not self._periodic_quote.done():
            logger.debug("Quote tick skipped: previous refresh still in flight")
            return False
        self._periodic_quote = self._spawn(self.refresh_quotes(), "quotes-tick")
        return True

    def tick_trends(self) -> bool:
        """One trend-loop tick.  Returns True when a sweep was started."""
        if not self.should_poll():
            return False
        if self._periodic_trend is not None and not self._periodic_trend.done():
            logger.debug("Trend tick skipped: previous sweep still in flight")
            return False
        self._periodic_trend = self._spawn(self.refresh_all_trends(), "trends-tick")
        return True

    async def _quote_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.refresh_interval_s)
            self.tick_quotes()

    async def _trend_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.trend_interval_s)
            self.tick_trends()

    # ── Refresh operations ──────────────────────────────────

    async def refresh_quotes(self) -> bool:
        """Fetch and apply one quote batch for the current watchlist."""
        instruments = self._store.list()
        if not instruments:
            self._store.apply_quotes({})
            return False
        self._quote_seq += 1
        seq = self._quote_seq
        fetched = await self._quotes.fetch_quotes(instruments)
        if seq < self._applied_quote_seq:
            logger.debug("Dropping quote batch #%d (newer batch #%d applied)", seq, self._applied_quote_seq)
            return False
        if not self._store.apply_quotes(fetched):
            return False
        self._applied_quote_seq = seq
        self.quote_refresh_count += 1
        self.last_quote_refresh_ts = time.time()
        logger.debug("Applied %d quote(s) from batch #%d", len(fetched), seq)
        if self._on_refresh is not None:
            self._on_refresh()
        return True

    async def refresh_all_trends(self) -> bool:
        """Sweep the whole watchlist and fully replace the trend map.

        Returns False when a sweep issued later was applied first.
        """
        instruments = self._store.list()
        self._trend_seq += 1
        seq = self._trend_seq
        fetched = await self._fetch_trends(instruments)
        if seq < self._applied_trend_seq:
            logger.debug("Dropping trend sweep #%d (newer sweep #%d applied)", seq, self._applied_trend_seq)
            return False
        self._store.replace_trends(fetched)
        self._applied_trend_seq = seq
        self.trend_sweep_count += 1
        self.last_trend_sweep_ts = time.time()
        logger.debug("Trend sweep: %d/%d series", len(fetched), len(instruments))
        return True

    async def refresh_trends_for(self, instruments: Sequence[Instrument]) -> None:
        """Fetch trends for a subset and merge them without touching other keys."""
        fetched = await self._fetch_trends(instruments)
        self._store.merge_trends(fetched)

    async def _fetch_trends(self, instruments: Sequence[Instrument]) -> dict[Instrument, list[float]]:
        results = await self._pool.run(instruments, self._trends.fetch_trend)
        fetched: dict[Instrument, list[float]] = {}
        for instrument, result in zip(instruments, results):
            if isinstance(result, FetchFailure) or not result:
                continue
            fetched[instrument] = result
        return fetched

    # ── Mutation hook ───────────────────────────────────────

    def _on_watchlist_change(self, previous: Snapshot, current: Snapshot) -> None:
        remaining = set(current)
        for instrument in previous:
            if instrument not in remaining:
                self._trends.forget(instrument)
        if not self._running:
            return
        self._spawn(self.refresh_quotes(), "quotes-mutation")
        known = set(previous)
        added = [i for i in current if i not in known]
        if added:
            self._spawn(self.refresh_trends_for(added), "trends-added")

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=f"quotewatch-{name}")
        self._inflight.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Refresh task %s failed: %s", task.get_name(), exc, exc_info=exc)
