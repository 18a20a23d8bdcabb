"""Single owner of the watchlist and everything keyed by it.

``WatchlistStore`` holds the ordered instrument list, the quote map, the
trend-series map and the sort mode.  Nothing outside this class writes
them; fetchers hand their results to ``apply_quotes`` / ``merge_trends``
/ ``replace_trends`` which key-merge through ``reconcile``.

Every successful add/remove/reorder:
  1. fires the persistence hook (fire-and-forget, failures only logged);
     with a running event loop the write goes to a single worker thread
     so file locking and fsync never stall the polling loops
  2. notifies subscribers with ``(previous, current)`` snapshots – the
     scheduler uses this to refresh immediately instead of waiting for
     the next tick.

All state methods are synchronous and run on the event loop thread, so plain
read-modify-write is safe between ``await`` points.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from types import MappingProxyType

from . import reconcile
from .common_types import AddResult, Instrument, Quote, SortMode, market_for_code
from .error_taxonomy import ConfigError, InvalidInstrumentError
from .trading_calendar import now_exchange

logger = logging.getLogger(__name__)

Snapshot = tuple[Instrument, ...]
ChangeListener = Callable[[Snapshot, Snapshot], None]
PersistHook = Callable[[Snapshot], None]


class WatchlistStore:
    """Ordered, de-duplicated instruments plus their quotes and trends."""

    def __init__(
        self,
        instruments: Iterable[Instrument] = (),
        *,
        persist: PersistHook | None = None,
    ) -> None:
        self._items: list[Instrument] = []
        for instrument in instruments:
            if instrument not in self._items:
                self._items.append(instrument)
        self._persist = persist
        self._listeners: list[ChangeListener] = []
        self._persist_executor: ThreadPoolExecutor | None = None
        self._pending_persist: set[asyncio.Future[None]] = set()

        self._quotes: dict[Instrument, Quote] = {}
        self._trends: dict[Instrument, list[float]] = {}
        self._sort_mode = SortMode.NONE

        self.last_quote_update: datetime | None = None
        self.loading: bool = True

    # ── Watchlist reads ─────────────────────────────────────

    def list(self) -> Snapshot:
        """Read-only snapshot of the watchlist in user order."""
        return tuple(self._items)

    def __contains__(self, instrument: object) -> bool:
        return instrument in self._items

    def __len__(self) -> int:
        return len(self._items)

    def subscribe(self, listener: ChangeListener) -> None:
        """Register ``listener(previous, current)`` for watchlist mutations."""
        self._listeners.append(listener)

    # ── Watchlist mutations ─────────────────────────────────

    def add(self, instrument: Instrument) -> AddResult:
        """Append *instrument*; no-op when its identity is already present."""
        if instrument in self._items:
            logger.info("%s already on watchlist", instrument)
            return AddResult(added=False, instrument=instrument)
        previous = self.list()
        self._items.append(instrument)
        logger.info("Added %s to watchlist (%d total)", instrument, len(self._items))
        self._changed(previous)
        return AddResult(added=True, instrument=instrument)

    def add_by_code(self, code: str) -> AddResult:
        """Add a bare 6-digit code, inferring the exchange from its prefix."""
        raw = (code or "").strip()
        if not (len(raw) == 6 and raw.isdigit()):
            raise InvalidInstrumentError(f"not a 6-digit code: {code!r}", code=raw)
        return self.add(Instrument(market_for_code(raw), raw))

    def remove(self, instrument: Instrument) -> bool:
        """Remove *instrument* and prune its quote/trend; False if absent."""
        if instrument not in self._items:
            return False
        previous = self.list()
        self._items.remove(instrument)
        self._quotes.pop(instrument, None)
        self._trends.pop(instrument, None)
        logger.info("Removed %s from watchlist", instrument)
        self._changed(previous)
        return True

    def reorder(self, new_order: Sequence[Instrument]) -> None:
        """Replace the order with a permutation of the current watchlist.

        A manual order overrides any active sort, so sort resets to NONE.
        """
        proposed = list(new_order)
        if len(proposed) != len(self._items) or set(proposed) != set(self._items):
            raise ConfigError("reorder requires a permutation of the current watchlist")
        previous = self.list()
        self._sort_mode = SortMode.NONE
        if tuple(proposed) == previous:
            return
        self._items = proposed
        self._changed(previous)

    def move(self, old_index: int, new_index: int) -> None:
        """Drag-and-drop move: take the entry at *old_index*, insert at *new_index*."""
        size = len(self._items)
        if not (0 <= old_index < size and 0 <= new_index < size):
            raise IndexError(f"move({old_index}, {new_index}) out of range for {size} item(s)")
        if old_index == new_index:
            return
        order = list(self._items)
        order.insert(new_index, order.pop(old_index))
        self.reorder(order)

    def _changed(self, previous: Snapshot) -> None:
        current = self.list()
        if self._persist is not None:
            self._schedule_persist(current)
        for listener in list(self._listeners):
            listener(previous, current)

    # ── Persistence ─────────────────────────────────────────

    def _schedule_persist(self, snapshot: Snapshot) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write_snapshot(snapshot)
            return
        # One worker keeps snapshots landing on disk in mutation order.
        if self._persist_executor is None:
            self._persist_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="quotewatch-persist")
        future = loop.run_in_executor(self._persist_executor, self._write_snapshot, snapshot)
        self._pending_persist.add(future)
        future.add_done_callback(self._pending_persist.discard)

    def _write_snapshot(self, snapshot: Snapshot) -> None:
        assert self._persist is not None
        try:
            self._persist(snapshot)
        except Exception as exc:
            logger.warning("Failed to persist watchlist: %s", exc)

    async def flush(self) -> None:
        """Wait for scheduled persistence writes to finish."""
        while self._pending_persist:
            await asyncio.gather(*list(self._pending_persist))

    async def aclose(self) -> None:
        """Flush pending writes and release the persistence worker."""
        await self.flush()
        if self._persist_executor is not None:
            self._persist_executor.shutdown(wait=True)
            self._persist_executor = None

    # ── Quotes ──────────────────────────────────────────────

    @property
    def quotes(self) -> Mapping[Instrument, Quote]:
        return MappingProxyType(self._quotes)

    def apply_quotes(self, fetched: Mapping[Instrument, Quote]) -> bool:
        """Apply a whole quote batch.  Returns False for an empty (failed) batch."""
        self.loading = False
        if not fetched:
            return False
        self._quotes = reconcile.merge_quote_batch(self._quotes, fetched, self._items)
        self.last_quote_update = now_exchange()
        return True

    # ── Trends ──────────────────────────────────────────────

    @property
    def trends(self) -> Mapping[Instrument, list[float]]:
        return MappingProxyType(self._trends)

    def trend_for(self, instrument: Instrument) -> list[float]:
        return list(self._trends.get(instrument, ()))

    def merge_trends(self, fetched: Mapping[Instrument, list[float]]) -> None:
        """Incremental merge for a subset of instruments."""
        self._trends = reconcile.merge_trends(self._trends, fetched, self._items)

    def replace_trends(self, fetched: Mapping[Instrument, list[float]]) -> None:
        """Full replace after a whole-watchlist sweep."""
        self._trends = reconcile.replace_trends(self._trends, fetched, self._items)

    # ── Sorting / view ──────────────────────────────────────

    @property
    def sort_mode(self) -> SortMode:
        return self._sort_mode

    def set_sort_mode(self, mode: SortMode) -> None:
        self._sort_mode = mode

    def cycle_sort_mode(self) -> SortMode:
        """Advance NONE -> DESC -> ASC -> NONE and return the new mode."""
        self._sort_mode = reconcile.next_sort_mode(self._sort_mode)
        return self._sort_mode

    def present(self) -> list[Quote]:
        """Current view model; pure, recomputed on every call."""
        return reconcile.present(self._items, self._quotes, self._sort_mode)
