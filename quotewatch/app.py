"""Composition root: wires clients, store, scheduler and search together.

``WatchlistApp`` is what a presentation layer talks to.  It exposes the
mutation operations (add/remove/reorder/sort/search) and the current
view model; rendering is left to the caller via the ``on_view`` hook.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

import httpx

from ._http import build_async_client
from .common_types import AddResult, Instrument, Quote, SearchResult, SortMode
from .config import Config
from .debounce import SearchDebouncer
from .fetch_pool import BoundedFetchPool
from .ingest_quotes import QuoteClient
from .ingest_search import SearchClient
from .ingest_trends import TrendClient
from .scheduler import Scheduler
from .settings import SettingsStore
from .watchlist import WatchlistStore

logger = logging.getLogger(__name__)


class WatchlistApp:
    """One running watchlist engine bound to one settings file."""

    def __init__(
        self,
        cfg: Config,
        *,
        client: httpx.AsyncClient | None = None,
        on_view: Callable[[list[Quote]], None] | None = None,
    ) -> None:
        self.cfg = cfg
        self.settings = SettingsStore(cfg.settings_path)
        loaded = self.settings.load()

        self._own_client = client is None
        self.client = client or build_async_client(cfg)
        self._on_view = on_view

        self.store = WatchlistStore(loaded.watchlist, persist=self.settings.save_watchlist)
        self.quotes = QuoteClient(self.client, cfg.fingerprint)
        self.trends = TrendClient(self.client, cfg.fingerprint)
        self.search_client = SearchClient(self.client)
        self.scheduler = Scheduler(
            self.store,
            self.quotes,
            self.trends,
            pool=BoundedFetchPool(cfg.trend_concurrency),
            refresh_interval_s=loaded.refresh_interval_s,
            auto_refresh=cfg.auto_refresh,
            trend_interval_s=cfg.trend_interval_s,
            on_refresh=self._render,
            on_interval_change=self.settings.save_refresh_interval,
        )
        self.search = SearchDebouncer(self.search_client, delay_s=cfg.search_debounce_s)

    # ── Lifecycle ───────────────────────────────────────────

    async def start(self) -> None:
        await self.scheduler.start()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.store.aclose()
        if self._own_client:
            await self.client.aclose()

    async def run_forever(self) -> None:
        """Run until cancelled (Ctrl-C)."""
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.close()

    # ── Operations for the presentation layer ───────────────

    def view(self) -> list[Quote]:
        return self.store.present()

    def add(self, instrument: Instrument) -> AddResult:
        return self.store.add(instrument)

    def add_result(self, result: SearchResult) -> AddResult:
        """Add a search pick and reset the search box."""
        outcome = self.store.add(result.to_instrument())
        self.search.clear()
        return outcome

    def add_by_code(self, code: str) -> AddResult:
        outcome = self.store.add_by_code(code)
        self.search.clear()
        return outcome

    def remove(self, instrument: Instrument) -> bool:
        removed = self.store.remove(instrument)
        if removed:
            self._render()
        return removed

    def reorder(self, new_order: Sequence[Instrument]) -> None:
        self.store.reorder(new_order)
        self._render()

    def cycle_sort(self) -> SortMode:
        mode = self.store.cycle_sort_mode()
        self._render()
        return mode

    def _render(self) -> None:
        if self._on_view is not None:
            self._on_view(self.view())
