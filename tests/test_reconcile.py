"""Tests for quotewatch.reconcile — pure merge and presentation functions."""
from __future__ import annotations

from quotewatch.common_types import Instrument, Market, Quote, SortMode
from quotewatch.reconcile import (
    merge_quote_batch,
    merge_trends,
    next_sort_mode,
    present,
    replace_trends,
)

A = Instrument(Market.SHANGHAI, "600519")
B = Instrument(Market.SHENZHEN, "000858")
C = Instrument(Market.SHENZHEN, "300750")
D = Instrument(Market.SHANGHAI, "601318")


def _quote(instrument: Instrument, pct: float, price: float = 10.0) -> Quote:
    return Quote(instrument, f"N{instrument.code}", price, pct / 10, pct)


class TestPresent:
    def test_single_quote_watchlist_order(self):
        q = Quote(A, "贵州茅台", 1800.00, 12.5, 0.7)
        view = present([A], {A: q}, SortMode.NONE)
        assert len(view) == 1
        assert view[0].price == 1800.00

    def test_none_follows_watchlist_and_skips_missing(self):
        quotes = {C: _quote(C, 1.0), A: _quote(A, 2.0)}
        view = present([A, B, C], quotes, SortMode.NONE)
        assert [q.instrument for q in view] == [A, C]

    def test_desc_and_asc(self):
        quotes = {A: _quote(A, 1.0), B: _quote(B, 5.0), C: _quote(C, -3.0)}
        assert [q.instrument for q in present([A, B, C], quotes, SortMode.DESC)] == [B, A, C]
        assert [q.instrument for q in present([A, B, C], quotes, SortMode.ASC)] == [C, A, B]

    def test_ties_keep_watchlist_order(self):
        quotes = {A: _quote(A, 1.0), B: _quote(B, 1.0), C: _quote(C, 1.0)}
        for mode in (SortMode.DESC, SortMode.ASC):
            assert [q.instrument for q in present([C, A, B], quotes, mode)] == [C, A, B]

    def test_does_not_mutate_inputs(self):
        watchlist = [A, B]
        quotes = {A: _quote(A, 1.0), B: _quote(B, 2.0)}
        present(watchlist, quotes, SortMode.DESC)
        assert watchlist == [A, B]
        assert list(quotes) == [A, B]


class TestSortCycle:
    def test_cycle_returns_to_none(self):
        mode = SortMode.NONE
        seen = []
        for _ in range(3):
            mode = next_sort_mode(mode)
            seen.append(mode)
        assert seen == [SortMode.DESC, SortMode.ASC, SortMode.NONE]


class TestMergeQuoteBatch:
    def test_empty_batch_is_noop(self):
        current = {A: _quote(A, 1.0)}
        assert merge_quote_batch(current, {}, [A]) == current

    def test_batch_replaces_keys(self):
        current = {A: _quote(A, 1.0)}
        fresh = _quote(A, 4.0)
        assert merge_quote_batch(current, {A: fresh}, [A])[A] is fresh

    def test_removed_instrument_discarded(self):
        merged = merge_quote_batch({}, {A: _quote(A, 1.0), B: _quote(B, 2.0)}, [A])
        assert set(merged) == {A}

    def test_missing_member_keeps_stale_quote(self):
        stale_b = _quote(B, 2.0)
        merged = merge_quote_batch({A: _quote(A, 1.0), B: stale_b}, {A: _quote(A, 3.0)}, [A, B])
        assert merged[B] is stale_b
        assert merged[A].change_percent == 3.0

    def test_inputs_untouched(self):
        current = {A: _quote(A, 1.0)}
        merge_quote_batch(current, {B: _quote(B, 1.0)}, [A, B])
        assert set(current) == {A}


class TestTrendMerges:
    def test_incremental_merge_leaves_others_untouched(self):
        series_a = [1.0, 1.1, 1.2]
        series_c = [5.0, 4.9]
        current = {A: series_a, C: series_c}
        merged = merge_trends(current, {B: [2.0, 2.1]}, [A, B, C])

        assert merged == {A: [1.0, 1.1, 1.2], B: [2.0, 2.1], C: [5.0, 4.9]}
        assert merged[A] is series_a
        assert merged[C] is series_c
        assert B not in current

    def test_incremental_ignores_empty_and_removed(self):
        current = {A: [1.0]}
        merged = merge_trends(current, {A: [], D: [9.0]}, [A])
        assert merged == {A: [1.0]}

    def test_full_replace_drops_non_members(self):
        current = {A: [1.0], B: [2.0]}
        replaced = replace_trends(current, {A: [1.5]}, [A])
        assert replaced == {A: [1.5]}

    def test_full_replace_keeps_failed_member(self):
        current = {A: [1.0], B: [2.0]}
        replaced = replace_trends(current, {A: [1.5], B: []}, [A, B])
        assert replaced == {A: [1.5], B: [2.0]}

    def test_full_replace_keeps_member_added_mid_sweep(self):
        # C was merged incrementally while a sweep that did not include it ran.
        current = {A: [1.0], C: [3.0]}
        replaced = replace_trends(current, {A: [1.1]}, [A, C])
        assert replaced == {A: [1.1], C: [3.0]}
