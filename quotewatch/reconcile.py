"""Merge fetched quotes/trends into current state and build the view.

Every function here is pure: it returns a new mapping or list and never
mutates its arguments.  Merges key by instrument identity so results
that resolve after an add/remove (or out of order) stay correct:

  - anything no longer on the watchlist at merge time is discarded
  - an instrument whose fetch failed keeps its last known data
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from .common_types import Instrument, Quote, SortMode

_NEXT_SORT_MODE = {
    SortMode.NONE: SortMode.DESC,
    SortMode.DESC: SortMode.ASC,
    SortMode.ASC: SortMode.NONE,
}


def next_sort_mode(mode: SortMode) -> SortMode:
    """NONE -> DESC -> ASC -> NONE."""
    return _NEXT_SORT_MODE[mode]


def present(
    watchlist: Sequence[Instrument],
    quotes: Mapping[Instrument, Quote],
    sort_mode: SortMode,
) -> list[Quote]:
    """Ordered view of the known quotes.

    NONE follows watchlist order and skips entries without a quote yet.
    DESC/ASC sort all known quotes by ``change_percent``; ``sorted`` is
    stable so ties keep watchlist order.
    """
    ordered = [quotes[i] for i in watchlist if i in quotes]
    if sort_mode is SortMode.NONE:
        return ordered
    return sorted(ordered, key=lambda q: q.change_percent, reverse=sort_mode is SortMode.DESC)


def merge_quote_batch(
    current: Mapping[Instrument, Quote],
    fetched: Mapping[Instrument, Quote],
    watchlist: Iterable[Instrument],
) -> dict[Instrument, Quote]:
    """Apply one quote batch.

    An empty batch is a failed refresh and changes nothing.  Otherwise
    each fetched quote replaces its key; watchlist entries missing from
    the batch keep their previous quote.
    """
    members = set(watchlist)
    if not fetched:
        return {k: v for k, v in current.items() if k in members}
    merged = {k: v for k, v in current.items() if k in members}
    merged.update((k, v) for k, v in fetched.items() if k in members)
    return merged


def merge_trends(
    current: Mapping[Instrument, list[float]],
    fetched: Mapping[Instrument, list[float]],
    watchlist: Iterable[Instrument],
) -> dict[Instrument, list[float]]:
    """Incremental merge: overwrite only keys with a non-empty fetched series."""
    members = set(watchlist)
    merged = dict(current)
    for instrument, series in fetched.items():
        if series and instrument in members:
            merged[instrument] = list(series)
    return merged


def replace_trends(
    current: Mapping[Instrument, list[float]],
    fetched: Mapping[Instrument, list[float]],
    watchlist: Iterable[Instrument],
) -> dict[Instrument, list[float]]:
    """Full replace after a whole-watchlist sweep.

    The result holds exactly the watchlist members that have a series:
    the fresh one where the sweep succeeded, the previous one where it
    failed.  Keys outside the watchlist are dropped.
    """
    replaced: dict[Instrument, list[float]] = {}
    for instrument in watchlist:
        series = fetched.get(instrument)
        if series:
            replaced[instrument] = list(series)
        elif instrument in current:
            replaced[instrument] = current[instrument]
    return replaced
