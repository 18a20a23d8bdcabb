"""quotewatch – watchlist synchronization for China A-share quotes.

Keeps a small ordered watchlist of Shanghai/Shenzhen instruments fresh:
batch quote polling, per-instrument intraday trend series fetched through
a bounded pool, and a debounced symbol search feeding add/remove.

Everything runs on a single asyncio event loop.  Polling is gated by the
exchange trading calendar so nothing hits the network outside sessions.
"""

from .common_types import Instrument, Market, Quote, SearchResult, SortMode
from .watchlist import WatchlistStore

__all__: list[str] = [
    "Instrument",
    "Market",
    "Quote",
    "SearchResult",
    "SortMode",
    "WatchlistStore",
]
