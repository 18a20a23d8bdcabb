"""Entry point: ``python -m quotewatch.run``

    python -m quotewatch.run               # run the sync engine, log the view
    python -m quotewatch.run search 茅台    # one-off search
    python -m quotewatch.run add 600519    # add by code
    python -m quotewatch.run remove 1.600519
    python -m quotewatch.run list

Environment variables (or a ``.env`` file) override ``Config`` defaults.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from .app import WatchlistApp
from .common_types import Instrument, Market, Quote, market_for_code
from .config import Config
from .error_taxonomy import InvalidInstrumentError
from .settings import SettingsStore
from .watchlist import WatchlistStore

logger = logging.getLogger(__name__)


def _format_view(view: list[Quote]) -> str:
    lines = [f"{len(view)} quote(s)"]
    for q in view:
        sign = "+" if q.change_percent >= 0 else ""
        lines.append(f"  {q.instrument.code}  {q.name:<8s} {q.price:>10.2f}  {sign}{q.change_percent:.2f}%")
    return "\n".join(lines)


def _parse_instrument(text: str) -> Instrument:
    """Accept ``600519`` (market inferred) or ``1.600519``."""
    raw = text.strip()
    if "." in raw:
        market, code = raw.split(".", 1)
        return Instrument(Market.from_wire(market), code)
    return Instrument(market_for_code(raw), raw)


async def _watch(cfg: Config) -> None:
    app = WatchlistApp(cfg, on_view=lambda view: logger.info("%s", _format_view(view)))
    await app.run_forever()


async def _search(cfg: Config, query: str) -> None:
    app = WatchlistApp(cfg)
    try:
        for r in await app.search_client.search(query):
            print(f"{r.market.value}.{r.code}  {r.name}")
    finally:
        await app.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="A-share watchlist quote/trend synchronizer.")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("watch", help="Run the refresh engine (default)")
    p_search = sub.add_parser("search", help="Search instruments by code, name or pinyin")
    p_search.add_argument("query")
    p_add = sub.add_parser("add", help="Add an instrument (600519 or 1.600519)")
    p_add.add_argument("instrument")
    p_remove = sub.add_parser("remove", help="Remove an instrument (600519 or 1.600519)")
    p_remove.add_argument("instrument")
    sub.add_parser("list", help="Print the persisted watchlist")
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(override=False)
    cfg = Config()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    args = _build_parser().parse_args(argv)
    command = args.command or "watch"

    if command == "watch":
        try:
            asyncio.run(_watch(cfg))
        except KeyboardInterrupt:
            logger.info("Interrupted, exiting")
        return 0
    if command == "search":
        asyncio.run(_search(cfg, args.query))
        return 0

    settings = SettingsStore(cfg.settings_path)
    store = WatchlistStore(settings.load().watchlist, persist=settings.save_watchlist)
    try:
        if command == "add":
            outcome = store.add(_parse_instrument(args.instrument))
            print("added" if outcome.added else "already on watchlist")
        elif command == "remove":
            print("removed" if store.remove(_parse_instrument(args.instrument)) else "not on watchlist")
    except InvalidInstrumentError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    for instrument in store.list():
        print(instrument.secid)
    return 0


if __name__ == "__main__":
    sys.exit(main())
