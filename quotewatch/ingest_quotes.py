"""Batch quote adapter (Eastmoney ``ulist.np`` endpoint).

One GET per refresh for the whole watchlist:

    /api/qt/ulist.np/get?fltt=2&secids=1.600519,0.000858&fields=f12,f13,f14,f2,f3,f4

Wire field codes:
    f2  current price        f3  change percent     f4  change amount
    f12 code                 f13 market id (0/1)    f14 name

Returns ``{Instrument: Quote}``.  Any failure – transport, HTTP status,
non-JSON, or a well-formed payload with zero records – yields ``{}``;
the caller treats an empty batch as "keep what you have".  The server
answers with an empty record list when the fingerprint cookie is
missing, so zero records must never be read as "everything is gone".
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from ._http import fingerprint_headers, log_fetch_recovered, log_fetch_warning, safe_json, to_float
from .common_types import Instrument, Market, Quote
from .error_taxonomy import DataSourceError, InvalidInstrumentError

logger = logging.getLogger(__name__)

QUOTE_URL = "https://push2.eastmoney.com/api/qt/ulist.np/get"
QUOTE_FIELDS = "f12,f13,f14,f2,f3,f4"


def build_secids(instruments: Sequence[Instrument]) -> str:
    """Comma-join ``market.code`` identifiers for the batch query."""
    return ",".join(i.secid for i in instruments)


def _records(payload: Any) -> list[dict[str, Any]]:
    """Pull the record list out of ``{"data": {"diff": [...]}}``.

    ``diff`` is usually a list but some deployments send an object keyed
    by position (``{"0": {...}, "1": {...}}``).
    """
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, dict):
        return []
    diff = data.get("diff")
    if isinstance(diff, dict):
        diff = [diff[k] for k in sorted(diff, key=lambda k: int(k) if str(k).isdigit() else 0)]
    if not isinstance(diff, list):
        return []
    return [rec for rec in diff if isinstance(rec, dict)]


def parse_quote_payload(payload: Any) -> dict[Instrument, Quote]:
    """Decode a quote response into ``{Instrument: Quote}``.

    Records with an unusable code or market are skipped individually.
    """
    quotes: dict[Instrument, Quote] = {}
    for rec in _records(payload):
        try:
            instrument = Instrument(Market.from_wire(rec.get("f13")), str(rec.get("f12", "")))
        except InvalidInstrumentError as exc:
            logger.debug("Skipping quote record %r: %s", rec, exc)
            continue
        quotes[instrument] = Quote(
            instrument=instrument,
            name=str(rec.get("f14") or instrument.code),
            price=to_float(rec.get("f2")),
            change_absolute=to_float(rec.get("f4")),
            change_percent=to_float(rec.get("f3")),
        )
    return quotes


class QuoteClient:
    """Async adapter for the multi-instrument quote endpoint."""

    label = "quotes"

    def __init__(self, client: httpx.AsyncClient, fingerprint: str, url: str = QUOTE_URL) -> None:
        self.client = client
        self.fingerprint = fingerprint
        self.url = url

    async def fetch_quotes(self, instruments: Sequence[Instrument]) -> dict[Instrument, Quote]:
        """Fetch one quote snapshot for every instrument in a single request."""
        if not instruments:
            return {}
        params = {"fltt": "2", "secids": build_secids(instruments), "fields": QUOTE_FIELDS}
        try:
            r = await self.client.get(self.url, params=params, headers=fingerprint_headers(self.fingerprint))
            r.raise_for_status()
            payload = safe_json(r, self.label)
        except (httpx.HTTPError, DataSourceError) as exc:
            log_fetch_warning(self.label, exc)
            return {}

        quotes = parse_quote_payload(payload)
        if not quotes:
            log_fetch_warning(
                self.label,
                f"zero records for {len(instruments)} instrument(s); keeping last known quotes "
                "(missing fingerprint cookie?)",
            )
            return {}
        log_fetch_recovered(self.label)
        return quotes
