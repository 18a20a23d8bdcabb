"""Intraday trend adapter (Eastmoney ``trends2`` endpoint).

One GET per instrument – the endpoint has no batch form, so callers go
through ``BoundedFetchPool`` to cap simultaneous connections.

Each sample in ``data.trends`` is a comma-joined string::

    "2026-10-19 09:31,1801.00,1802.50,1803.00,1800.10,1234,2.2e8,1801.7"

Only the third field (closing price of the minute) is kept, and only
strictly positive values: zero/placeholder ticks are dropped.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ._http import (
    fingerprint_headers,
    forget_fetch_label,
    log_fetch_recovered,
    log_fetch_warning,
    safe_json,
    to_float,
)
from .common_types import Instrument
from .error_taxonomy import DataSourceError

logger = logging.getLogger(__name__)

TREND_URL = "https://push2.eastmoney.com/api/qt/stock/trends2/get"

_CLOSE_FIELD = 2


def parse_trend_payload(payload: Any) -> list[float]:
    """Extract positive closing prices from a trends response."""
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, dict):
        return []
    trends = data.get("trends")
    if not isinstance(trends, list):
        return []

    series: list[float] = []
    for sample in trends:
        if not isinstance(sample, str):
            continue
        parts = sample.split(",")
        if len(parts) <= _CLOSE_FIELD:
            continue
        price = to_float(parts[_CLOSE_FIELD])
        if price > 0:
            series.append(price)
    return series


class TrendClient:
    """Async adapter for the per-instrument intraday series."""

    label = "trends"

    def __init__(self, client: httpx.AsyncClient, fingerprint: str, url: str = TREND_URL) -> None:
        self.client = client
        self.fingerprint = fingerprint
        self.url = url

    async def fetch_trend(self, instrument: Instrument) -> list[float]:
        """Return the day's closing-price series; ``[]`` on any failure."""
        params = {"secid": instrument.secid, "fields1": "f1", "fields2": "f51,f52,f53"}
        try:
            r = await self.client.get(self.url, params=params, headers=fingerprint_headers(self.fingerprint))
            r.raise_for_status()
            payload = safe_json(r, self.label)
        except (httpx.HTTPError, DataSourceError) as exc:
            log_fetch_warning(self._label_for(instrument), exc)
            return []

        series = parse_trend_payload(payload)
        if series:
            log_fetch_recovered(self._label_for(instrument))
        else:
            logger.debug("Empty trend series for %s", instrument)
        return series

    def forget(self, instrument: Instrument) -> None:
        """Clear failure-streak state for an instrument leaving the watchlist."""
        forget_fetch_label(self._label_for(instrument))

    def _label_for(self, instrument: Instrument) -> str:
        return f"{self.label} {instrument}"
