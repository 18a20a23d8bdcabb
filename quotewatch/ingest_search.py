"""Symbol search adapter (Tencent smartbox endpoint).

The response is a JavaScript assignment, not JSON::

    v_hint="sh~600519~\\u8d35\\u5dde\\u8305\\u53f0~gzmt~GP-A^sz~000858~..."

Records are separated by ``^`` and fields by ``~``:
``exchange~code~name~pinyin~type``.  Names arrive as ``\\uXXXX`` escapes
which are decoded before the payload is matched.  Only A-share equities
(``GP-A``) and indices (``ZS``) on Shanghai/Shenzhen are kept.
"""

from __future__ import annotations

import logging
import re

import httpx

from ._http import log_fetch_recovered, log_fetch_warning
from .common_types import Market, SearchResult
from .error_taxonomy import InvalidInstrumentError

logger = logging.getLogger(__name__)

SEARCH_URL = "https://smartbox.gtimg.cn/s3/"
MAX_RESULTS = 5

_UNICODE_ESCAPE_RE = re.compile(r"\\u([0-9a-fA-F]{4})")
_HINT_RE = re.compile(r'v_hint="([^"]*)"')
_CODE_RE = re.compile(r"^\d{6}$")

_RECORD_SEP = "^"
_FIELD_SEP = "~"
_KEPT_TYPES = frozenset({"GP-A", "ZS"})


def decode_unicode_escapes(text: str) -> str:
    """Replace ``\\uXXXX`` escapes with the characters they encode."""
    return _UNICODE_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), text)


def parse_search_payload(raw: str, limit: int = MAX_RESULTS) -> list[SearchResult]:
    """Decode a smartbox payload into at most *limit* results.

    Malformed or non-matching payloads yield ``[]``.
    """
    match = _HINT_RE.search(decode_unicode_escapes(raw or ""))
    if not match or not match.group(1):
        return []

    results: list[SearchResult] = []
    for record in match.group(1).split(_RECORD_SEP):
        parts = record.split(_FIELD_SEP)
        if len(parts) < 5:
            continue
        abbr, code, name, _pinyin, kind = parts[:5]
        if kind not in _KEPT_TYPES or not _CODE_RE.match(code):
            continue
        try:
            market = Market.from_abbreviation(abbr)
        except InvalidInstrumentError:
            continue
        results.append(SearchResult(code=code, name=name, market=market))
        if len(results) >= limit:
            break
    return results


class SearchClient:
    """Async adapter resolving free text to candidate instruments."""

    label = "search"

    def __init__(self, client: httpx.AsyncClient, url: str = SEARCH_URL, limit: int = MAX_RESULTS) -> None:
        self.client = client
        self.url = url
        self.limit = limit

    async def search(self, query: str) -> list[SearchResult]:
        """Return up to ``limit`` candidates for *query*; ``[]`` on failure."""
        q = (query or "").strip()
        if not q:
            return []
        try:
            r = await self.client.get(self.url, params={"q": q, "t": "all"})
            r.raise_for_status()
        except httpx.HTTPError as exc:
            log_fetch_warning(self.label, exc)
            return []
        log_fetch_recovered(self.label)

        results = parse_search_payload(r.text, limit=self.limit)
        logger.debug("Search %r -> %d result(s)", q, len(results))
        return results
