"""Shared HTTP helpers for the upstream quote/trend/search adapters.

Centralises client construction, the device-fingerprint cookie, JSON
decoding and failure logging so every adapter degrades the same way:
log, return an empty result, let the next scheduler tick retry.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

import httpx

from .config import Config
from .error_taxonomy import DataSourceError

logger = logging.getLogger(__name__)

# Cookie carrying the device fingerprint expected by the quote/trend hosts.
FINGERPRINT_COOKIE = "qgqp_b_id"

# ── Failure-streak log suppression ──────────────────────────────
# An offline machine fails every tick.  Warn once per streak, then
# drop to DEBUG until the label succeeds again.
_FAILING_LABELS: set[str] = set()


def build_async_client(cfg: Config) -> httpx.AsyncClient:
    """Create the process-wide ``httpx.AsyncClient``."""
    return httpx.AsyncClient(
        timeout=cfg.http_timeout_s,
        headers={"User-Agent": cfg.user_agent},
        follow_redirects=True,
    )


def fingerprint_headers(fingerprint: str) -> dict[str, str]:
    """Per-request headers attaching the fingerprint cookie."""
    if not fingerprint:
        return {}
    return {"Cookie": f"{FINGERPRINT_COOKIE}={fingerprint}"}


def safe_json(r: httpx.Response, source: str) -> Any:
    """Parse JSON response; raise DataSourceError on failure."""
    try:
        return r.json()
    except (json.JSONDecodeError, ValueError):
        ct = r.headers.get("content-type", "")
        raise DataSourceError(
            f"{source} returned non-JSON (content-type={ct!r}, status={r.status_code})",
            source=source,
            detail=r.text[:200],
        ) from None


def to_float(value: Any, default: float = 0.0) -> float:
    """Safely parse numeric-like values to float with default fallback.

    The quote host sends ``"-"`` for suspended instruments; that and
    ``NaN`` both map to *default*.
    """
    try:
        f = float(value)
        return default if math.isnan(f) else f
    except (TypeError, ValueError):
        return default


def log_fetch_warning(label: str, exc: BaseException | str) -> None:
    """Log a fetch failure, suppressing repeats within one failure streak."""
    msg = exc if isinstance(exc, str) else f"{type(exc).__name__}: {exc}"
    if label in _FAILING_LABELS:
        logger.debug("%s fetch failed (repeat, suppressed): %s", label, msg)
        return
    _FAILING_LABELS.add(label)
    logger.warning("%s fetch failed: %s", label, msg)


def log_fetch_recovered(label: str) -> None:
    """Close a failure streak for *label* after a successful fetch."""
    if label in _FAILING_LABELS:
        _FAILING_LABELS.discard(label)
        logger.info("%s fetch recovered", label)


def forget_fetch_label(label: str) -> None:
    """Drop streak state for a label that will not be fetched again."""
    _FAILING_LABELS.discard(label)
