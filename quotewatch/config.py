"""Global configuration for the quotewatch engine.

All tunables can be overridden via environment variables.  The quote
refresh interval is a user setting and lives in the persisted settings
file instead (see ``settings.py``).
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field

# Floor for the user-configurable quote refresh interval.
MIN_REFRESH_INTERVAL_S: int = 10
DEFAULT_REFRESH_INTERVAL_S: int = 10

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def _env_float(key: str, default: float) -> float:
    """Read an env var as float, returning *default* on parse failure."""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_int(key: str, default: int) -> int:
    """Read an env var as int, returning *default* on parse failure."""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def clamp_refresh_interval(seconds: object) -> int:
    """Coerce a refresh interval to an int no lower than the 10 s floor."""
    try:
        value = int(seconds)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return DEFAULT_REFRESH_INTERVAL_S
    return max(value, MIN_REFRESH_INTERVAL_S)


@dataclass(frozen=True)
class Config:
    """Central configuration – one instance per process.

    Environment variables are read at **instantiation** time (not module
    import time) so callers can set them programmatically before
    creating a ``Config``.
    """

    # ── Persistence ─────────────────────────────────────────────
    settings_path: str = field(
        default_factory=lambda: os.getenv("QUOTEWATCH_SETTINGS_PATH", "artifacts/quotewatch/settings.json"),
    )

    # ── HTTP ────────────────────────────────────────────────────
    http_timeout_s: float = field(default_factory=lambda: _env_float("QUOTEWATCH_HTTP_TIMEOUT_S", 10.0))
    user_agent: str = field(default_factory=lambda: os.getenv("QUOTEWATCH_USER_AGENT", _DEFAULT_USER_AGENT))

    # Device-fingerprint cookie value for the quote/trend endpoints.
    # Without it the server answers 200 with an empty record list.
    fingerprint: str = field(
        default_factory=lambda: os.getenv("QUOTEWATCH_FINGERPRINT") or uuid.uuid4().hex,
        repr=False,
    )

    # ── Polling cadence ─────────────────────────────────────────
    trend_interval_s: float = field(default_factory=lambda: _env_float("QUOTEWATCH_TREND_INTERVAL_S", 30.0))
    trend_concurrency: int = field(
        default_factory=lambda: max(1, _env_int("QUOTEWATCH_TREND_CONCURRENCY", 15)),
    )
    auto_refresh: bool = field(default_factory=lambda: _env_bool("QUOTEWATCH_AUTO_REFRESH", True))

    # ── Search ──────────────────────────────────────────────────
    search_debounce_s: float = field(default_factory=lambda: _env_float("QUOTEWATCH_SEARCH_DEBOUNCE_S", 0.3))

    # ── Logging ─────────────────────────────────────────────────
    log_level: str = field(default_factory=lambda: os.getenv("QUOTEWATCH_LOG_LEVEL", "INFO").upper())
