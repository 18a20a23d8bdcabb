"""Persistent settings: watchlist order and quote refresh interval.

Stored as JSON (default ``artifacts/quotewatch/settings.json``)::

    {
        "watchlist": [{"code": "600519", "market": "1"}, ...],
        "refresh_interval_s": 10
    }

Writes are atomic (tempfile + ``os.replace``) under a cooperative file
lock so a CLI invocation and a running engine don't clobber each other.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .common_types import Instrument, Market
from .config import DEFAULT_REFRESH_INTERVAL_S, clamp_refresh_interval
from .error_taxonomy import InvalidInstrumentError

try:
    import fcntl  # POSIX only
    _HAS_FCNTL = True
except ImportError:
    _HAS_FCNTL = False

logger = logging.getLogger(__name__)

DEFAULT_WATCHLIST: tuple[Instrument, ...] = (
    Instrument(Market.SHANGHAI, "000001"),  # SSE Composite
    Instrument(Market.SHENZHEN, "399001"),  # SZSE Component
    Instrument(Market.SHANGHAI, "600519"),
    Instrument(Market.SHENZHEN, "000858"),
    Instrument(Market.SHENZHEN, "300750"),
)


@dataclass
class Settings:
    watchlist: list[Instrument] = field(default_factory=lambda: list(DEFAULT_WATCHLIST))
    refresh_interval_s: int = DEFAULT_REFRESH_INTERVAL_S


def _encode_watchlist(instruments: Iterable[Instrument]) -> list[dict[str, str]]:
    return [{"code": i.code, "market": i.market.value} for i in instruments]


def _decode_watchlist(raw: Any) -> list[Instrument]:
    """Decode stored entries, skipping invalid ones and duplicates."""
    if not isinstance(raw, list):
        return []
    out: list[Instrument] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        try:
            instrument = Instrument(Market.from_wire(entry.get("market")), str(entry.get("code", "")))
        except InvalidInstrumentError as exc:
            logger.warning("Dropping invalid watchlist entry %r: %s", entry, exc)
            continue
        if instrument not in out:
            out.append(instrument)
    return out


class SettingsStore:
    """File-backed settings collaborator."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock_path = self.path.with_suffix(".lock")

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        """Cooperatively lock the settings file for read-modify-write.

        Falls back to a no-op on platforms without fcntl (Windows).
        """
        if not _HAS_FCNTL:
            yield
            return
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._lock_path), os.O_CREAT | os.O_RDWR)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def _load_raw(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            return data if isinstance(data, dict) else {}
        except (OSError, ValueError):
            logger.warning("Failed to load settings from %s, using defaults", self.path)
            return {}

    def _save_raw(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=2, ensure_ascii=False, allow_nan=False)
        tmp_fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp", prefix="settings_")
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def load(self) -> Settings:
        """Load settings; an empty or unreadable watchlist falls back to defaults."""
        with self._file_lock():
            data = self._load_raw()
        watchlist = _decode_watchlist(data.get("watchlist"))
        return Settings(
            watchlist=watchlist or list(DEFAULT_WATCHLIST),
            refresh_interval_s=clamp_refresh_interval(
                data.get("refresh_interval_s", DEFAULT_REFRESH_INTERVAL_S)
            ),
        )

    def save(self, settings: Settings) -> None:
        with self._file_lock():
            self._save_raw({
                "watchlist": _encode_watchlist(settings.watchlist),
                "refresh_interval_s": clamp_refresh_interval(settings.refresh_interval_s),
            })

    def save_watchlist(self, instruments: Iterable[Instrument]) -> None:
        """Persist the watchlist order, keeping other settings."""
        with self._file_lock():
            data = self._load_raw()
            data["watchlist"] = _encode_watchlist(instruments)
            self._save_raw(data)
        logger.debug("Saved watchlist to %s", self.path)

    def save_refresh_interval(self, seconds: int) -> None:
        with self._file_lock():
            data = self._load_raw()
            data["refresh_interval_s"] = clamp_refresh_interval(seconds)
            self._save_raw(data)
