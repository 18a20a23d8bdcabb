"""A-share trading-session calendar.

Pure time-of-day checks used to gate both polling loops.  The loops call
``is_in_session()`` on every tick, so sessions open and close without
restarting any timer.

Sessions (Asia/Shanghai, Mon-Fri, inclusive bounds, minute resolution):
    09:15 – 11:30   call auction + morning session
    12:59 – 15:00   afternoon session

Exchange holidays are not modelled; on a holiday weekday the loops
simply poll an unchanged market.
"""
from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

EXCHANGE_TZ = ZoneInfo("Asia/Shanghai")

_MORNING_OPEN_MIN = 9 * 60 + 15      # 555
_MORNING_CLOSE_MIN = 11 * 60 + 30    # 690
_AFTERNOON_OPEN_MIN = 12 * 60 + 59   # 779
_AFTERNOON_CLOSE_MIN = 15 * 60       # 900


def now_exchange() -> datetime:
    """Return current time in exchange-local time."""
    return datetime.now(EXCHANGE_TZ)


def _to_exchange(dt: datetime | None) -> datetime:
    # Naive datetimes are taken as exchange-local already.
    if dt is None:
        return now_exchange()
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(EXCHANGE_TZ)


def _minutes_since_midnight(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute


def is_weekend(dt: datetime | None = None) -> bool:
    """True on Saturday (5) or Sunday (6)."""
    return _to_exchange(dt).weekday() >= 5


def is_in_session(now: datetime | None = None) -> bool:
    """True while the exchange is inside a trading session."""
    dt = _to_exchange(now)
    if dt.weekday() >= 5:
        return False
    mins = _minutes_since_midnight(dt)
    return (
        _MORNING_OPEN_MIN <= mins <= _MORNING_CLOSE_MIN
        or _AFTERNOON_OPEN_MIN <= mins <= _AFTERNOON_CLOSE_MIN
    )
