"""Shared data model for the watchlist engine.

``Instrument`` is the identity everything else is keyed by: quotes and
trend series live in dicts keyed by the (hashable, frozen) instrument,
so equality is exactly the ``(market, code)`` identity key.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from .error_taxonomy import InvalidInstrumentError

_CODE_RE = re.compile(r"^\d{6}$")


class Market(enum.Enum):
    """Exchange.  Values are the numeric market ids used on the wire."""

    SHANGHAI = "1"
    SHENZHEN = "0"

    @classmethod
    def from_wire(cls, value: object) -> "Market":
        """Parse a wire market id (``1``/``"1"`` or ``0``/``"0"``)."""
        raw = str(value).strip()
        for member in cls:
            if member.value == raw:
                return member
        raise InvalidInstrumentError(f"unknown market id {value!r}", market=raw)

    @classmethod
    def from_abbreviation(cls, abbr: str) -> "Market":
        """Parse the ``sh``/``sz`` exchange abbreviation used by search."""
        key = abbr.strip().lower()
        if key == "sh":
            return cls.SHANGHAI
        if key == "sz":
            return cls.SHENZHEN
        raise InvalidInstrumentError(f"unknown exchange abbreviation {abbr!r}", market=abbr)


def market_for_code(code: str) -> Market:
    """Infer the exchange from a bare code: ``6xxxxx`` trades in Shanghai."""
    return Market.SHANGHAI if code.startswith("6") else Market.SHENZHEN


@dataclass(frozen=True)
class Instrument:
    """A tradable security or index.  Identity key = ``(market, code)``."""

    market: Market
    code: str

    def __post_init__(self) -> None:
        if not isinstance(self.market, Market):
            raise InvalidInstrumentError(
                f"market must be a Market, got {self.market!r}", code=str(self.code),
            )
        if not isinstance(self.code, str) or not _CODE_RE.match(self.code):
            raise InvalidInstrumentError(
                f"instrument code must be 6 digits, got {self.code!r}", code=str(self.code),
            )

    @property
    def secid(self) -> str:
        """Upstream identifier, e.g. ``1.600519``."""
        return f"{self.market.value}.{self.code}"

    def __str__(self) -> str:
        return self.secid


@dataclass(frozen=True)
class Quote:
    """Point-in-time price snapshot for one instrument."""

    instrument: Instrument
    name: str
    price: float
    change_absolute: float
    change_percent: float


@dataclass(frozen=True)
class SearchResult:
    """Search candidate not yet on the watchlist."""

    code: str
    name: str
    market: Market

    def to_instrument(self) -> Instrument:
        return Instrument(self.market, self.code)


class SortMode(enum.Enum):
    """Presentation order over ``change_percent``."""

    NONE = "none"
    DESC = "desc"
    ASC = "asc"


@dataclass(frozen=True)
class AddResult:
    """Outcome of a watchlist add."""

    added: bool
    instrument: Instrument
