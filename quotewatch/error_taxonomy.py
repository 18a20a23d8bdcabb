"""Exception hierarchy for quotewatch.

Callers catch the specific failure mode instead of bare ``Exception``:

  - ``InvalidInstrumentError`` — rejected user input (bad code/market),
    raised synchronously before any network call.
  - ``DataSourceError``        — an upstream payload could not be decoded.
    Clients catch it at their boundary and degrade to an empty result.
  - ``ConfigError``            — invalid tunables or a malformed reorder.
"""
from __future__ import annotations


class QuoteWatchError(Exception):
    """Base error for all quotewatch subsystems."""
    pass


class InvalidInstrumentError(QuoteWatchError, ValueError):
    """Instrument code or market did not validate."""

    def __init__(self, message: str, *, code: str = "", market: str = ""):
        self.code = code
        self.market = market
        super().__init__(message)


class DataSourceError(QuoteWatchError):
    """Upstream returned a payload we could not decode."""

    def __init__(self, message: str, *, source: str = "", detail: str = ""):
        self.source = source
        self.detail = detail
        super().__init__(message)


class ConfigError(QuoteWatchError):
    """Invalid configuration value."""
    pass
