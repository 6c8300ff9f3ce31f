"""
price_feeds.py - In-memory price feed collaborators

Reference implementations of the PriceFeed protocol used to drive the
engine in simulations and tests.

Classes:
- StaticPriceFeed: One settable quote per price source
- TimeSeriesPriceFeed: Historical quotes, answering with the latest quote
  at or before the current time of an external clock

Prices are 8-decimal ints (FEED_DECIMALS). Use core.to_feed_price() to
convert human-readable prices.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .core import PriceQuote, PriceUnavailable


class StaticPriceFeed:
    """
    Price feed with one quote per source, updated explicitly.

    Prices are not validated here; the engine's PriceConverter is the
    component that rejects non-positive or stale quotes.
    """

    def __init__(
        self,
        prices: Optional[Dict[str, int]] = None,
        updated_at: Optional[datetime] = None,
    ):
        """
        Initialize with a price map.

        Args:
            prices: Price source id -> 8-decimal price
            updated_at: Timestamp stamped on the initial quotes (default 1970-01-01)
        """
        stamp = updated_at or datetime(1970, 1, 1)
        self.quotes: Dict[str, PriceQuote] = {
            source: PriceQuote(price, stamp) for source, price in (prices or {}).items()
        }

    def latest_quote(self, price_source_id: str) -> PriceQuote:
        try:
            return self.quotes[price_source_id]
        except KeyError:
            raise PriceUnavailable(f"No quote for {price_source_id}") from None

    def update_price(
        self,
        price_source_id: str,
        price: int,
        updated_at: Optional[datetime] = None,
    ) -> None:
        """Replace the quote for a source, keeping its timestamp unless one is given."""
        previous = self.quotes.get(price_source_id)
        if updated_at is None:
            updated_at = previous.updated_at if previous else datetime(1970, 1, 1)
        self.quotes[price_source_id] = PriceQuote(price, updated_at)

    def update_prices(self, prices: Dict[str, int], updated_at: Optional[datetime] = None) -> None:
        """Update multiple quotes at once."""
        for source, price in prices.items():
            self.update_price(source, price, updated_at)

    def __repr__(self):
        return f"StaticPriceFeed({len(self.quotes)} sources)"


class TimeSeriesPriceFeed:
    """
    Price feed with time-varying quotes.

    Stores historical observations per source and answers with the most
    recent one at or before clock(). Without a clock the newest observation
    is returned.

    Example:
        feed = TimeSeriesPriceFeed({
            'ETH/USD': [(t0, 2000_00000000), (t1, 1800_00000000)],
        }, clock=lambda: engine.current_time)
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}
        self._clock = clock

        if price_paths:
            for source, path in price_paths.items():
                if not path:
                    continue
                self.price_history[source] = sorted(path, key=lambda x: x[0])

    def set_clock(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock

    def add_price(self, price_source_id: str, timestamp: datetime, price: int) -> None:
        """Add an observation, keeping the history sorted by timestamp."""
        history = self.price_history.setdefault(price_source_id, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def latest_quote(self, price_source_id: str) -> PriceQuote:
        """
        Quote at or before the clock's current time.

        Raises:
            PriceUnavailable: If the source has no observation by that time
        """
        history = self.price_history.get(price_source_id)
        if not history:
            raise PriceUnavailable(f"No quote for {price_source_id}")

        if self._clock is None:
            timestamp, price = history[-1]
            return PriceQuote(price, timestamp)

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self._clock())
        if idx == 0:
            raise PriceUnavailable(
                f"No quote for {price_source_id} at or before {self._clock()}"
            )
        timestamp, price = history[idx - 1]
        return PriceQuote(price, timestamp)

    def __repr__(self):
        total = sum(len(h) for h in self.price_history.values())
        return f"TimeSeriesPriceFeed({len(self.price_history)} sources, {total} observations)"
