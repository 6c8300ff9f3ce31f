"""
pricing.py - Conversion between asset units and USD value

PriceConverter is stateless: every call reads the latest quote from the
price feed collaborator, checks it, and applies fixed-point arithmetic.

Key Formulas (all integer, truncating toward zero):
    scaled_price = price * ADDITIONAL_FEED_PRECISION          # 8 -> 18 decimals
    usd_value    = scaled_price * amount // PRECISION
    asset_amount = usd_amount * PRECISION // scaled_price

Round trips are not exact: from_usd(a, to_usd(a, x)) <= x, and the gap is
truncation dust. Callers must tolerate it.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Callable, Optional

from .core import (
    PriceFeed, PriceQuote,
    PRECISION, ADDITIONAL_FEED_PRECISION, ORACLE_TIMEOUT,
    EngineError, PriceUnavailable,
)
from .registry import AssetRegistry


def check_quote(
    quote: PriceQuote,
    price_source_id: str,
    now: Optional[datetime],
    max_age: Optional[timedelta],
) -> int:
    """
    Validate a feed quote and return its price.

    Args:
        quote: Quote returned by the feed
        price_source_id: Source the quote came from (for error messages)
        now: Current logical time, or None to skip the recency check
        max_age: Maximum quote age, or None to skip the recency check

    Returns:
        The quote's price (8-decimal int)

    Raises:
        PriceUnavailable: If the price is not a positive int, or the quote time
            is missing, not comparable with now, or stale
    """
    price = quote.price
    if isinstance(price, bool) or not isinstance(price, int):
        raise PriceUnavailable(
            f"{price_source_id}: price must be an int, got {type(price).__name__}"
        )
    if price <= 0:
        raise PriceUnavailable(f"{price_source_id}: non-positive price {price}")
    if now is not None and max_age is not None:
        updated_at = quote.updated_at
        if not isinstance(updated_at, datetime):
            raise PriceUnavailable(
                f"{price_source_id}: updated_at must be a datetime, got {type(updated_at).__name__}"
            )
        try:
            age = now - updated_at
        except TypeError as e:
            raise PriceUnavailable(
                f"{price_source_id}: cannot compare quote time {updated_at} with {now}: {e}"
            ) from e
        if age > max_age:
            raise PriceUnavailable(
                f"{price_source_id}: stale quote, updated {quote.updated_at} "
                f"is {age} old (limit {max_age})"
            )
    return price


class PriceConverter:
    """
    Converts between asset-native amounts and normalized USD value.

    Args:
        registry: Supported assets and their price sources
        feed: Price oracle collaborator
        clock: Returns the current logical time; None disables staleness checks
        max_quote_age: Oldest acceptable quote; None disables staleness checks
    """

    def __init__(
        self,
        registry: AssetRegistry,
        feed: PriceFeed,
        clock: Optional[Callable[[], datetime]] = None,
        max_quote_age: Optional[timedelta] = ORACLE_TIMEOUT,
    ):
        self.registry = registry
        self.feed = feed
        self._clock = clock
        self.max_quote_age = max_quote_age

    def latest_price(self, asset_id: str) -> int:
        """
        Return the checked 8-decimal USD price of one whole unit of asset_id.

        Raises:
            AssetNotSupported: If the asset is not registered
            PriceUnavailable: If the feed fails or returns an unusable quote
        """
        source_id = self.registry.price_source_of(asset_id)
        try:
            quote = self.feed.latest_quote(source_id)
        except EngineError:
            raise
        except Exception as e:
            raise PriceUnavailable(f"{source_id}: feed error: {e}") from e
        if quote is None:
            raise PriceUnavailable(f"{source_id}: no quote")
        now = self._clock() if self._clock is not None else None
        return check_quote(quote, source_id, now, self.max_quote_age)

    def scaled_price(self, asset_id: str) -> int:
        """Latest price lifted to 18 decimals."""
        return self.latest_price(asset_id) * ADDITIONAL_FEED_PRECISION

    def to_usd(self, asset_id: str, amount: int) -> int:
        """
        USD value (18 decimals) of amount units of asset_id.

        Example:
            # feed at $2000.00000000, 15 units
            converter.to_usd("WETH", 15 * PRECISION) == 30_000 * PRECISION
        """
        if amount == 0:
            return 0
        return self.scaled_price(asset_id) * amount // PRECISION

    def from_usd(self, asset_id: str, usd_amount: int) -> int:
        """
        Amount of asset_id worth usd_amount (18 decimals), truncated.

        Example:
            converter.from_usd("WETH", 30_000 * PRECISION) == 15 * PRECISION
        """
        if usd_amount == 0:
            return 0
        return usd_amount * PRECISION // self.scaled_price(asset_id)

    def __repr__(self) -> str:
        return f"PriceConverter({len(self.registry)} assets, max_age={self.max_quote_age})"
