"""
oracle.py - Price oracle adapter and price sources

Normalizes raw oracle readings into a CanonicalPrice and converts between
collateral and loan-token amounts with it.

Price convention:
    A raw price P converts amounts in smallest units:
        loan_assets = collateral * P / 10**36
    Read per whole token, the same P is a price with
    36 + loan_decimals - collateral_decimals fractional digits, which is
    what CanonicalPrice.scale holds for display.

Rounding policy:
    Both conversions round DOWN. Collateral valued in loan terms (which
    bounds what may be borrowed or repaid) is never overstated, and the
    collateral a liquidator may seize is never overstated either.

Classes:
- PriceSource: Protocol for anything that yields the latest raw reading
- StaticPriceSource: Fixed reading, stamped with the clock's time
- TimeSeriesPriceSource: Historical readings, point-in-time lookup
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from .core import (
    ORACLE_PRICE_SCALE, ORACLE_PRICE_SCALE_DECIMALS, Clock, InvalidPrice, StalePrice,
    require_int,
)
from .fixed_point import mul_div_down


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceSource(Protocol):
    """
    Protocol for oracle price sources.

    latest() returns the raw integer price and the time (seconds) it was
    observed. Implementations decide where the price comes from; the ledger
    only validates and scales it.
    """

    def latest(self) -> Tuple[int, int]:
        """Return (raw_price, timestamp) of the most recent reading."""
        ...


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class OracleReading:
    """
    A raw oracle reading before validation.

    Attributes:
        raw_price: Integer price as reported by the oracle.
        loan_decimals: Decimal count of the loan (quote) token.
        collateral_decimals: Decimal count of the collateral (base) token.
        timestamp: Time (seconds) the reading was taken.
    """
    raw_price: int
    loan_decimals: int
    collateral_decimals: int
    timestamp: int


@dataclass(frozen=True, slots=True)
class CanonicalPrice:
    """
    Validated price of collateral in loan-token terms.

    Attributes:
        raw_price: Positive integer price.
        scale: 10 ** (36 + loan_decimals - collateral_decimals).
        loan_decimals: Decimal count of the loan token.
        collateral_decimals: Decimal count of the collateral token.
        timestamp: Time of the underlying reading, if known.
    """
    raw_price: int
    scale: int
    loan_decimals: int
    collateral_decimals: int
    timestamp: Optional[int] = None

    def to_decimal(self) -> Decimal:
        """Loan tokens per whole collateral token, for display."""
        return Decimal(self.raw_price) / Decimal(self.scale)

    def inverse(self) -> Decimal:
        """Collateral tokens per whole loan token, for display."""
        return Decimal(self.scale) / Decimal(self.raw_price)

    def __repr__(self) -> str:
        return f"CanonicalPrice({self.to_decimal()}, raw={self.raw_price})"


# ============================================================================
# NORMALIZATION
# ============================================================================

def price_scale(loan_decimals: int, collateral_decimals: int) -> int:
    """Return the whole-token price denominator for a token pair."""
    require_int("loan_decimals", loan_decimals)
    require_int("collateral_decimals", collateral_decimals)
    exponent = ORACLE_PRICE_SCALE_DECIMALS + loan_decimals - collateral_decimals
    if exponent < 0:
        raise ValueError(
            f"Unsupported decimals: loan={loan_decimals}, collateral={collateral_decimals}"
        )
    return 10 ** exponent


def normalize(
    raw_price: int,
    loan_decimals: int,
    collateral_decimals: int,
    timestamp: Optional[int] = None,
    now: Optional[int] = None,
    max_age: Optional[int] = None,
) -> CanonicalPrice:
    """
    Validate a raw oracle price and attach its scale.

    Staleness is only checked when timestamp, now and max_age are all
    given; the bound is always the caller's policy. A reading stamped in
    the future counts as fresh.

    Args:
        raw_price: Integer price from the oracle
        loan_decimals: Loan token decimals
        collateral_decimals: Collateral token decimals
        timestamp: When the reading was taken
        now: Current time
        max_age: Maximum allowed age in seconds

    Returns:
        CanonicalPrice

    Raises:
        InvalidPrice: if raw_price <= 0 (or is not an int)
        StalePrice: if now - timestamp > max_age
    """
    if isinstance(raw_price, bool) or not isinstance(raw_price, int):
        raise InvalidPrice(f"Oracle price must be int, got {type(raw_price).__name__}")
    if raw_price <= 0:
        raise InvalidPrice(f"Oracle price must be positive, got {raw_price}")

    if timestamp is not None and now is not None and max_age is not None:
        if max_age < 0:
            raise ValueError(f"max_age cannot be negative, got {max_age}")
        age = now - timestamp
        if age > max_age:
            raise StalePrice(f"Oracle price is {age}s old, bound is {max_age}s")

    return CanonicalPrice(
        raw_price=raw_price,
        scale=price_scale(loan_decimals, collateral_decimals),
        loan_decimals=loan_decimals,
        collateral_decimals=collateral_decimals,
        timestamp=timestamp,
    )


def normalize_reading(reading: OracleReading, now: Optional[int] = None,
                      max_age: Optional[int] = None) -> CanonicalPrice:
    """Normalize an OracleReading, applying the staleness bound if given."""
    return normalize(
        reading.raw_price,
        reading.loan_decimals,
        reading.collateral_decimals,
        timestamp=reading.timestamp,
        now=now,
        max_age=max_age,
    )


def read_price(
    source: PriceSource,
    clock: Clock,
    loan_decimals: int,
    collateral_decimals: int,
    max_age: Optional[int] = None,
) -> CanonicalPrice:
    """
    Fetch the latest reading from a source and normalize it.

    Nothing is retried here: on StalePrice the caller re-fetches and calls
    again.
    """
    raw_price, timestamp = source.latest()
    return normalize(
        raw_price, loan_decimals, collateral_decimals,
        timestamp=timestamp, now=clock.now(), max_age=max_age,
    )


# ============================================================================
# CONVERSIONS
# ============================================================================

def to_loan_assets(collateral_amount: int, price: CanonicalPrice) -> int:
    """Value a collateral amount in loan-token units, rounding down."""
    return mul_div_down(collateral_amount, price.raw_price, ORACLE_PRICE_SCALE)


def to_collateral_amount(loan_assets: int, price: CanonicalPrice) -> int:
    """Convert loan-token units to the collateral they buy, rounding down."""
    return mul_div_down(loan_assets, ORACLE_PRICE_SCALE, price.raw_price)


# ============================================================================
# PRICE SOURCES
# ============================================================================

class StaticPriceSource:
    """
    Price source with a fixed raw price.

    Each reading is stamped with the clock's current time, so a static
    source is never stale.
    """

    def __init__(self, raw_price: int, clock: Clock):
        self.raw_price = raw_price
        self.clock = clock

    def latest(self) -> Tuple[int, int]:
        return self.raw_price, self.clock.now()

    def update_price(self, raw_price: int) -> None:
        """Replace the fixed price."""
        self.raw_price = raw_price

    def __repr__(self) -> str:
        return f"StaticPriceSource({self.raw_price})"


class TimeSeriesPriceSource:
    """
    Price source with time-varying readings.

    latest() returns the most recent observation at or before the clock's
    time, with that observation's own timestamp, so staleness checks see
    the real age of the data.
    """

    def __init__(self, clock: Clock, observations: Optional[List[Tuple[int, int]]] = None):
        """
        Args:
            clock: Time source deciding which observation is current
            observations: Optional list of (timestamp, raw_price) tuples
        """
        self.clock = clock
        self.history: List[Tuple[int, int]] = sorted(observations or [], key=lambda x: x[0])

    def add_price(self, timestamp: int, raw_price: int) -> None:
        """Record an observation, keeping history in timestamp order."""
        self.history.append((timestamp, raw_price))
        self.history.sort(key=lambda x: x[0])

    def get_price(self, timestamp: int) -> Optional[Tuple[int, int]]:
        """
        Return (raw_price, observed_at) at or before timestamp, or None.

        Uses binary search for O(log n) lookup.
        """
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None
        observed_at, raw_price = self.history[idx - 1]
        return raw_price, observed_at

    def latest(self) -> Tuple[int, int]:
        found = self.get_price(self.clock.now())
        if found is None:
            raise InvalidPrice(f"No price observed at or before t={self.clock.now()}")
        return found

    def __repr__(self) -> str:
        return f"TimeSeriesPriceSource({len(self.history)} observations)"

