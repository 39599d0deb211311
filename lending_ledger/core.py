"""
Core types and protocols for the lending market ledger.

This module provides the foundational data structures for the ledger:
1. Constants: WAD scale, fee ceiling, liquidation defaults
2. Exceptions: LedgerError and domain-specific error types
3. Protocols: Clock, the only time source the ledger consults
4. Immutable data structures: MarketParams, Market, Position
5. Clocks: SystemClock for live use, ManualClock for simulations and tests

Every amount in this package is a Python int in the smallest unit of its
token. Ratios (LLTV, fee, rates, close factor, incentive) are WAD-scaled ints.
Decimal is used only for derived, human-facing views (health factor, APY).
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN, getcontext
from enum import Enum
import hashlib
import time
from typing import Optional, Protocol, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Decimal only appears in derived views (health factor, exchange rates, APY).
# prec=50 keeps a 10**36-scaled ratio exact to well past display precision.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale for ratios: 1.0 == 10**18.
WAD = 10 ** 18

# Raw oracle prices convert smallest collateral units to smallest loan units
# at 36 fractional digits. Read as a whole-token price they carry
# 36 + loan_decimals - collateral_decimals digits.
ORACLE_PRICE_SCALE_DECIMALS = 36
ORACLE_PRICE_SCALE = 10 ** ORACLE_PRICE_SCALE_DECIMALS

# Protocol fee ceiling (25% of accrued interest).
MAX_FEE = WAD // 4

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Reference liquidation policy: half the debt per call, 5% bonus.
DEFAULT_CLOSE_FACTOR = WAD // 2
DEFAULT_INCENTIVE_FACTOR = WAD + WAD // 20

HEALTH_FACTOR_INFINITE = Decimal("Infinity")


class Rounding(Enum):
    """Rounding direction for every integer division in the ledger."""
    DOWN = "down"
    UP = "up"


class Pool(Enum):
    """Which side of the market a share conversion refers to."""
    SUPPLY = "supply"
    BORROW = "borrow"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InvalidAmount(LedgerError):
    """Raised when an operation is requested with a zero or negative amount."""
    pass


class MarketNotFound(LedgerError):
    """Raised when operating on a market that has not been initialized by a first supply."""
    pass


class InsufficientLiquidity(LedgerError):
    """Raised when a withdrawal or borrow exceeds the pool's idle assets."""
    pass


class InsufficientShares(LedgerError):
    """Raised when an account holds fewer shares than a withdrawal or repayment burns."""
    pass


class InsufficientCollateral(LedgerError):
    """Raised when an operation would leave a position unhealthy or overdraw its collateral."""
    pass


class DivisionByZero(LedgerError):
    """
    Raised by the fixed-point helpers on a zero denominator.

    Seen from the outside this means a pool total is zero where a ratio is
    required, i.e. the market state is corrupted.
    """
    pass


class InvalidPrice(LedgerError):
    """Raised when an oracle reading is zero or negative."""
    pass


class StalePrice(LedgerError):
    """Raised when an oracle reading is older than the caller's staleness bound."""
    pass


class NotLiquidatable(LedgerError):
    """Raised when a liquidation is attempted against a healthy position."""
    pass


class ExceedsMaxLiquidation(LedgerError):
    """Raised when a requested repay or seize amount exceeds the policy bound."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class Clock(Protocol):
    """
    Time source for interest accrual and price staleness checks.

    Times are integer seconds (unix epoch for SystemClock), matching the
    granularity at which the on-chain market records its last update.
    """

    def now(self) -> int:
        """Return the current time in seconds."""
        ...


# ============================================================================
# CLOCKS
# ============================================================================

class SystemClock:
    """Wall-clock time, truncated to whole seconds."""

    def now(self) -> int:
        return int(time.time())

    def __repr__(self) -> str:
        return "SystemClock()"


class ManualClock:
    """
    Explicitly driven clock for simulations and tests.

    Time can only move forward, never backward.
    """

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError(f"Clock cannot start before the epoch: {start}")
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """Move the clock forward by `seconds` and return the new time."""
        if seconds < 0:
            raise ValueError(f"Cannot move time backwards by {seconds} seconds")
        self._now += seconds
        return self._now

    def set(self, new_time: int) -> None:
        """
        Jump the clock to an absolute time.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._now:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._now}")
        self._now = new_time

    def __repr__(self) -> str:
        return f"ManualClock(now={self._now})"


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def require_int(name: str, value) -> None:
    """Reject floats, Decimals and bools where an integer token amount is expected."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be int, got {type(value).__name__}")


def require_positive_amount(name: str, value) -> None:
    """Validate a user-requested amount: int and strictly positive."""
    require_int(name, value)
    if value <= 0:
        raise InvalidAmount(f"{name} must be positive, got {value}")


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class MarketParams:
    """
    Immutable parameters of a market - set at creation, never change.

    Attributes:
        loan_token: Identifier of the token that is supplied and borrowed.
        collateral_token: Identifier of the token pledged by borrowers.
        oracle: Identifier of the price oracle for collateral in loan terms.
        irm: Identifier of the interest rate model.
        lltv: Liquidation loan-to-value, WAD-scaled, in [0, WAD).
        loan_decimals: Decimal count of the loan token.
        collateral_decimals: Decimal count of the collateral token.

    The market key (`id`) is a content hash of all of the above, so two
    markets with identical parameters are the same market.
    """
    loan_token: str
    collateral_token: str
    oracle: str
    irm: str
    lltv: int
    loan_decimals: int = 18
    collateral_decimals: int = 18

    def __post_init__(self):
        for name in ("loan_token", "collateral_token", "oracle", "irm"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"MarketParams {name} cannot be empty")
        require_int("lltv", self.lltv)
        if self.lltv < 0 or self.lltv >= WAD:
            raise ValueError(f"lltv must be in [0, WAD), got {self.lltv}")
        for name in ("loan_decimals", "collateral_decimals"):
            value = getattr(self, name)
            require_int(name, value)
            if value < 0:
                raise ValueError(f"{name} cannot be negative, got {value}")
        if ORACLE_PRICE_SCALE_DECIMALS + self.loan_decimals - self.collateral_decimals < 0:
            raise ValueError(
                f"collateral_decimals ({self.collateral_decimals}) too large for "
                f"loan_decimals ({self.loan_decimals})"
            )

    @property
    def id(self) -> str:
        """Deterministic market key derived from the parameters."""
        content = "|".join([
            f"loan:{self.loan_token}",
            f"collateral:{self.collateral_token}",
            f"oracle:{self.oracle}",
            f"irm:{self.irm}",
            f"lltv:{self.lltv}",
            f"decimals:{self.loan_decimals}:{self.collateral_decimals}",
        ])
        return "0x" + hashlib.sha256(content.encode()).hexdigest()

    def __repr__(self) -> str:
        return (
            f"MarketParams({self.collateral_token}/{self.loan_token}, "
            f"lltv={Decimal(self.lltv) / Decimal(WAD)})"
        )


@dataclass(frozen=True, slots=True)
class Market:
    """
    Immutable snapshot of a market's pool totals at a point in time.

    Each state change creates a NEW instance (value semantics), which is what
    lets every ledger operation be computed in full before anything is
    committed.

    Attributes:
        params: The market's immutable parameters.
        total_supply_assets: Loan-token assets owed to suppliers.
        total_supply_shares: Outstanding supply shares.
        total_borrow_assets: Loan-token assets owed by borrowers.
        total_borrow_shares: Outstanding borrow shares.
        last_update: Time (seconds) interest was last accrued.
        fee: Protocol fee fraction of accrued interest, WAD-scaled.
    """
    params: MarketParams
    total_supply_assets: int = 0
    total_supply_shares: int = 0
    total_borrow_assets: int = 0
    total_borrow_shares: int = 0
    last_update: int = 0
    fee: int = 0

    def __post_init__(self):
        for name in (
            "total_supply_assets", "total_supply_shares",
            "total_borrow_assets", "total_borrow_shares", "last_update", "fee",
        ):
            value = getattr(self, name)
            require_int(name, value)
            if value < 0:
                raise ValueError(f"Market {name} cannot be negative, got {value}")
        if self.fee > MAX_FEE:
            raise ValueError(f"fee {self.fee} exceeds MAX_FEE {MAX_FEE}")

    @property
    def id(self) -> str:
        return self.params.id

    @property
    def lltv(self) -> int:
        return self.params.lltv

    @property
    def available_liquidity(self) -> int:
        """Idle loan-token assets that can be withdrawn or borrowed."""
        return max(self.total_supply_assets - self.total_borrow_assets, 0)

    def __repr__(self) -> str:
        return (
            f"Market(supply={self.total_supply_assets}/{self.total_supply_shares}, "
            f"borrow={self.total_borrow_assets}/{self.total_borrow_shares}, "
            f"t={self.last_update})"
        )


@dataclass(frozen=True, slots=True)
class Position:
    """
    Immutable snapshot of one account's position in a market.

    Supply and borrow are held as shares of their pools; collateral is held
    1:1 in collateral-token units and is never pooled.
    """
    supply_shares: int = 0
    borrow_shares: int = 0
    collateral: int = 0

    def __post_init__(self):
        for name in ("supply_shares", "borrow_shares", "collateral"):
            value = getattr(self, name)
            require_int(name, value)
            if value < 0:
                raise ValueError(f"Position {name} cannot be negative, got {value}")

    def is_empty(self) -> bool:
        """Return True if the position holds nothing."""
        return not self.supply_shares and not self.borrow_shares and not self.collateral


EMPTY_POSITION = Position()


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    Executed, immutable record of one ledger operation - the audit trail.

    Attributes:
        sequence: Monotonic sequence number within the ledger.
        kind: Operation name ("supply", "borrow", "liquidate", ...).
        account: Account the operation was applied to.
        assets: Asset amount moved (loan token, or collateral token for
                collateral operations).
        shares: Shares minted or burned (0 for collateral operations).
        timestamp: Clock time at execution.
        market_before: Market snapshot after accrual, before the operation.
        market_after: Market snapshot after the operation.
        collateral: Collateral moved (seized collateral for liquidations).
    """
    sequence: int
    kind: str
    account: str
    assets: int
    shares: int
    timestamp: int
    market_before: Optional[Market]
    market_after: Market
    collateral: int = 0

    def __repr__(self) -> str:
        return (
            f"OperationRecord(#{self.sequence} {self.kind} {self.account}: "
            f"assets={self.assets}, shares={self.shares}, collateral={self.collateral})"
        )
