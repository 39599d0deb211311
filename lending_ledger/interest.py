"""
interest.py - Interest rate models and accrual

Interest accrues on the borrow pool and is credited to the supply pool.
The protocol fee is taken from the accrued interest by minting supply
shares to the fee recipient, so no assets leave the pool.

Key Formulas:
    utilization   = total_borrow_assets / total_supply_assets      (WAD, 0 if no supply)
    interest      = total_borrow_assets * rate * elapsed / WAD     (simple growth)
    fee_amount    = interest * fee / WAD
    fee_shares    = fee_amount * supply_shares / (supply_assets + interest - fee_amount)

Rate models are pluggable through the RateModel protocol; FixedRateModel and
KinkedRateModel cover the common shapes.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, Protocol, Tuple, runtime_checkable

from .core import WAD, SECONDS_PER_YEAR, Market, Rounding, require_int
from .fixed_point import mul_div_down, w_mul_down, w_taylor_compounded, to_shares


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class RateModel(Protocol):
    """Borrow rate as a function of utilization. Both are WAD-scaled ints."""

    def borrow_rate_per_second(self, utilization: int) -> int:
        """Return the per-second borrow rate at the given utilization."""
        ...


# ============================================================================
# RATE MODELS
# ============================================================================

def per_second(annual_rate: int) -> int:
    """Convert a WAD annual rate to a WAD per-second rate, rounding down."""
    return annual_rate // SECONDS_PER_YEAR


class FixedRateModel:
    """Constant borrow rate regardless of utilization."""

    def __init__(self, rate_per_second: int):
        require_int("rate_per_second", rate_per_second)
        if rate_per_second < 0:
            raise ValueError(f"rate_per_second cannot be negative, got {rate_per_second}")
        self.rate_per_second = rate_per_second

    def borrow_rate_per_second(self, utilization: int) -> int:
        return self.rate_per_second

    def __repr__(self) -> str:
        return f"FixedRateModel({self.rate_per_second}/s)"


class KinkedRateModel:
    """
    Two-slope rate model.

    Below the kink the rate grows with `slope` per unit of utilization;
    above it, the extra utilization is charged at `jump_slope`. All
    parameters are WAD-scaled and per second, except `kink` which is a WAD
    utilization.
    """

    def __init__(self, base_rate: int, slope: int, jump_slope: int, kink: int):
        for name, value in (("base_rate", base_rate), ("slope", slope),
                            ("jump_slope", jump_slope), ("kink", kink)):
            require_int(name, value)
            if value < 0:
                raise ValueError(f"{name} cannot be negative, got {value}")
        if kink > WAD:
            raise ValueError(f"kink must be at most WAD, got {kink}")
        self.base_rate = base_rate
        self.slope = slope
        self.jump_slope = jump_slope
        self.kink = kink

    def borrow_rate_per_second(self, utilization: int) -> int:
        if utilization <= self.kink:
            return self.base_rate + w_mul_down(utilization, self.slope)
        normal = self.base_rate + w_mul_down(self.kink, self.slope)
        return normal + w_mul_down(utilization - self.kink, self.jump_slope)

    def __repr__(self) -> str:
        return (
            f"KinkedRateModel(base={self.base_rate}, slope={self.slope}, "
            f"jump={self.jump_slope}, kink={self.kink})"
        )


# ============================================================================
# UTILIZATION AND RATE VIEWS
# ============================================================================

def utilization(total_borrow_assets: int, total_supply_assets: int) -> int:
    """Return borrowed / supplied as a WAD ratio (0 when nothing is supplied)."""
    if total_supply_assets == 0:
        return 0
    return mul_div_down(total_borrow_assets, WAD, total_supply_assets)


def supply_rate(borrow_rate: int, utilization_wad: int, fee: int) -> int:
    """Per-second rate earned by suppliers after the protocol fee."""
    return w_mul_down(w_mul_down(borrow_rate, utilization_wad), WAD - fee)


def rate_to_apy(rate_per_second: int) -> Decimal:
    """
    Annualize a per-second WAD rate with per-second compounding.

    Returns a Decimal fraction (0.05 == 5%). Display only; nothing in the
    ledger's accounting reads this value.
    """
    rate = Decimal(rate_per_second) / Decimal(WAD)
    return (Decimal(1) + rate) ** SECONDS_PER_YEAR - Decimal(1)


# ============================================================================
# ACCRUAL
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccrualResult:
    """
    Outcome of one accrual step.

    Attributes:
        elapsed: Seconds since the previous accrual.
        borrow_rate: Per-second rate applied.
        interest: Assets added to both the borrow and the supply pool.
        fee_amount: Part of the interest owed to the fee recipient.
        fee_shares: Supply shares minted to the fee recipient.
    """
    elapsed: int
    borrow_rate: int
    interest: int
    fee_amount: int
    fee_shares: int


NO_ACCRUAL = AccrualResult(elapsed=0, borrow_rate=0, interest=0, fee_amount=0, fee_shares=0)


class InterestAccrualModel:
    """
    Turns a rate model into an assets delta for the borrow pool.

    With compounded=False (the default) growth over the period
    is linear: rate * elapsed. With compounded=True the three-term Taylor
    approximation of continuous compounding is used instead.
    """

    def __init__(self, rate_model: RateModel, compounded: bool = False):
        self.rate_model = rate_model
        self.compounded = compounded

    def growth(self, rate: int, elapsed_seconds: int) -> int:
        """WAD growth factor of the borrow pool over the period."""
        if self.compounded:
            return w_taylor_compounded(rate, elapsed_seconds)
        return rate * elapsed_seconds

    def accrue(self, market: Market, elapsed_seconds: int,
               utilization_wad: Optional[int] = None) -> int:
        """
        Return the assets delta for the borrow pool over elapsed_seconds.

        Utilization defaults to the market's current ratio. Zero elapsed
        time yields zero, which makes repeated accrual at the same
        timestamp a no-op.

        Raises:
            ValueError: if elapsed_seconds is negative
        """
        require_int("elapsed_seconds", elapsed_seconds)
        if elapsed_seconds < 0:
            raise ValueError(f"Cannot accrue over negative time: {elapsed_seconds}s")
        if elapsed_seconds == 0 or market.total_borrow_assets == 0:
            return 0
        if utilization_wad is None:
            utilization_wad = utilization(market.total_borrow_assets, market.total_supply_assets)
        rate = self.rate_model.borrow_rate_per_second(utilization_wad)
        return mul_div_down(market.total_borrow_assets, self.growth(rate, elapsed_seconds), WAD)

    def borrow_rate(self, market: Market) -> int:
        """Current per-second borrow rate of the market."""
        return self.rate_model.borrow_rate_per_second(
            utilization(market.total_borrow_assets, market.total_supply_assets)
        )

    def __repr__(self) -> str:
        mode = "compounded" if self.compounded else "linear"
        return f"InterestAccrualModel({self.rate_model!r}, {mode})"


def accrue_market(model: InterestAccrualModel, market: Market, now: int) -> Tuple[Market, AccrualResult]:
    """
    Bring a market's totals forward to `now`.

    PURE FUNCTION - returns a new Market and the accrual details; the caller
    credits result.fee_shares to the fee recipient's position.

    Raises:
        ValueError: if now is before the market's last update
    """
    elapsed = now - market.last_update
    if elapsed < 0:
        raise ValueError(
            f"Cannot accrue backwards: now={now} < last_update={market.last_update}"
        )
    if elapsed == 0:
        return market, NO_ACCRUAL

    rate = model.borrow_rate(market) if market.total_borrow_assets else 0
    interest = model.accrue(market, elapsed)
    if interest == 0:
        return replace(market, last_update=now), AccrualResult(elapsed, rate, 0, 0, 0)

    new_supply_assets = market.total_supply_assets + interest
    fee_amount = mul_div_down(interest, market.fee, WAD)
    fee_shares = 0
    if fee_amount > 0:
        fee_shares = to_shares(
            fee_amount,
            new_supply_assets - fee_amount,
            market.total_supply_shares,
            Rounding.DOWN,
        )

    accrued = replace(
        market,
        total_borrow_assets=market.total_borrow_assets + interest,
        total_supply_assets=new_supply_assets,
        total_supply_shares=market.total_supply_shares + fee_shares,
        last_update=now,
    )
    return accrued, AccrualResult(
        elapsed=elapsed,
        borrow_rate=rate,
        interest=interest,
        fee_amount=fee_amount,
        fee_shares=fee_shares,
    )
