"""
liquidation.py - Solvency evaluation and bounded liquidation

Combines position accounting, the market's repay transition and the oracle
conversions into a health check and a liquidation computation.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs and outputs):
   - LiquidationPolicy: close factor, incentive, seize and bad-debt rules
   - LiquidationQuote: derived solvency view of one position
   - LiquidationOutcome: the post-liquidation market and position

2. PURE ENGINE (LiquidationEngine):
   - evaluate() and liquidate() take every input explicitly
   - Nothing is mutated; MarketLedger.liquidate() commits the outcome,
     so a rejected liquidation never leaves a partial write behind

Key Formulas:
    collateral_value = collateral * raw_price / 10**36          (down)
    max_borrow_value = collateral_value * lltv / WAD            (down)
    liquidatable     = debt > max_borrow_value                  (strict)
    max_repay        = debt * close_factor / WAD                (down)
                       or the whole debt when that rounds to 0 or
                       no collateral remains
    max_seize        = min(to_collateral(max_repay * incentive / WAD), collateral)

Bad debt:
    When a liquidation seizes the last unit of collateral while debt
    remains, the residual is written off against both pools, which spreads
    the loss across suppliers pro rata.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal

from .core import (
    WAD, DEFAULT_CLOSE_FACTOR, DEFAULT_INCENTIVE_FACTOR, HEALTH_FACTOR_INFINITE,
    Market, Position, Rounding,
    InvalidAmount, NotLiquidatable, ExceedsMaxLiquidation,
    require_int, require_positive_amount,
)
from .fixed_point import mul_div_down, to_assets
from .market import calculate_repay
from .oracle import CanonicalPrice, to_loan_assets, to_collateral_amount
from .position import current_debt


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LiquidationPolicy:
    """
    Market-level liquidation configuration.

    Attributes:
        close_factor: Fraction of debt repayable per call, WAD, in (0, WAD].
        incentive_factor: Collateral bonus multiplier on repaid debt, WAD, >= WAD.
        proportional_seize: If True, the seize may not exceed what the
            requested repay buys at the incentive, not just the policy maximum.
            Off by default: repay and seize are bounded independently.
        realize_bad_debt: If True, debt left on a position with no collateral
            is written off against both pools.
    """
    close_factor: int = DEFAULT_CLOSE_FACTOR
    incentive_factor: int = DEFAULT_INCENTIVE_FACTOR
    proportional_seize: bool = False
    realize_bad_debt: bool = True

    def __post_init__(self):
        require_int("close_factor", self.close_factor)
        require_int("incentive_factor", self.incentive_factor)
        if self.close_factor <= 0 or self.close_factor > WAD:
            raise ValueError(f"close_factor must be in (0, WAD], got {self.close_factor}")
        if self.incentive_factor < WAD:
            raise ValueError(f"incentive_factor must be >= WAD, got {self.incentive_factor}")


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """
    Derived solvency view of a position. Not persisted.

    max_repay and max_seize are 0 unless the position is liquidatable.
    """
    debt: int
    collateral_value: int
    max_borrow_value: int
    health_factor: Decimal
    liquidatable: bool
    max_repay: int
    max_seize: int
    incentive_factor: int

    def __repr__(self) -> str:
        status = "LIQUIDATABLE" if self.liquidatable else "healthy"
        return (
            f"LiquidationQuote({status}, debt={self.debt}, "
            f"max_borrow={self.max_borrow_value}, hf={self.health_factor})"
        )


@dataclass(frozen=True, slots=True)
class LiquidationOutcome:
    """
    Result of a successful liquidation computation.

    Attributes:
        market: Market after the repay and any bad-debt write-off.
        position: Borrower position after the liquidation.
        repaid_assets: Loan assets repaid by the liquidator.
        repaid_shares: Borrow shares burned by the repay.
        seized_collateral: Collateral transferred to the liquidator.
        bad_debt_assets: Assets written off against both pools.
        bad_debt_shares: Borrow shares burned by the write-off.
        quote: The evaluation the liquidation was checked against.
    """
    market: Market
    position: Position
    repaid_assets: int
    repaid_shares: int
    seized_collateral: int
    bad_debt_assets: int
    bad_debt_shares: int
    quote: LiquidationQuote


# ============================================================================
# ENGINE
# ============================================================================

class LiquidationEngine:
    """
    Stateless liquidation calculator parameterized by a LiquidationPolicy.

    Example:
        engine = LiquidationEngine(LiquidationPolicy())
        quote = engine.evaluate(position, market, price)
        if quote.liquidatable:
            outcome = engine.liquidate(position, market, quote.max_repay, 0, price)
    """

    def __init__(self, policy: LiquidationPolicy = None):
        self.policy = policy or LiquidationPolicy()

    def evaluate(self, position: Position, market: Market, price: CanonicalPrice) -> LiquidationQuote:
        """
        Compute the solvency of a position at a price.

        PURE FUNCTION - reads the snapshots it is given, nothing else.

        Args:
            position: Borrower position snapshot
            market: Market snapshot, already accrued by the caller
            price: Normalized collateral price

        Returns:
            LiquidationQuote
        """
        incentive = self.policy.incentive_factor
        debt = current_debt(position, market)
        value = to_loan_assets(position.collateral, price)
        max_borrow = mul_div_down(value, market.lltv, WAD)

        if debt == 0:
            return LiquidationQuote(
                debt=0,
                collateral_value=value,
                max_borrow_value=max_borrow,
                health_factor=HEALTH_FACTOR_INFINITE,
                liquidatable=False,
                max_repay=0,
                max_seize=0,
                incentive_factor=incentive,
            )

        liquidatable = debt > max_borrow
        max_repay = 0
        max_seize = 0
        if liquidatable:
            max_repay = mul_div_down(debt, self.policy.close_factor, WAD)
            if max_repay == 0 or position.collateral == 0:
                # Dust debt, or nothing left to seize: the whole debt may be closed.
                max_repay = debt
            max_seize = min(
                to_collateral_amount(mul_div_down(max_repay, incentive, WAD), price),
                position.collateral,
            )

        return LiquidationQuote(
            debt=debt,
            collateral_value=value,
            max_borrow_value=max_borrow,
            health_factor=Decimal(max_borrow) / Decimal(debt),
            liquidatable=liquidatable,
            max_repay=max_repay,
            max_seize=max_seize,
            incentive_factor=incentive,
        )

    def seize_bound(self, requested_repay: int, position: Position, price: CanonicalPrice) -> int:
        """Collateral a repay of requested_repay buys at the incentive, capped at the position's collateral."""
        bought = to_collateral_amount(
            mul_div_down(requested_repay, self.policy.incentive_factor, WAD), price
        )
        return min(bought, position.collateral)

    def liquidate(
        self,
        position: Position,
        market: Market,
        requested_repay: int,
        requested_seize: int,
        price: CanonicalPrice,
    ) -> LiquidationOutcome:
        """
        Compute a liquidation without mutating anything.

        Every check runs before any new state is built, so a failure leaves
        the caller's snapshots as they were.

        Args:
            position: Borrower position snapshot
            market: Market snapshot, already accrued by the caller
            requested_repay: Loan assets the liquidator repays (> 0)
            requested_seize: Collateral the liquidator takes (>= 0)
            price: Normalized collateral price

        Returns:
            LiquidationOutcome

        Raises:
            InvalidAmount: if requested_repay <= 0 or requested_seize < 0
            NotLiquidatable: if the position is healthy
            ExceedsMaxLiquidation: if a request exceeds its policy bound
            InsufficientShares: if the repay burns more shares than the position holds
        """
        require_positive_amount("requested_repay", requested_repay)
        require_int("requested_seize", requested_seize)
        if requested_seize < 0:
            raise InvalidAmount(f"requested_seize cannot be negative, got {requested_seize}")

        quote = self.evaluate(position, market, price)
        if not quote.liquidatable:
            raise NotLiquidatable(
                f"Position is healthy: debt {quote.debt} <= max borrow {quote.max_borrow_value}"
            )
        if requested_repay > quote.max_repay:
            raise ExceedsMaxLiquidation(
                f"Repay {requested_repay} exceeds max repay {quote.max_repay}"
            )
        if requested_seize > quote.max_seize:
            raise ExceedsMaxLiquidation(
                f"Seize {requested_seize} exceeds max seize {quote.max_seize}"
            )
        if self.policy.proportional_seize:
            bound = self.seize_bound(requested_repay, position, price)
            if requested_seize > bound:
                raise ExceedsMaxLiquidation(
                    f"Seize {requested_seize} exceeds {bound} bought by repaying {requested_repay}"
                )

        repaid = calculate_repay(market, position, requested_repay)
        new_market = repaid.market
        new_position = replace(repaid.position, collateral=position.collateral - requested_seize)

        bad_debt_assets = 0
        bad_debt_shares = 0
        if (self.policy.realize_bad_debt and new_position.collateral == 0
                and new_position.borrow_shares > 0):
            bad_debt_shares = new_position.borrow_shares
            bad_debt_assets = min(
                to_assets(
                    bad_debt_shares,
                    new_market.total_borrow_assets,
                    new_market.total_borrow_shares,
                    Rounding.UP,
                ),
                new_market.total_borrow_assets,
            )
            new_market = replace(
                new_market,
                total_borrow_assets=new_market.total_borrow_assets - bad_debt_assets,
                total_borrow_shares=new_market.total_borrow_shares - bad_debt_shares,
                total_supply_assets=new_market.total_supply_assets - bad_debt_assets,
            )
            new_position = replace(new_position, borrow_shares=0)

        return LiquidationOutcome(
            market=new_market,
            position=new_position,
            repaid_assets=repaid.assets,
            repaid_shares=repaid.shares,
            seized_collateral=requested_seize,
            bad_debt_assets=bad_debt_assets,
            bad_debt_shares=bad_debt_shares,
            quote=quote,
        )

    def __repr__(self) -> str:
        return f"LiquidationEngine({self.policy!r})"
