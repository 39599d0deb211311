"""
position.py - Per-account position accounting

Derives asset-denominated views of a Position from its market's pool ratios.
Every function here is pure: inputs are frozen snapshots, nothing is stored.

Rounding policy:
    Debt rounds UP (the borrower owes at least what the shares imply).
    Supply rounds DOWN (the supplier is never credited more than the pool holds).
    Collateral valuation rounds DOWN (see oracle.py).

Key Formulas:
    debt             = borrow_shares * total_borrow_assets / total_borrow_shares   (up)
    supply           = supply_shares * total_supply_assets / total_supply_shares   (down)
    collateral_value = collateral * raw_price / 10**36                            (down)
    max_borrow_value = collateral_value * lltv / WAD                               (down)
    healthy          = debt <= max_borrow_value
"""

from __future__ import annotations
from decimal import Decimal

from .core import WAD, HEALTH_FACTOR_INFINITE, Market, Position, Rounding
from .fixed_point import mul_div_down, to_assets
from .oracle import CanonicalPrice, to_loan_assets


def current_debt(position: Position, market: Market) -> int:
    """Loan assets owed by the position, rounded up."""
    return to_assets(
        position.borrow_shares,
        market.total_borrow_assets,
        market.total_borrow_shares,
        Rounding.UP,
    )


def current_supply(position: Position, market: Market) -> int:
    """Loan assets the position could withdraw, rounded down."""
    return to_assets(
        position.supply_shares,
        market.total_supply_assets,
        market.total_supply_shares,
        Rounding.DOWN,
    )


def has_open_position(position: Position) -> bool:
    """True if the position has debt or pledged collateral."""
    return position.borrow_shares > 0 or position.collateral > 0


def collateral_value(position: Position, price: CanonicalPrice) -> int:
    """Collateral valued in loan-token units."""
    return to_loan_assets(position.collateral, price)


def max_borrow_value(position: Position, market: Market, price: CanonicalPrice) -> int:
    """Largest debt the position's collateral supports at the market's LLTV."""
    return mul_div_down(collateral_value(position, price), market.lltv, WAD)


def health_factor(position: Position, market: Market, price: CanonicalPrice) -> Decimal:
    """
    max_borrow_value / debt as a Decimal.

    Infinity when the position has no debt. Below 1 means liquidatable.
    """
    debt = current_debt(position, market)
    if debt == 0:
        return HEALTH_FACTOR_INFINITE
    return Decimal(max_borrow_value(position, market, price)) / Decimal(debt)


def is_healthy(position: Position, market: Market, price: CanonicalPrice) -> bool:
    """
    True if debt does not exceed the maximum borrow value.

    A position exactly at the threshold is healthy.
    """
    debt = current_debt(position, market)
    if debt == 0:
        return True
    return debt <= max_borrow_value(position, market, price)


def borrow_capacity(position: Position, market: Market, price: CanonicalPrice) -> int:
    """Additional loan assets the position could borrow, floored at 0."""
    return max(max_borrow_value(position, market, price) - current_debt(position, market), 0)
