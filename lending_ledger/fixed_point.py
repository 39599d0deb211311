"""
fixed_point.py - Exact integer arithmetic for the lending ledger

Every monetary computation in the package routes through mul_div_down or
mul_div_up. Python ints are arbitrary precision, so a*b never overflows and
no double-width emulation is needed; floats are rejected outright.

Rounding direction is always explicit at the call site: either by calling
the _down/_up variant or by passing a Rounding value.

Key Formulas:
    mul_div_down(a, b, c) = floor(a * b / c)
    mul_div_up(a, b, c)   = ceil(a * b / c)
    to_shares(assets)     = assets * total_shares / total_assets   (1:1 when no shares exist)
    to_assets(shares)     = shares * total_assets / total_shares
"""

from __future__ import annotations

from .core import WAD, Rounding, DivisionByZero, require_int


def _check_operands(a: int, b: int, c: int) -> None:
    require_int("a", a)
    require_int("b", b)
    require_int("c", c)
    if a < 0 or b < 0 or c < 0:
        raise ValueError(f"mul_div operands must be non-negative, got ({a}, {b}, {c})")
    if c == 0:
        raise DivisionByZero(f"mul_div by zero: {a} * {b} / 0")


def mul_div_down(a: int, b: int, c: int) -> int:
    """Return floor(a * b / c)."""
    _check_operands(a, b, c)
    return (a * b) // c


def mul_div_up(a: int, b: int, c: int) -> int:
    """Return ceil(a * b / c)."""
    _check_operands(a, b, c)
    return (a * b + c - 1) // c


def mul_div(a: int, b: int, c: int, rounding: Rounding) -> int:
    """
    Return a * b / c rounded in the given direction.

    Raises:
        DivisionByZero: if c == 0
        TypeError: if any operand is not an int
        ValueError: if rounding is not a Rounding member
    """
    if rounding is Rounding.DOWN:
        return mul_div_down(a, b, c)
    if rounding is Rounding.UP:
        return mul_div_up(a, b, c)
    raise ValueError(f"Unknown rounding direction: {rounding!r}")


# ============================================================================
# WAD HELPERS
# ============================================================================

def w_mul_down(x: int, y: int) -> int:
    """Multiply a quantity by a WAD ratio, rounding down."""
    return mul_div_down(x, y, WAD)


def w_div_down(x: int, y: int) -> int:
    """Divide into a WAD ratio, rounding down."""
    return mul_div_down(x, WAD, y)


def w_div_up(x: int, y: int) -> int:
    """Divide into a WAD ratio, rounding up."""
    return mul_div_up(x, WAD, y)


def w_taylor_compounded(x: int, n: int) -> int:
    """
    Approximate e^(x*n) - 1 in WAD using the first three Taylor terms.

    x is a per-second WAD rate and n a number of seconds. Each term rounds
    down, so the result never overstates continuous compounding by rounding.
    """
    require_int("x", x)
    require_int("n", n)
    if x < 0 or n < 0:
        raise ValueError(f"w_taylor_compounded operands must be non-negative, got ({x}, {n})")
    first_term = x * n
    second_term = mul_div_down(first_term, first_term, 2 * WAD)
    third_term = mul_div_down(second_term, first_term, 3 * WAD)
    return first_term + second_term + third_term


# ============================================================================
# SHARE CONVERSIONS
# ============================================================================

def to_shares(assets: int, total_assets: int, total_shares: int, rounding: Rounding) -> int:
    """
    Convert assets to shares of a pool.

    An empty pool (no shares outstanding) is seeded 1:1. A pool with shares
    but no assets raises DivisionByZero: that state is corrupted.
    """
    require_int("assets", assets)
    if total_shares == 0:
        return assets
    return mul_div(assets, total_shares, total_assets, rounding)


def to_assets(shares: int, total_assets: int, total_shares: int, rounding: Rounding) -> int:
    """
    Convert shares of a pool to assets.

    Zero shares are worth zero assets. Converting a positive share amount
    against a pool with no shares raises DivisionByZero.
    """
    require_int("shares", shares)
    if shares == 0:
        return 0
    return mul_div(shares, total_assets, total_shares, rounding)
