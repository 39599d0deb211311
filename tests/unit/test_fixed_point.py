"""
test_fixed_point.py - Unit tests for integer fixed-point arithmetic

Tests:
- mul_div_down / mul_div_up rounding
- Operand validation (zero denominator, floats, negatives)
- WAD helpers and the Taylor compounding approximation
- Share conversions, including the 1:1 first-deposit seed
"""

import pytest
from decimal import Decimal
from hypothesis import given, settings
from hypothesis import strategies as st

from lending_ledger import (
    WAD, Rounding, DivisionByZero,
    mul_div_down, mul_div_up, mul_div,
    w_mul_down, w_div_down, w_div_up, w_taylor_compounded,
    to_shares, to_assets,
)


# Token amounts up to 2**256, like the on-chain integers they model.
amounts = st.integers(min_value=0, max_value=2 ** 256)
denominators = st.integers(min_value=1, max_value=2 ** 256)


# ============================================================================
# MUL DIV TESTS
# ============================================================================

class TestMulDiv:
    """Tests for mul_div_down, mul_div_up and mul_div."""

    def test_exact_division_rounds_neither_way(self):
        assert mul_div_down(6, 4, 3) == 8
        assert mul_div_up(6, 4, 3) == 8

    def test_inexact_division(self):
        assert mul_div_down(7, 3, 2) == 10
        assert mul_div_up(7, 3, 2) == 11

    def test_zero_numerator(self):
        assert mul_div_down(0, 5, 7) == 0
        assert mul_div_up(0, 5, 7) == 0

    def test_no_overflow_beyond_256_bits(self):
        big = 2 ** 255
        assert mul_div_down(big, big, big) == big

    def test_division_by_zero(self):
        with pytest.raises(DivisionByZero):
            mul_div_down(1, 1, 0)
        with pytest.raises(DivisionByZero):
            mul_div_up(1, 1, 0)

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            mul_div_down(1.5, 2, 3)

    def test_decimal_rejected(self):
        with pytest.raises(TypeError):
            mul_div_up(Decimal("1"), 2, 3)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            mul_div_down(True, 2, 3)

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            mul_div_down(-1, 2, 3)

    def test_dispatch_on_rounding(self):
        assert mul_div(7, 3, 2, Rounding.DOWN) == 10
        assert mul_div(7, 3, 2, Rounding.UP) == 11

    def test_unknown_rounding(self):
        with pytest.raises(ValueError):
            mul_div(7, 3, 2, "up")

    @given(amounts, amounts, denominators)
    @settings(max_examples=200)
    def test_up_is_down_or_down_plus_one(self, a, b, c):
        """PROPERTY: down <= exact <= up, and they differ by at most 1."""
        down = mul_div_down(a, b, c)
        up = mul_div_up(a, b, c)
        assert down * c <= a * b <= up * c
        assert up - down in (0, 1)
        assert (up == down) == ((a * b) % c == 0)


# ============================================================================
# WAD HELPERS
# ============================================================================

class TestWadHelpers:
    """Tests for WAD multiplication and division."""

    def test_w_mul_down(self):
        assert w_mul_down(1_000, WAD // 2) == 500
        assert w_mul_down(3, WAD // 2) == 1

    def test_w_div(self):
        assert w_div_down(1, 3) == WAD // 3
        assert w_div_up(1, 3) == WAD // 3 + 1

    def test_taylor_zero(self):
        assert w_taylor_compounded(0, 1_000) == 0
        assert w_taylor_compounded(10 ** 9, 0) == 0

    def test_taylor_three_terms(self):
        # x*n = 0.1: 0.1 + 0.005 + 0.000166...
        assert w_taylor_compounded(10 ** 17, 1) == 105_166_666_666_666_666

    def test_taylor_exceeds_linear(self):
        assert w_taylor_compounded(10 ** 14, 1_000) > 10 ** 14 * 1_000

    def test_taylor_negative_rejected(self):
        with pytest.raises(ValueError):
            w_taylor_compounded(10 ** 9, -1)


# ============================================================================
# SHARE CONVERSIONS
# ============================================================================

class TestShareConversions:
    """Tests for to_shares and to_assets."""

    def test_first_deposit_is_one_to_one(self):
        assert to_shares(1_000, 0, 0, Rounding.DOWN) == 1_000
        assert to_shares(1_000, 0, 0, Rounding.UP) == 1_000

    def test_proportional_conversion(self):
        assert to_shares(100, 333, 100, Rounding.DOWN) == 30
        assert to_shares(100, 333, 100, Rounding.UP) == 31

    def test_zero_shares_are_worth_nothing(self):
        assert to_assets(0, 0, 0, Rounding.UP) == 0

    def test_shares_against_empty_pool_is_corruption(self):
        with pytest.raises(DivisionByZero):
            to_assets(5, 100, 0, Rounding.DOWN)

    def test_shares_against_pool_without_assets_is_corruption(self):
        with pytest.raises(DivisionByZero):
            to_shares(5, 0, 100, Rounding.DOWN)

    @given(st.integers(min_value=1, max_value=10 ** 30))
    @settings(max_examples=100)
    def test_round_trip_on_seed(self, assets):
        """PROPERTY: on an empty pool, assets -> shares -> assets is exact."""
        shares = to_shares(assets, 0, 0, Rounding.DOWN)
        assert to_assets(shares, assets, shares, Rounding.DOWN) == assets

    @given(
        st.integers(min_value=1, max_value=10 ** 24),
        st.integers(min_value=1, max_value=10 ** 24),
        st.integers(min_value=1, max_value=10 ** 24),
    )
    @settings(max_examples=100)
    def test_round_trip_never_creates_value(self, assets, total_assets, total_shares):
        """PROPERTY: converting down then back down never returns more assets."""
        shares = to_shares(assets, total_assets, total_shares, Rounding.DOWN)
        assert to_assets(shares, total_assets, total_shares, Rounding.DOWN) <= assets
