"""
test_oracle.py - Unit tests for oracle normalization and price sources

Tests:
- normalize() validation: non-positive prices, staleness bound
- Scale for tokens of different decimals
- Conversions between collateral and loan units (both round down)
- StaticPriceSource / TimeSeriesPriceSource
- read_price() over a PriceSource and Clock
"""

import pytest
from decimal import Decimal

from lending_ledger import (
    ManualClock, InvalidPrice, StalePrice,
    OracleReading, CanonicalPrice, PriceSource,
    price_scale, normalize, normalize_reading, read_price,
    to_loan_assets, to_collateral_amount,
    StaticPriceSource, TimeSeriesPriceSource,
)
from tests.fake_sources import ScriptedPriceSource, BrokenPriceSource


# 3000 USDC (6 decimals) per WETH (18 decimals).
ETH_USDC_RAW = 3000 * 10 ** 24


# ============================================================================
# NORMALIZE TESTS
# ============================================================================

class TestNormalize:
    """Tests for normalize() and normalize_reading()."""

    def test_equal_decimals_scale(self):
        price = normalize(10 ** 36, 18, 18)
        assert price.scale == 10 ** 36
        assert price.to_decimal() == Decimal(1)

    def test_mixed_decimals_scale(self):
        price = normalize(ETH_USDC_RAW, 6, 18)
        assert price.scale == 10 ** 24
        assert price.to_decimal() == Decimal(3000)

    def test_inverse(self):
        price = normalize(2 * 10 ** 36, 18, 18)
        assert price.inverse() == Decimal("0.5")

    def test_zero_price_rejected(self):
        with pytest.raises(InvalidPrice):
            normalize(0, 18, 18)

    def test_negative_price_rejected(self):
        with pytest.raises(InvalidPrice):
            normalize(-5, 18, 18)

    def test_float_price_rejected(self):
        with pytest.raises(InvalidPrice):
            normalize(1.0, 18, 18)

    def test_stale_price_rejected(self):
        with pytest.raises(StalePrice):
            normalize(10 ** 36, 18, 18, timestamp=100, now=200, max_age=50)

    def test_price_at_exact_bound_is_fresh(self):
        price = normalize(10 ** 36, 18, 18, timestamp=100, now=200, max_age=100)
        assert price.timestamp == 100

    def test_no_bound_means_no_staleness_check(self):
        price = normalize(10 ** 36, 18, 18, timestamp=0, now=10 ** 9)
        assert price.raw_price == 10 ** 36

    def test_future_reading_is_fresh(self):
        normalize(10 ** 36, 18, 18, timestamp=300, now=200, max_age=0)

    def test_negative_bound_rejected(self):
        with pytest.raises(ValueError):
            normalize(10 ** 36, 18, 18, timestamp=100, now=100, max_age=-1)

    def test_normalize_reading(self):
        reading = OracleReading(raw_price=ETH_USDC_RAW, loan_decimals=6,
                                collateral_decimals=18, timestamp=1_000)
        price = normalize_reading(reading, now=1_010, max_age=60)
        assert isinstance(price, CanonicalPrice)
        assert price.loan_decimals == 6
        assert price.collateral_decimals == 18

    def test_normalize_stale_reading(self):
        reading = OracleReading(raw_price=ETH_USDC_RAW, loan_decimals=6,
                                collateral_decimals=18, timestamp=1_000)
        with pytest.raises(StalePrice):
            normalize_reading(reading, now=2_000, max_age=60)

    def test_unsupported_decimals(self):
        with pytest.raises(ValueError):
            price_scale(0, 40)


# ============================================================================
# CONVERSION TESTS
# ============================================================================

class TestConversions:
    """Tests for to_loan_assets and to_collateral_amount."""

    def test_one_weth_in_usdc_units(self):
        price = normalize(ETH_USDC_RAW, 6, 18)
        assert to_loan_assets(10 ** 18, price) == 3000 * 10 ** 6

    def test_usdc_to_weth_units(self):
        price = normalize(ETH_USDC_RAW, 6, 18)
        assert to_collateral_amount(3000 * 10 ** 6, price) == 10 ** 18

    def test_loan_value_rounds_down(self):
        price = normalize(9 * 10 ** 35, 18, 18)  # 0.9
        assert to_loan_assets(7, price) == 6

    def test_collateral_amount_rounds_down(self):
        price = normalize(9 * 10 ** 35, 18, 18)  # 0.9
        assert to_collateral_amount(420, price) == 466

    def test_par_price_is_identity(self, price):
        assert to_loan_assets(1_000, price) == 1_000
        assert to_collateral_amount(1_000, price) == 1_000


# ============================================================================
# PRICE SOURCE TESTS
# ============================================================================

class TestPriceSources:
    """Tests for the bundled PriceSource implementations."""

    def test_static_source_stamps_clock_time(self):
        clock = ManualClock(500)
        source = StaticPriceSource(10 ** 36, clock)
        assert source.latest() == (10 ** 36, 500)
        clock.advance(100)
        assert source.latest() == (10 ** 36, 600)

    def test_static_source_update(self):
        source = StaticPriceSource(10 ** 36, ManualClock())
        source.update_price(2 * 10 ** 36)
        assert source.latest()[0] == 2 * 10 ** 36

    def test_sources_satisfy_protocol(self):
        clock = ManualClock()
        assert isinstance(StaticPriceSource(1, clock), PriceSource)
        assert isinstance(TimeSeriesPriceSource(clock), PriceSource)

    def test_time_series_lookup(self):
        clock = ManualClock(150)
        source = TimeSeriesPriceSource(clock, [(200, 2), (100, 1)])
        assert source.latest() == (1, 100)
        clock.set(200)
        assert source.latest() == (2, 200)
        clock.set(10_000)
        assert source.latest() == (2, 200)

    def test_time_series_before_first_observation(self):
        source = TimeSeriesPriceSource(ManualClock(50), [(100, 1)])
        assert source.get_price(50) is None
        with pytest.raises(InvalidPrice):
            source.latest()

    def test_time_series_add_price_out_of_order(self):
        source = TimeSeriesPriceSource(ManualClock(0))
        source.add_price(300, 3)
        source.add_price(100, 1)
        assert source.get_price(200) == (1, 100)


# ============================================================================
# READ PRICE TESTS
# ============================================================================

class TestReadPrice:
    """Tests for read_price()."""

    def test_read_fresh_price(self):
        clock = ManualClock(1_000)
        price = read_price(StaticPriceSource(10 ** 36, clock), clock, 18, 18, max_age=0)
        assert price.to_decimal() == Decimal(1)

    def test_stale_then_refetch(self):
        clock = ManualClock(1_000)
        source = ScriptedPriceSource([(10 ** 36, 100), (10 ** 36, 995)])
        with pytest.raises(StalePrice):
            read_price(source, clock, 18, 18, max_age=60)
        price = read_price(source, clock, 18, 18, max_age=60)
        assert price.timestamp == 995
        assert source.fetches == 2

    def test_time_series_age_is_real(self):
        clock = ManualClock(150)
        source = TimeSeriesPriceSource(clock, [(100, 10 ** 36)])
        with pytest.raises(StalePrice):
            read_price(source, clock, 18, 18, max_age=30)

    def test_broken_feed_propagates(self):
        with pytest.raises(InvalidPrice):
            read_price(BrokenPriceSource(), ManualClock(), 18, 18)
