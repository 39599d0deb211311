"""
Atomicity Conformance Tests

INVARIANT: Ledger operations are all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ accrual, market, positions and log are all updated
        O fails ⟹ market, positions and log are exactly as before

The accrual that precedes a rejected operation is discarded with it.
"""

import pytest
from dataclasses import replace
from hypothesis import given, settings
from hypothesis import strategies as st

from lending_ledger import (
    LedgerError, InsufficientLiquidity, InsufficientShares, InsufficientCollateral,
    InvalidAmount, NotLiquidatable, ExceedsMaxLiquidation, StalePrice,
    LiquidationEngine, ManualClock, normalize,
)
from tests.conftest import make_ledger, ledger_state, par_price, price_of, TEN_PERCENT_RATE


def open_market(clock):
    """alice supplies 1,000; bob borrows 500 against 1,000 collateral; 10% growth per 1000s."""
    ledger = make_ledger(rate=TEN_PERCENT_RATE, clock=clock)
    ledger.supply("alice", 1_000)
    ledger.supply_collateral("bob", 1_000)
    ledger.borrow("bob", 500, price=par_price())
    return ledger


class TestRejectedOperations:
    """Each rejection leaves the ledger untouched, including pending interest."""

    @pytest.mark.parametrize("operation, error", [
        (lambda l: l.withdraw("alice", 501), InsufficientLiquidity),
        (lambda l: l.withdraw("carol", 1), InsufficientShares),
        (lambda l: l.borrow("bob", 501), InsufficientLiquidity),
        (lambda l: l.borrow("bob", 300, price=par_price()), InsufficientCollateral),
        (lambda l: l.repay("carol", 10), InsufficientShares),
        (lambda l: l.supply("alice", 0), InvalidAmount),
        (lambda l: l.withdraw_collateral("bob", 1_001, price=par_price()), InsufficientCollateral),
        (lambda l: l.withdraw_collateral("bob", 900, price=par_price()), InsufficientCollateral),
        (lambda l: l.liquidate(LiquidationEngine(), "bob", 100, 0, par_price()), NotLiquidatable),
        (lambda l: l.liquidate(LiquidationEngine(), "bob", 400, 0, price_of(1, 2)), ExceedsMaxLiquidation),
    ])
    def test_rejection_is_atomic(self, clock, operation, error):
        ledger = open_market(clock)
        clock.advance(1_000)
        before = ledger_state(ledger)
        with pytest.raises(error):
            operation(ledger)
        assert ledger_state(ledger) == before
        assert ledger.market.last_update == clock.now() - 1_000

    def test_stale_price_rejected_before_any_mutation(self, clock):
        ledger = open_market(clock)
        before = ledger_state(ledger)
        with pytest.raises(StalePrice):
            ledger.borrow("bob", 10, price=normalize(10 ** 36, 18, 18, timestamp=0,
                                                     now=clock.now(), max_age=60))
        assert ledger_state(ledger) == before

    def test_clock_moving_backwards_rejected(self, clock):
        ledger = open_market(clock)
        ledger.set_market_state(replace(ledger.market, last_update=clock.now() + 10))
        before = ledger_state(ledger)
        with pytest.raises(ValueError):
            ledger.supply("alice", 10)
        assert ledger_state(ledger) == before


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(
        st.lists(
            st.tuples(
                st.sampled_from(["supply", "withdraw", "borrow", "repay"]),
                st.sampled_from(["alice", "bob", "carol"]),
                st.integers(min_value=-10, max_value=3_000),
                st.integers(min_value=0, max_value=500),
            ),
            min_size=1,
            max_size=30,
        )
    )
    @settings(max_examples=50)
    def test_every_operation_applies_fully_or_not_at_all(self, operations):
        """
        PROPERTY: After each call, either the log grew by one record whose
        market_after is the committed market, or nothing changed.
        """
        clock = ManualClock(0)
        ledger = make_ledger(rate=TEN_PERCENT_RATE, clock=clock)
        ledger.supply("seed", 1_000)

        for kind, account, amount, elapsed in operations:
            clock.advance(elapsed)
            before = ledger_state(ledger)
            try:
                getattr(ledger, kind)(account, amount)
            except LedgerError:
                assert ledger_state(ledger) == before
                continue
            record = ledger.operation_log[-1]
            assert len(ledger.operation_log) == before[2] + 1
            assert record.market_after == ledger.market
            assert record.timestamp == clock.now()
            assert ledger.verify_share_accounting()['valid']
