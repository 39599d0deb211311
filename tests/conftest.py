"""
conftest.py - Shared pytest fixtures for lending ledger tests

Provides common fixtures used across unit, conformance and functional tests:
- Market parameters at the LLTVs used throughout (0.7, 0.8)
- Clocks and 1:1 prices
- Ledgers (empty, seeded with supply, with an open borrow)
- Comparison utilities
"""

import pytest
from typing import Dict, Tuple

from lending_ledger import (
    WAD,
    Market, MarketParams, Position, ManualClock,
    MarketLedger, InterestAccrualModel, FixedRateModel,
    LiquidationEngine, LiquidationPolicy,
    CanonicalPrice, normalize,
)


START_TIME = 1_700_000_000

LLTV_70 = 7 * WAD // 10
LLTV_80 = 8 * WAD // 10

# 1 collateral unit == 1 loan unit for tokens with equal decimals.
PAR_RAW_PRICE = 10 ** 36

# 10**14 per second over 1000 seconds grows debt by 10%.
TEN_PERCENT_RATE = 10 ** 14


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_params(lltv: int = LLTV_80, loan_decimals: int = 18, collateral_decimals: int = 18) -> MarketParams:
    """Market parameters for a USDC/WETH-style pair."""
    return MarketParams(
        loan_token="USDC",
        collateral_token="WETH",
        oracle="oracle-weth-usdc",
        irm="irm-fixed",
        lltv=lltv,
        loan_decimals=loan_decimals,
        collateral_decimals=collateral_decimals,
    )


def make_ledger(
    params: MarketParams = None,
    rate: int = 0,
    clock: ManualClock = None,
    fee: int = 0,
    compounded: bool = False,
) -> MarketLedger:
    """Quiet, test-mode ledger with a fixed rate model."""
    return MarketLedger(
        params or make_params(),
        InterestAccrualModel(FixedRateModel(rate), compounded=compounded),
        clock or ManualClock(START_TIME),
        fee_recipient="treasury",
        fee=fee,
        verbose=False,
        test_mode=True,
    )


def par_price() -> CanonicalPrice:
    return normalize(PAR_RAW_PRICE, 18, 18)


def price_of(numerator: int, denominator: int = 1) -> CanonicalPrice:
    """Price of numerator/denominator loan units per collateral unit, equal decimals."""
    return normalize(PAR_RAW_PRICE * numerator // denominator, 18, 18)


def ledger_state(ledger: MarketLedger) -> Tuple[Market, Dict[str, Position], int]:
    """Everything a rejected operation must leave untouched."""
    market = ledger.market if ledger.is_initialized else None
    positions = {account: ledger.position(account) for account in ledger.accounts()}
    return market, positions, len(ledger.operation_log)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Manual clock at a fixed start time."""
    return ManualClock(START_TIME)


@pytest.fixture
def params():
    """Market at LLTV 0.8."""
    return make_params(LLTV_80)


@pytest.fixture
def price():
    """1:1 collateral price."""
    return par_price()


@pytest.fixture
def engine():
    """Liquidation engine with the reference policy (50% close, 5% bonus)."""
    return LiquidationEngine(LiquidationPolicy())


@pytest.fixture
def empty_ledger(params, clock):
    """Uninitialized ledger, zero interest."""
    return make_ledger(params, clock=clock)


@pytest.fixture
def supplied_ledger(empty_ledger):
    """Ledger with 10,000 supplied by alice."""
    empty_ledger.supply("alice", 10_000)
    return empty_ledger


@pytest.fixture
def borrowed_ledger(supplied_ledger, price):
    """alice supplies 10,000; bob pledges 1,000 and borrows 800 (exactly at LLTV 0.8)."""
    supplied_ledger.supply_collateral("bob", 1_000)
    supplied_ledger.borrow("bob", 800, price=price)
    return supplied_ledger
