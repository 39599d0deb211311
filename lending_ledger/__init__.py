"""
lending_ledger - Share-based Lending Market Ledger & Liquidation Engine

A deterministic accounting library for one lending market: supply and borrow
pools, per-account positions, interest accrual, oracle price scaling and
bounded liquidation. Integer fixed-point arithmetic throughout.

Usage:
    from lending_ledger import (
        MarketParams, MarketLedger, InterestAccrualModel, FixedRateModel,
        LiquidationEngine, ManualClock, WAD, normalize,
    )

    clock = ManualClock()
    params = MarketParams("USDC", "WETH", "oracle", "irm", lltv=8 * WAD // 10)
    ledger = MarketLedger(params, InterestAccrualModel(FixedRateModel(10**9)),
                          clock, fee_recipient="treasury")
    price = normalize(10**36, 18, 18)

    ledger.supply("alice", 1_000)
    ledger.supply_collateral("bob", 1_000)
    ledger.borrow("bob", 500, price=price)

    clock.advance(3600)
    ledger.accrue_interest()
    market, position = ledger.snapshot("bob")
    quote = LiquidationEngine().evaluate(position, market, price)
"""

# Core types
from .core import (
    WAD,
    ORACLE_PRICE_SCALE,
    ORACLE_PRICE_SCALE_DECIMALS,
    MAX_FEE,
    SECONDS_PER_YEAR,
    DEFAULT_CLOSE_FACTOR,
    DEFAULT_INCENTIVE_FACTOR,
    HEALTH_FACTOR_INFINITE,
    Rounding,
    Pool,
    LedgerError,
    InvalidAmount,
    MarketNotFound,
    InsufficientLiquidity,
    InsufficientShares,
    InsufficientCollateral,
    DivisionByZero,
    InvalidPrice,
    StalePrice,
    NotLiquidatable,
    ExceedsMaxLiquidation,
    Clock,
    SystemClock,
    ManualClock,
    MarketParams,
    Market,
    Position,
    EMPTY_POSITION,
    OperationRecord,
)

# Fixed-point math
from .fixed_point import (
    mul_div_down, mul_div_up, mul_div,
    w_mul_down, w_div_down, w_div_up, w_taylor_compounded,
    to_shares, to_assets,
)

# Oracle
from .oracle import (
    PriceSource, OracleReading, CanonicalPrice,
    price_scale, normalize, normalize_reading, read_price,
    to_loan_assets, to_collateral_amount,
    StaticPriceSource, TimeSeriesPriceSource,
)

# Interest
from .interest import (
    RateModel, FixedRateModel, KinkedRateModel, per_second,
    utilization, supply_rate, rate_to_apy,
    AccrualResult, InterestAccrualModel, accrue_market,
)

# Position accounting
from .position import (
    current_debt, current_supply, has_open_position,
    collateral_value, max_borrow_value, health_factor,
    is_healthy, borrow_capacity,
)

# Market ledger
from .market import (
    LedgerUpdate, MarketSummary, MarketLedger,
    calculate_supply, calculate_withdraw, calculate_withdraw_shares,
    calculate_borrow, calculate_repay, calculate_repay_shares,
    calculate_supply_collateral, calculate_withdraw_collateral,
)

# Liquidation
from .liquidation import (
    LiquidationPolicy, LiquidationQuote, LiquidationOutcome, LiquidationEngine,
)


__all__ = [
    # Constants
    'WAD', 'ORACLE_PRICE_SCALE', 'ORACLE_PRICE_SCALE_DECIMALS', 'MAX_FEE',
    'SECONDS_PER_YEAR', 'DEFAULT_CLOSE_FACTOR', 'DEFAULT_INCENTIVE_FACTOR',
    'HEALTH_FACTOR_INFINITE', 'Rounding', 'Pool',
    # Exceptions
    'LedgerError', 'InvalidAmount', 'MarketNotFound', 'InsufficientLiquidity',
    'InsufficientShares', 'InsufficientCollateral', 'DivisionByZero',
    'InvalidPrice', 'StalePrice', 'NotLiquidatable', 'ExceedsMaxLiquidation',
    # Core
    'Clock', 'SystemClock', 'ManualClock',
    'MarketParams', 'Market', 'Position', 'EMPTY_POSITION', 'OperationRecord',
    # Fixed-point
    'mul_div_down', 'mul_div_up', 'mul_div',
    'w_mul_down', 'w_div_down', 'w_div_up', 'w_taylor_compounded',
    'to_shares', 'to_assets',
    # Oracle
    'PriceSource', 'OracleReading', 'CanonicalPrice',
    'price_scale', 'normalize', 'normalize_reading', 'read_price',
    'to_loan_assets', 'to_collateral_amount',
    'StaticPriceSource', 'TimeSeriesPriceSource',
    # Interest
    'RateModel', 'FixedRateModel', 'KinkedRateModel', 'per_second',
    'utilization', 'supply_rate', 'rate_to_apy',
    'AccrualResult', 'InterestAccrualModel', 'accrue_market',
    # Positions
    'current_debt', 'current_supply', 'has_open_position',
    'collateral_value', 'max_borrow_value', 'health_factor',
    'is_healthy', 'borrow_capacity',
    # Market ledger
    'LedgerUpdate', 'MarketSummary', 'MarketLedger',
    'calculate_supply', 'calculate_withdraw', 'calculate_withdraw_shares',
    'calculate_borrow', 'calculate_repay', 'calculate_repay_shares',
    'calculate_supply_collateral', 'calculate_withdraw_collateral',
    # Liquidation
    'LiquidationPolicy', 'LiquidationQuote', 'LiquidationOutcome', 'LiquidationEngine',
]

__version__ = '1.0.0'
