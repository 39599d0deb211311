"""
Example: A USDC/WETH lending market from first deposit to bad debt.

This example walks one market through its life: suppliers fund the pool,
a borrower pledges WETH and borrows USDC, interest accrues for a month,
the WETH price falls, a liquidator repays part of the debt, and the
collateral runs out before the debt does, leaving the suppliers to absorb
the rest.
"""

from lending_ledger import (
    WAD, ManualClock, MarketLedger, MarketParams,
    InterestAccrualModel, KinkedRateModel, LiquidationEngine, LiquidationPolicy,
    TimeSeriesPriceSource, read_price, current_debt, current_supply, per_second,
    NotLiquidatable,
)

USDC = 10 ** 6
WETH = 10 ** 18
DAY = 86_400


def weth_price(usdc_per_weth):
    """Raw oracle price for WETH quoted in USDC (6 vs 18 decimals)."""
    return usdc_per_weth * 10 ** 24


def show_position(ledger, account, engine, price):
    market, position = ledger.snapshot(account)
    quote = engine.evaluate(position, market, price)
    print(f"  {account}: collateral={position.collateral / WETH:.4f} WETH, "
          f"debt={quote.debt / USDC:,.2f} USDC, health={quote.health_factor:.4f}")
    return quote


def main():
    print("=" * 80)
    print("LENDING MARKET - Liquidation Walkthrough")
    print("=" * 80)
    print()

    start = 1_704_067_200
    clock = ManualClock(start)
    oracle = TimeSeriesPriceSource(clock, [
        (start, weth_price(3_000)),
        (start + 30 * DAY, weth_price(2_900)),
        (start + 31 * DAY, weth_price(1_200)),
    ])

    params = MarketParams(
        loan_token="USDC",
        collateral_token="WETH",
        oracle="chainlink-weth-usdc",
        irm="kinked-4pct-80",
        lltv=86 * WAD // 100,
        loan_decimals=6,
        collateral_decimals=18,
    )
    rates = KinkedRateModel(
        base_rate=0,
        slope=per_second(WAD // 25),
        jump_slope=per_second(WAD),
        kink=80 * WAD // 100,
    )
    ledger = MarketLedger(params, InterestAccrualModel(rates, compounded=True), clock,
                          fee_recipient="treasury", fee=WAD // 10, verbose=True)
    engine = LiquidationEngine(LiquidationPolicy(close_factor=WAD // 2))

    def price():
        return read_price(oracle, clock, 6, 18, max_age=DAY)

    print("Step 1: Suppliers fund the pool")
    print("-" * 80)
    ledger.supply("alice", 60_000 * USDC)
    ledger.supply("carol", 40_000 * USDC)
    print()

    print("Step 2: Bob pledges 10 WETH and borrows 24,000 USDC")
    print("-" * 80)
    ledger.supply_collateral("bob", 10 * WETH)
    ledger.borrow("bob", 24_000 * USDC, price=price())
    show_position(ledger, "bob", engine, price())
    print()

    print("Step 3: A month of interest")
    print("-" * 80)
    clock.advance(30 * DAY)
    result = ledger.accrue_interest()
    print(f"  interest={result.interest / USDC:,.2f} USDC, "
          f"fee={result.fee_amount / USDC:,.2f} USDC, fee shares={result.fee_shares}")
    print(f"  {ledger.summary()}")
    print()

    print("Step 4: WETH drops to 2,900; Bob is still healthy")
    print("-" * 80)
    quote = show_position(ledger, "bob", engine, price())
    try:
        ledger.liquidate(engine, "bob", USDC, 0, price())
    except NotLiquidatable:
        print(f"  liquidation refused, liquidatable={quote.liquidatable}")
    print()

    print("Step 5: WETH crashes to 1,200; a liquidator takes half the debt")
    print("-" * 80)
    clock.advance(DAY)
    quote = show_position(ledger, "bob", engine, price())
    outcome = ledger.liquidate(engine, "bob", quote.max_repay, quote.max_seize, price())
    print(f"  repaid={outcome.repaid_assets / USDC:,.2f} USDC, "
          f"seized={outcome.seized_collateral / WETH:.4f} WETH")
    if outcome.bad_debt_assets:
        print(f"  no collateral left, bad debt written off: "
              f"{outcome.bad_debt_assets / USDC:,.2f} USDC")
    show_position(ledger, "bob", engine, price())
    print()

    print("Final claims")
    print("-" * 80)
    market = ledger.market
    for account in ledger.accounts():
        position = ledger.position(account)
        print(f"  {account:10s} supply={current_supply(position, market) / USDC:>12,.2f} USDC  "
              f"debt={current_debt(position, market) / USDC:>12,.2f} USDC")
    print(f"  share accounting valid: {ledger.verify_share_accounting()['valid']}")


if __name__ == "__main__":
    main()
