"""
market.py - Share-based lending market ledger

Two layers, mirroring the rest of the package:

1. PURE TRANSITIONS (calculate_*):
   - Take a frozen Market and Position plus an amount
   - Return a LedgerUpdate with the new snapshots, or raise
   - Never mutate, never print

2. STATEFUL LEDGER (MarketLedger):
   - Owns one market, its positions and the audit trail
   - Accrues interest, runs a transition, then commits everything at once
   - The only place in the package that mutates state

Share rounding (every direction favours the pool):
    supply    shares = assets * TSS / TSA      (down)
    withdraw  shares = assets * TSS / TSA      (up)
    borrow    shares = assets * TBS / TBA      (up)
    repay     shares = assets * TBS / TBA      (down)
An empty pool mints shares 1:1 with assets.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from .core import (
    WAD, MAX_FEE, EMPTY_POSITION,
    Clock, Market, MarketParams, OperationRecord, Pool, Position, Rounding,
    LedgerError, InvalidAmount, MarketNotFound, InsufficientLiquidity,
    InsufficientShares, InsufficientCollateral,
    require_int, require_positive_amount,
)
from .fixed_point import to_assets, to_shares
from .interest import (
    AccrualResult, InterestAccrualModel, NO_ACCRUAL,
    accrue_market, rate_to_apy, supply_rate, utilization,
)
from .oracle import CanonicalPrice
from .position import is_healthy

if TYPE_CHECKING:
    from .liquidation import LiquidationEngine, LiquidationOutcome


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LedgerUpdate:
    """
    Result of a pure market transition.

    Attributes:
        market: Market after the operation.
        position: The acting account's position after the operation.
        assets: Assets moved (collateral units for collateral operations).
        shares: Shares minted or burned (0 for collateral operations).
    """
    market: Market
    position: Position
    assets: int
    shares: int


@dataclass(frozen=True, slots=True)
class MarketSummary:
    """Read-only market overview, accrued to the time it was taken."""
    market_id: str
    timestamp: int
    total_supply_assets: int
    total_supply_shares: int
    total_borrow_assets: int
    total_borrow_shares: int
    available_liquidity: int
    utilization: int
    borrow_rate: int
    supply_rate: int
    borrow_apy: Decimal
    supply_apy: Decimal
    supply_exchange_rate: Decimal
    borrow_exchange_rate: Decimal
    fee: int

    def __repr__(self) -> str:
        return (
            f"MarketSummary(supply={self.total_supply_assets}, borrow={self.total_borrow_assets}, "
            f"utilization={Decimal(self.utilization) / Decimal(WAD):.4f}, "
            f"borrow_apy={self.borrow_apy:.4%}, supply_apy={self.supply_apy:.4%})"
        )


# ============================================================================
# PURE TRANSITIONS
# ============================================================================

def _check_liquidity(market: Market, assets: int) -> None:
    if assets > market.available_liquidity:
        raise InsufficientLiquidity(
            f"Requested {assets} but only {market.available_liquidity} available"
        )


def calculate_supply(market: Market, position: Position, assets: int) -> LedgerUpdate:
    """
    Deposit loan assets into the supply pool.

    Raises:
        InvalidAmount: if assets <= 0 or would mint zero shares
    """
    require_positive_amount("assets", assets)
    shares = to_shares(assets, market.total_supply_assets, market.total_supply_shares, Rounding.DOWN)
    if shares == 0:
        raise InvalidAmount(f"Supplying {assets} assets would mint zero shares")
    return LedgerUpdate(
        market=replace(
            market,
            total_supply_assets=market.total_supply_assets + assets,
            total_supply_shares=market.total_supply_shares + shares,
        ),
        position=replace(position, supply_shares=position.supply_shares + shares),
        assets=assets,
        shares=shares,
    )


def calculate_withdraw(market: Market, position: Position, assets: int) -> LedgerUpdate:
    """
    Withdraw loan assets from the supply pool.

    Raises:
        InvalidAmount: if assets <= 0
        InsufficientLiquidity: if assets exceed supply minus borrow
        InsufficientShares: if the position holds fewer shares than the withdrawal burns
    """
    require_positive_amount("assets", assets)
    _check_liquidity(market, assets)
    shares = to_shares(assets, market.total_supply_assets, market.total_supply_shares, Rounding.UP)
    return _burn_supply(market, position, assets, shares)


def calculate_withdraw_shares(market: Market, position: Position, shares: int) -> LedgerUpdate:
    """
    Burn an exact number of supply shares for the assets they are worth.

    Raises:
        InvalidAmount: if shares <= 0 or are worth zero assets
        InsufficientLiquidity: if their value exceeds supply minus borrow
        InsufficientShares: if the position holds fewer shares
    """
    require_positive_amount("shares", shares)
    if shares > position.supply_shares:
        raise InsufficientShares(f"Holds {position.supply_shares} supply shares, needs {shares}")
    assets = to_assets(shares, market.total_supply_assets, market.total_supply_shares, Rounding.DOWN)
    if assets == 0:
        raise InvalidAmount(f"{shares} supply shares are worth zero assets")
    _check_liquidity(market, assets)
    return _burn_supply(market, position, assets, shares)


def _burn_supply(market: Market, position: Position, assets: int, shares: int) -> LedgerUpdate:
    if position.supply_shares < shares:
        raise InsufficientShares(f"Holds {position.supply_shares} supply shares, needs {shares}")
    return LedgerUpdate(
        market=replace(
            market,
            total_supply_assets=market.total_supply_assets - assets,
            total_supply_shares=market.total_supply_shares - shares,
        ),
        position=replace(position, supply_shares=position.supply_shares - shares),
        assets=assets,
        shares=shares,
    )


def calculate_borrow(market: Market, position: Position, assets: int,
                     price: Optional[CanonicalPrice] = None) -> LedgerUpdate:
    """
    Borrow loan assets against the position.

    When a price is given the resulting position must be healthy.

    Raises:
        InvalidAmount: if assets <= 0
        InsufficientLiquidity: if assets exceed supply minus borrow
        InsufficientCollateral: if a price is given and the borrow leaves the position unhealthy
    """
    require_positive_amount("assets", assets)
    _check_liquidity(market, assets)
    shares = to_shares(assets, market.total_borrow_assets, market.total_borrow_shares, Rounding.UP)
    update = LedgerUpdate(
        market=replace(
            market,
            total_borrow_assets=market.total_borrow_assets + assets,
            total_borrow_shares=market.total_borrow_shares + shares,
        ),
        position=replace(position, borrow_shares=position.borrow_shares + shares),
        assets=assets,
        shares=shares,
    )
    if price is not None and not is_healthy(update.position, update.market, price):
        raise InsufficientCollateral(
            f"Borrowing {assets} would leave the position above its LLTV"
        )
    return update


def calculate_repay(market: Market, position: Position, assets: int) -> LedgerUpdate:
    """
    Repay loan assets against the position's debt.

    Raises:
        InvalidAmount: if assets <= 0 or would burn zero shares
        InsufficientShares: if the position holds fewer borrow shares than the repay burns
    """
    require_positive_amount("assets", assets)
    shares = to_shares(assets, market.total_borrow_assets, market.total_borrow_shares, Rounding.DOWN)
    if shares == 0:
        raise InvalidAmount(f"Repaying {assets} assets would burn zero shares")
    return _burn_borrow(market, position, assets, shares)


def calculate_repay_shares(market: Market, position: Position, shares: int) -> LedgerUpdate:
    """
    Burn an exact number of borrow shares, paying what they are worth (rounded up).

    Raises:
        InvalidAmount: if shares <= 0
        InsufficientShares: if the position holds fewer borrow shares
    """
    require_positive_amount("shares", shares)
    assets = to_assets(shares, market.total_borrow_assets, market.total_borrow_shares, Rounding.UP)
    return _burn_borrow(market, position, assets, shares)


def _burn_borrow(market: Market, position: Position, assets: int, shares: int) -> LedgerUpdate:
    if position.borrow_shares < shares:
        raise InsufficientShares(f"Holds {position.borrow_shares} borrow shares, needs {shares}")
    return LedgerUpdate(
        market=replace(
            market,
            total_borrow_assets=max(market.total_borrow_assets - assets, 0),
            total_borrow_shares=market.total_borrow_shares - shares,
        ),
        position=replace(position, borrow_shares=position.borrow_shares - shares),
        assets=assets,
        shares=shares,
    )


def calculate_supply_collateral(market: Market, position: Position, amount: int) -> LedgerUpdate:
    """Pledge collateral. Collateral is held 1:1 and never enters a pool."""
    require_positive_amount("amount", amount)
    return LedgerUpdate(
        market=market,
        position=replace(position, collateral=position.collateral + amount),
        assets=amount,
        shares=0,
    )


def calculate_withdraw_collateral(market: Market, position: Position, amount: int,
                                  price: Optional[CanonicalPrice] = None) -> LedgerUpdate:
    """
    Release pledged collateral.

    A position with debt needs a price, and must stay healthy afterwards.

    Raises:
        InvalidAmount: if amount <= 0
        InsufficientCollateral: if amount exceeds the pledged collateral or
            the withdrawal leaves an indebted position unhealthy
        ValueError: if the position has debt and no price is given
    """
    require_positive_amount("amount", amount)
    if amount > position.collateral:
        raise InsufficientCollateral(
            f"Holds {position.collateral} collateral, requested {amount}"
        )
    new_position = replace(position, collateral=position.collateral - amount)
    if new_position.borrow_shares > 0:
        if price is None:
            raise ValueError("A price is required to withdraw collateral from an indebted position")
        if not is_healthy(new_position, market, price):
            raise InsufficientCollateral(
                f"Withdrawing {amount} collateral would leave the position above its LLTV"
            )
    return LedgerUpdate(market=market, position=new_position, assets=amount, shares=0)


# ============================================================================
# STATEFUL LEDGER
# ============================================================================

class MarketLedger:
    """
    Stateful ledger for a single lending market.

    Every mutating operation runs as one unit under the ledger lock:
    accrue interest to clock.now(), validate and compute through a pure
    transition, then commit market, positions, fee shares and the
    operation record together. A rejected operation changes nothing and
    leaves no record.

    Thread Safety:
        Mutations and snapshot() share one RLock, so readers never see a
        market and a position from different moments.

    Example:
        ledger = MarketLedger(params, InterestAccrualModel(FixedRateModel(rate)),
                              ManualClock(), fee_recipient="treasury")
        ledger.supply("alice", 1_000)
        ledger.supply_collateral("bob", 1_000)
        ledger.borrow("bob", 500, price=price)
    """

    def __init__(
        self,
        params: MarketParams,
        accrual_model: InterestAccrualModel,
        clock: Clock,
        fee_recipient: str,
        fee: int = 0,
        verbose: bool = True,
        test_mode: bool = False,
    ):
        """
        Create a ledger for an uninitialized market.

        Args:
            params: Immutable market parameters
            accrual_model: Interest accrual model applied before every mutation
            clock: Time source for accrual
            fee_recipient: Account credited with fee shares
            fee: Protocol fee, WAD, at most MAX_FEE (default: 0)
            verbose: Print applied and rejected operations (default: True)
            test_mode: Enable set_market_state() and set_position() (default: False)
        """
        require_int("fee", fee)
        if fee < 0 or fee > MAX_FEE:
            raise ValueError(f"fee must be in [0, MAX_FEE], got {fee}")
        if not fee_recipient or not fee_recipient.strip():
            raise ValueError("fee_recipient cannot be empty")
        self.params = params
        self.accrual_model = accrual_model
        self.clock = clock
        self.fee_recipient = fee_recipient
        self.verbose = verbose
        self._test_mode = test_mode
        self._fee = fee
        self._market: Optional[Market] = None
        self._positions: Dict[str, Position] = {}
        self.operation_log: List[OperationRecord] = []
        self._next_sequence: int = 0
        self._lock = threading.RLock()

    # ========================================================================
    # READ SIDE
    # ========================================================================

    @property
    def market_id(self) -> str:
        return self.params.id

    @property
    def fee(self) -> int:
        return self._fee

    @property
    def is_initialized(self) -> bool:
        return self._market is not None

    @property
    def market(self) -> Market:
        """
        Committed market state (not accrued to now).

        Raises:
            MarketNotFound: before the first supply
        """
        with self._lock:
            return self._require_market()

    def market_for(self, market_id: str) -> Market:
        """Look a market up by key; this ledger only knows its own."""
        if market_id != self.params.id:
            raise MarketNotFound(f"Unknown market {market_id}")
        return self.market

    def position(self, account: str) -> Position:
        """Committed position of an account (empty if it never interacted)."""
        with self._lock:
            return self._positions.get(account, EMPTY_POSITION)

    def accounts(self) -> List[str]:
        """Accounts that hold or once held a position, sorted."""
        with self._lock:
            return sorted(self._positions)

    def snapshot(self, account: str) -> Tuple[Market, Position]:
        """Consistent (market, position) pair taken under the ledger lock."""
        with self._lock:
            return self._require_market(), self._positions.get(account, EMPTY_POSITION)

    def expected_market(self) -> Market:
        """Market accrued to clock.now() without committing anything."""
        with self._lock:
            market, _ = accrue_market(self.accrual_model, self._require_market(), self.clock.now())
            return market

    def summary(self) -> MarketSummary:
        """Utilization, liquidity, exchange rates and APYs of the accrued market."""
        market = self.expected_market()
        util = utilization(market.total_borrow_assets, market.total_supply_assets)
        borrow_rate = self.accrual_model.rate_model.borrow_rate_per_second(util)
        lend_rate = supply_rate(borrow_rate, util, market.fee)
        return MarketSummary(
            market_id=market.id,
            timestamp=market.last_update,
            total_supply_assets=market.total_supply_assets,
            total_supply_shares=market.total_supply_shares,
            total_borrow_assets=market.total_borrow_assets,
            total_borrow_shares=market.total_borrow_shares,
            available_liquidity=market.available_liquidity,
            utilization=util,
            borrow_rate=borrow_rate,
            supply_rate=lend_rate,
            borrow_apy=rate_to_apy(borrow_rate),
            supply_apy=rate_to_apy(lend_rate),
            supply_exchange_rate=_exchange_rate(market.total_supply_assets, market.total_supply_shares),
            borrow_exchange_rate=_exchange_rate(market.total_borrow_assets, market.total_borrow_shares),
            fee=market.fee,
        )

    def shares_to_assets(self, shares: int, pool: Pool, rounding: Rounding) -> int:
        """Convert shares of a pool to assets at the committed totals."""
        market = self.market
        total_assets, total_shares = _pool_totals(market, pool)
        return to_assets(shares, total_assets, total_shares, rounding)

    def assets_to_shares(self, assets: int, pool: Pool, rounding: Rounding) -> int:
        """Convert assets to shares of a pool at the committed totals."""
        market = self.market
        total_assets, total_shares = _pool_totals(market, pool)
        return to_shares(assets, total_assets, total_shares, rounding)

    def verify_share_accounting(self) -> Dict[str, Any]:
        """
        Check that position shares sum to the pool totals.

        Returns:
            Dict with keys:
            - 'valid': bool - True if both pools reconcile
            - 'supply_shares': int - Sum of supply shares over positions
            - 'borrow_shares': int - Sum of borrow shares over positions
            - 'discrepancies': List[Dict] - pool, expected, actual
        """
        with self._lock:
            supply_sum = sum(p.supply_shares for p in self._positions.values())
            borrow_sum = sum(p.borrow_shares for p in self._positions.values())
            discrepancies = []
            if self._market is not None:
                if supply_sum != self._market.total_supply_shares:
                    discrepancies.append({
                        'pool': Pool.SUPPLY,
                        'expected': self._market.total_supply_shares,
                        'actual': supply_sum,
                    })
                if borrow_sum != self._market.total_borrow_shares:
                    discrepancies.append({
                        'pool': Pool.BORROW,
                        'expected': self._market.total_borrow_shares,
                        'actual': borrow_sum,
                    })
            return {
                'valid': len(discrepancies) == 0,
                'supply_shares': supply_sum,
                'borrow_shares': borrow_sum,
                'discrepancies': discrepancies,
            }

    # ========================================================================
    # LENDING OPERATIONS
    # ========================================================================

    def supply(self, account: str, assets: int) -> int:
        """
        Deposit loan assets; the first supply initializes the market.

        Returns:
            Supply shares minted
        """
        return self._apply(
            "supply", account,
            lambda market, position: calculate_supply(market, position, assets),
            initialize=True,
        ).shares

    def withdraw(self, account: str, assets: int) -> int:
        """
        Withdraw loan assets.

        Returns:
            Supply shares burned
        """
        return self._apply(
            "withdraw", account,
            lambda market, position: calculate_withdraw(market, position, assets),
        ).shares

    def withdraw_all(self, account: str) -> int:
        """
        Burn every supply share of the account.

        Returns:
            Loan assets withdrawn
        """
        return self._apply(
            "withdraw_all", account,
            lambda market, position: calculate_withdraw_shares(market, position, position.supply_shares),
        ).assets

    def borrow(self, account: str, assets: int, price: Optional[CanonicalPrice] = None) -> int:
        """
        Borrow loan assets. With a price, the position must remain healthy.

        Returns:
            Borrow shares minted
        """
        return self._apply(
            "borrow", account,
            lambda market, position: calculate_borrow(market, position, assets, price),
        ).shares

    def repay(self, account: str, assets: int) -> int:
        """
        Repay loan assets.

        Returns:
            Borrow shares burned
        """
        return self._apply(
            "repay", account,
            lambda market, position: calculate_repay(market, position, assets),
        ).shares

    def repay_all(self, account: str) -> int:
        """
        Burn every borrow share of the account.

        Returns:
            Loan assets repaid (rounded up)
        """
        return self._apply(
            "repay_all", account,
            lambda market, position: calculate_repay_shares(market, position, position.borrow_shares),
        ).assets

    def supply_collateral(self, account: str, amount: int) -> int:
        """Pledge collateral. Returns the position's new collateral."""
        return self._apply(
            "supply_collateral", account,
            lambda market, position: calculate_supply_collateral(market, position, amount),
        ).position.collateral

    def withdraw_collateral(self, account: str, amount: int,
                            price: Optional[CanonicalPrice] = None) -> int:
        """Release collateral. Returns the position's new collateral."""
        return self._apply(
            "withdraw_collateral", account,
            lambda market, position: calculate_withdraw_collateral(market, position, amount, price),
        ).position.collateral

    def liquidate(
        self,
        engine: LiquidationEngine,
        borrower: str,
        requested_repay: int,
        requested_seize: int,
        price: CanonicalPrice,
    ) -> LiquidationOutcome:
        """
        Liquidate a borrower through the given engine.

        The engine's computation is pure; the outcome is committed here
        together with the accrual, so a rejected liquidation changes nothing.

        Returns:
            LiquidationOutcome with the realized amounts
        """
        with self._lock:
            try:
                now = self.clock.now()
                before, fee_position, accrual = self._accrued(now)
                position = self._position_for(borrower, fee_position)
                outcome = engine.liquidate(position, before, requested_repay, requested_seize, price)
            except (LedgerError, ValueError, TypeError) as exc:
                self._report_rejection("liquidate", borrower, exc)
                raise
            self._commit(
                "liquidate", borrower, now, before, fee_position, accrual,
                outcome.market, outcome.position,
                assets=outcome.repaid_assets,
                shares=outcome.repaid_shares,
                collateral=outcome.seized_collateral,
            )
            if self.verbose and outcome.bad_debt_assets:
                print(f"⚠️  BAD DEBT {borrower}: {outcome.bad_debt_assets} assets "
                      f"({outcome.bad_debt_shares} shares) written off")
            return outcome

    # ========================================================================
    # INTEREST AND CONFIGURATION
    # ========================================================================

    def accrue_interest(self) -> AccrualResult:
        """
        Accrue interest to clock.now() and commit it.

        Calling twice at the same time is a no-op the second time.
        """
        with self._lock:
            now = self.clock.now()
            market, fee_position, accrual = self._accrued(now)
            if accrual.elapsed == 0:
                return accrual
            self._commit(
                "accrue", self.fee_recipient, now, self._market, fee_position, accrual,
                market, fee_position,
                assets=accrual.interest,
                shares=accrual.fee_shares,
            )
            return accrual

    def set_fee(self, new_fee: int) -> None:
        """
        Change the protocol fee. Interest up to now accrues at the old fee.

        Raises:
            ValueError: if new_fee is outside [0, MAX_FEE]
        """
        require_int("new_fee", new_fee)
        if new_fee < 0 or new_fee > MAX_FEE:
            raise ValueError(f"fee must be in [0, MAX_FEE], got {new_fee}")
        with self._lock:
            if self._market is not None:
                now = self.clock.now()
                before, fee_position, accrual = self._accrued(now)
                self._commit(
                    "set_fee", self.fee_recipient, now, before, fee_position, accrual,
                    replace(before, fee=new_fee), fee_position,
                    assets=0, shares=0,
                )
            self._fee = new_fee

    # ========================================================================
    # TEST MODE
    # ========================================================================

    def set_market_state(self, market: Market) -> None:
        """
        Overwrite the market totals directly.

        WARNING: This bypasses the share accounting and is only available in
        test mode.

        Raises:
            LedgerError: If called when test_mode is False
        """
        self._require_test_mode("set_market_state")
        if market.params != self.params:
            raise MarketNotFound(f"Market {market.id} does not belong to this ledger")
        with self._lock:
            self._market = market
            self._fee = market.fee

    def set_position(self, account: str, position: Position) -> None:
        """
        Overwrite an account's position directly. Test mode only.

        Raises:
            LedgerError: If called when test_mode is False
        """
        self._require_test_mode("set_position")
        with self._lock:
            self._positions[account] = position

    def _require_test_mode(self, method: str) -> None:
        if not self._test_mode:
            raise LedgerError(
                f"{method}() is disabled in production mode. "
                "Use the ledger operations to modify state. "
                "Set test_mode=True when creating MarketLedger for testing."
            )

    # ========================================================================
    # CLONING
    # ========================================================================

    def clone(self) -> MarketLedger:
        """
        Create an independent copy for what-if analysis.

        Snapshots are immutable, so copying the containers is enough. The
        accrual model and clock are shared with the original.
        """
        with self._lock:
            cloned = MarketLedger.__new__(MarketLedger)
            cloned.params = self.params
            cloned.accrual_model = self.accrual_model
            cloned.clock = self.clock
            cloned.fee_recipient = self.fee_recipient
            cloned.verbose = self.verbose
            cloned._test_mode = self._test_mode
            cloned._fee = self._fee
            cloned._market = self._market
            cloned._positions = dict(self._positions)
            cloned.operation_log = list(self.operation_log)
            cloned._next_sequence = self._next_sequence
            cloned._lock = threading.RLock()
            return cloned

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_market(self) -> Market:
        if self._market is None:
            raise MarketNotFound(f"Market {self.params.id[:10]}... has not been initialized")
        return self._market

    def _accrued(self, now: int) -> Tuple[Market, Position, AccrualResult]:
        """Accrued market, fee recipient position and accrual details. Commits nothing."""
        market, accrual = accrue_market(self.accrual_model, self._require_market(), now)
        fee_position = self._positions.get(self.fee_recipient, EMPTY_POSITION)
        if accrual.fee_shares:
            fee_position = replace(fee_position, supply_shares=fee_position.supply_shares + accrual.fee_shares)
        return market, fee_position, accrual

    def _position_for(self, account: str, fee_position: Position) -> Position:
        if account == self.fee_recipient:
            return fee_position
        return self._positions.get(account, EMPTY_POSITION)

    def _apply(self, kind: str, account: str, transition, initialize: bool = False) -> LedgerUpdate:
        with self._lock:
            try:
                if not account or not account.strip():
                    raise ValueError("account cannot be empty")
                now = self.clock.now()
                if self._market is None and initialize:
                    before = None
                    market = Market(self.params, last_update=now, fee=self._fee)
                    fee_position = self._positions.get(self.fee_recipient, EMPTY_POSITION)
                    accrual = NO_ACCRUAL
                else:
                    market, fee_position, accrual = self._accrued(now)
                    before = market
                update = transition(market, self._position_for(account, fee_position))
            except (LedgerError, ValueError, TypeError) as exc:
                self._report_rejection(kind, account, exc)
                raise
            self._commit(
                kind, account, now, before, fee_position, accrual,
                update.market, update.position,
                assets=update.assets, shares=update.shares,
            )
            return update

    def _commit(
        self,
        kind: str,
        account: str,
        now: int,
        before: Optional[Market],
        fee_position: Position,
        accrual: AccrualResult,
        market: Market,
        position: Position,
        assets: int,
        shares: int,
        collateral: int = 0,
    ) -> OperationRecord:
        if accrual.fee_shares:
            self._positions[self.fee_recipient] = fee_position
        self._positions[account] = position
        self._market = market

        record = OperationRecord(
            sequence=self._next_sequence,
            kind=kind,
            account=account,
            assets=assets,
            shares=shares,
            timestamp=now,
            market_before=before,
            market_after=market,
            collateral=collateral,
        )
        self._next_sequence += 1
        self.operation_log.append(record)

        if self.verbose:
            print(f"✓ {kind.upper()} {account}: assets={assets} shares={shares}"
                  + (f" collateral={collateral}" if collateral else "")
                  + f" | {market!r}")
        return record

    def _report_rejection(self, kind: str, account: str, exc: Exception) -> None:
        if self.verbose:
            print(f"✗ REJECTED {kind.upper()} {account}: {type(exc).__name__}: {exc}")

    def __repr__(self) -> str:
        state = repr(self._market) if self._market is not None else "uninitialized"
        return f"MarketLedger({self.params!r}, {state}, {len(self._positions)} positions)"


# ============================================================================
# HELPERS
# ============================================================================

def _pool_totals(market: Market, pool: Pool) -> Tuple[int, int]:
    if pool is Pool.SUPPLY:
        return market.total_supply_assets, market.total_supply_shares
    if pool is Pool.BORROW:
        return market.total_borrow_assets, market.total_borrow_shares
    raise ValueError(f"Unknown pool: {pool!r}")


def _exchange_rate(total_assets: int, total_shares: int) -> Decimal:
    """Assets per share; 1 for an empty pool, matching the first-deposit seed."""
    if total_shares == 0:
        return Decimal(1)
    return Decimal(total_assets) / Decimal(total_shares)
