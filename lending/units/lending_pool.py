"""
lending_pool.py - Lender Pool Unit

The pool is a single state-only unit (symbol "POOL") holding every lender's
principal and the pool-wide counters. The base asset lenders deposit sits in
the pool custody wallet; the unit only records who owns what.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES:
   - PoolTerms: protocol parameters fixed when the pool is created
   - PoolState: snapshot of the pool counters and lender principals
   - LenderAccount / WithdrawalQuote: read results

2. ADAPTERS (load_pool_terms, load_pool):
   - The only place that reads pool state out of a LedgerView

3. COMPUTE FUNCTIONS (compute_deposit, compute_withdraw):
   - Validate, raise a LendingError on failure, otherwise return a
     PendingTransaction with the token moves and the pool state change

Key Formulas:
    total_liquidity = deposited - withdrawn - interest_paid
                      - disbursed + skimmed + seized
    sum(lenders)    = deposited - withdrawn
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Mapping

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_LENDING_POOL, POOL_SYMBOL, POOL_WALLET,
    BASE_ASSET, STABLE_ASSET, TOKEN_DECIMALS,
    COLLATERAL_RATIO, INTEREST_RATE, LOAN_DURATION,
    InsufficientFunds, InvalidAmount, NoFundsToWithdraw, InsufficientPoolLiquidity,
    build_transaction, wallet_balance, _freeze_state,
)
from ..interest import calculate_interest_share


# Counters kept on the pool unit besides the lender map.
POOL_COUNTERS = (
    'total_liquidity',
    'total_interest_earned',
    'active_loan_count',
    'total_deposited',
    'total_withdrawn',
    'total_disbursed',
    'total_skimmed',
    'total_seized',
    'total_interest_paid',
)


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolTerms:
    """
    Protocol parameters, fixed at pool creation.

    collateral_ratio and interest_rate are whole percents.
    """
    collateral_ratio: int = COLLATERAL_RATIO
    interest_rate: int = INTEREST_RATE
    loan_duration: timedelta = LOAN_DURATION
    base_asset: str = BASE_ASSET
    stable_asset: str = STABLE_ASSET
    decimals: int = TOKEN_DECIMALS

    def __post_init__(self):
        if self.collateral_ratio <= 0:
            raise ValueError(f"collateral_ratio must be positive, got {self.collateral_ratio}")
        if not 0 <= self.interest_rate <= 100:
            raise ValueError(f"interest_rate must be between 0 and 100, got {self.interest_rate}")
        if self.loan_duration <= timedelta(0):
            raise ValueError(f"loan_duration must be positive, got {self.loan_duration}")
        if self.base_asset == self.stable_asset:
            raise ValueError("base_asset and stable_asset must differ")
        if self.decimals < 0:
            raise ValueError(f"decimals cannot be negative, got {self.decimals}")


@dataclass(frozen=True, slots=True)
class PoolState:
    """Snapshot of the pool. Amounts are base units."""
    total_liquidity: int
    total_interest_earned: int
    active_loan_count: int
    lenders: Mapping[str, int] = field(default_factory=dict)
    total_deposited: int = 0
    total_withdrawn: int = 0
    total_disbursed: int = 0
    total_skimmed: int = 0
    total_seized: int = 0
    total_interest_paid: int = 0

    @property
    def total_lender_principal(self) -> int:
        return sum(self.lenders.values())

    def principal_of(self, lender: str) -> int:
        return self.lenders.get(lender, 0)


@dataclass(frozen=True, slots=True)
class LenderAccount:
    address: str
    principal: int


@dataclass(frozen=True, slots=True)
class WithdrawalQuote:
    """What a lender would receive if they withdrew now."""
    lender: str
    principal: int
    interest: int

    @property
    def amount(self) -> int:
        return self.principal + self.interest


# ============================================================================
# UNIT CREATION AND ADAPTERS
# ============================================================================

def create_lending_pool(terms: PoolTerms = None, symbol: str = POOL_SYMBOL) -> Unit:
    """
    Create the pool unit with zeroed counters.

    The unit holds state only; no wallet ever has a balance of it.
    """
    terms = terms or PoolTerms()
    state: Dict[str, Any] = {
        'collateral_ratio': terms.collateral_ratio,
        'interest_rate': terms.interest_rate,
        'loan_duration': terms.loan_duration,
        'base_asset': terms.base_asset,
        'stable_asset': terms.stable_asset,
        'decimals': terms.decimals,
        'lenders': {},
    }
    for counter in POOL_COUNTERS:
        state[counter] = 0
    return Unit(
        symbol=symbol,
        name="Collateralized lending pool",
        unit_type=UNIT_TYPE_LENDING_POOL,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state(state),
    )


def load_pool_terms(view: LedgerView, symbol: str = POOL_SYMBOL) -> PoolTerms:
    state = view.get_unit_state(symbol)
    return PoolTerms(
        collateral_ratio=state['collateral_ratio'],
        interest_rate=state['interest_rate'],
        loan_duration=state['loan_duration'],
        base_asset=state['base_asset'],
        stable_asset=state['stable_asset'],
        decimals=state['decimals'],
    )


def load_pool(view: LedgerView, symbol: str = POOL_SYMBOL) -> PoolState:
    """Read the pool unit into a PoolState."""
    state = view.get_unit_state(symbol)
    return PoolState(
        lenders=dict(state.get('lenders', {})),
        **{counter: state.get(counter, 0) for counter in POOL_COUNTERS},
    )


def pool_state_change(
    view: LedgerView,
    updates: Dict[str, Any],
    symbol: str = POOL_SYMBOL,
) -> UnitStateChange:
    """
    State change applying `updates` to the pool's current state.

    Shared by the loan and liquidation modules, which also move pool counters.
    """
    old_state = view.get_unit_state(symbol)
    return UnitStateChange(symbol, old_state, {**old_state, **updates})


# ============================================================================
# READ QUERIES
# ============================================================================

def get_lender_details(view: LedgerView, lender: str, symbol: str = POOL_SYMBOL) -> LenderAccount:
    """Lender account; an unknown address has zero principal."""
    return LenderAccount(address=lender, principal=load_pool(view, symbol).principal_of(lender))


def quote_withdrawal(view: LedgerView, lender: str, symbol: str = POOL_SYMBOL) -> WithdrawalQuote:
    """
    Principal plus the lender's pro-rata share of interest earned so far.

    Raises:
        NoFundsToWithdraw: lender has no principal in the pool
    """
    pool = load_pool(view, symbol)
    principal = pool.principal_of(lender)
    if principal <= 0:
        raise NoFundsToWithdraw("No funds to withdraw")
    interest = calculate_interest_share(
        pool.total_interest_earned, principal, pool.total_lender_principal
    )
    return WithdrawalQuote(lender=lender, principal=principal, interest=interest)


# ============================================================================
# COMPUTE FUNCTIONS
# ============================================================================

def compute_deposit(
    view: LedgerView,
    lender: str,
    amount: int,
    symbol: str = POOL_SYMBOL,
) -> PendingTransaction:
    """
    Move `amount` of the base asset from the lender into pool custody and
    credit it to the lender's principal.

    Repeated deposits are additive.

    Raises:
        InvalidAmount: amount is not positive
        InsufficientFunds: lender holds less than amount
    """
    if amount <= 0:
        raise InvalidAmount("Deposit amount must be greater than 0")

    terms = load_pool_terms(view, symbol)
    balance = wallet_balance(view, lender, terms.base_asset)
    if balance < amount:
        raise InsufficientFunds(
            f"{lender} holds {balance} {terms.base_asset}, needs {amount}"
        )

    pool = load_pool(view, symbol)
    lenders = dict(pool.lenders)
    lenders[lender] = lenders.get(lender, 0) + amount

    change = pool_state_change(view, {
        'lenders': lenders,
        'total_liquidity': pool.total_liquidity + amount,
        'total_deposited': pool.total_deposited + amount,
    }, symbol)

    moves = [Move(Decimal(amount), terms.base_asset, lender, POOL_WALLET, f"deposit:{lender}")]
    origin = TransactionOrigin(OriginType.USER_ACTION, lender, symbol, "DEPOSIT")
    return build_transaction(view, moves, [change], origin)


def compute_withdraw(
    view: LedgerView,
    lender: str,
    symbol: str = POOL_SYMBOL,
) -> PendingTransaction:
    """
    Pay out the lender's whole principal plus their interest share.

    total_liquidity is an accounting figure and does not gate the
    withdrawal; the custody wallet balance does.

    Raises:
        NoFundsToWithdraw: lender has no principal
        InsufficientPoolLiquidity: custody holds less than the payout
    """
    quote = quote_withdrawal(view, lender, symbol)
    terms = load_pool_terms(view, symbol)

    custody = view.get_balance(POOL_WALLET, terms.base_asset)
    if custody < quote.amount:
        raise InsufficientPoolLiquidity("Insufficient pool liquidity")

    pool = load_pool(view, symbol)
    lenders = dict(pool.lenders)
    lenders[lender] = 0

    change = pool_state_change(view, {
        'lenders': lenders,
        'total_liquidity': pool.total_liquidity - quote.amount,
        'total_interest_earned': pool.total_interest_earned - quote.interest,
        'total_withdrawn': pool.total_withdrawn + quote.principal,
        'total_interest_paid': pool.total_interest_paid + quote.interest,
    }, symbol)

    moves = [Move(Decimal(quote.amount), terms.base_asset, POOL_WALLET, lender, f"withdraw:{lender}")]
    origin = TransactionOrigin(OriginType.USER_ACTION, lender, symbol, "WITHDRAW")
    return build_transaction(view, moves, [change], origin)
