"""
collateral_loan.py - Collateralized Loan Units

One state-only unit per borrower, symbol "LOAN:<address>", created the first
time the borrower posts collateral. The posted base asset sits in the
collateral escrow wallet; the disbursed stable asset comes out of the stable
reserve wallet.

Lifecycle:

    NO_POSITION --deposit_collateral--> COLLATERAL_POSTED --borrow--> BORROWED
    BORROWED --repay--> REPAID
    BORROWED --liquidate--> LIQUIDATED
    REPAID / LIQUIDATED --deposit_collateral--> COLLATERAL_POSTED
    COLLATERAL_POSTED --remove_collateral--> NO_POSITION (or back to REPAID /
                                             LIQUIDATED, whose flags persist)

Both terminal transitions zero collateral, principal and interest_due. A
borrower has at most one active loan (principal > 0, not repaid, not
liquidated).

Key Formulas:
    collateral_ratio = collateral * 100 // principal    (0 when principal is 0)
    interest_due     = principal * interest_rate // 100
    max_principal    = collateral * 100 // collateral_ratio
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_COLLATERAL_LOAN, POOL_SYMBOL, POOL_WALLET, ESCROW_WALLET,
    STABLE_RESERVE_WALLET, COLLATERAL_RATIO,
    InsufficientFunds, InvalidAmount, InsufficientRepayment, LoanAlreadyExists,
    NoActiveLoan, InsufficientCollateral, InsufficientPoolLiquidity,
    InsufficientStableAssetBalanceInPool, ActiveLoanExists, NoCollateralToRemove,
    build_transaction, wallet_balance, _freeze_state,
)
from ..interest import calculate_interest_due, calculate_collateral_skim
from .lending_pool import load_pool, load_pool_terms, pool_state_change


LOAN_PREFIX = "LOAN:"


class LoanStatus(Enum):
    NO_POSITION = "no_position"
    COLLATERAL_POSTED = "collateral_posted"
    BORROWED = "borrowed"
    REPAID = "repaid"
    LIQUIDATED = "liquidated"


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanState:
    """
    Snapshot of one borrower's position.

    collateral_amount is in base-asset units, principal and interest_due in
    stable-asset units. revision counts committed changes to the position.
    """
    borrower: str
    collateral_amount: int = 0
    principal: int = 0
    interest_due: int = 0
    start_time: Optional[datetime] = None
    due_time: Optional[datetime] = None
    repaid: bool = False
    liquidated: bool = False
    revision: int = 0

    @property
    def is_active(self) -> bool:
        return self.principal > 0 and not self.repaid and not self.liquidated


def loan_symbol(borrower: str) -> str:
    return f"{LOAN_PREFIX}{borrower}"


def _loan_fields(loan: LoanState) -> Dict[str, Any]:
    return {
        'borrower': loan.borrower,
        'collateral_amount': loan.collateral_amount,
        'principal': loan.principal,
        'interest_due': loan.interest_due,
        'start_time': loan.start_time,
        'due_time': loan.due_time,
        'repaid': loan.repaid,
        'liquidated': loan.liquidated,
        'revision': loan.revision,
    }


def create_loan_unit(borrower: str, collateral_amount: int = 0) -> Unit:
    """State-only unit for a borrower's first position."""
    state = _loan_fields(LoanState(borrower=borrower, collateral_amount=collateral_amount, revision=1))
    return Unit(
        symbol=loan_symbol(borrower),
        name=f"Collateralized loan of {borrower}",
        unit_type=UNIT_TYPE_COLLATERAL_LOAN,
        min_balance=Decimal("0"),
        max_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state(state),
    )


def load_loan(view: LedgerView, borrower: str) -> LoanState:
    """
    Read a borrower's position. A borrower who never posted collateral gets
    an empty LoanState.
    """
    symbol = loan_symbol(borrower)
    if not view.has_unit(symbol):
        return LoanState(borrower=borrower)
    state = view.get_unit_state(symbol)
    return LoanState(
        borrower=state['borrower'],
        collateral_amount=state['collateral_amount'],
        principal=state['principal'],
        interest_due=state['interest_due'],
        start_time=state['start_time'],
        due_time=state['due_time'],
        repaid=state['repaid'],
        liquidated=state['liquidated'],
        revision=state.get('revision', 0),
    )


def loan_state_change(view: LedgerView, loan: LoanState) -> UnitStateChange:
    """
    State change from the borrower's current loan unit to `loan`, bumping
    the revision.
    """
    symbol = loan_symbol(loan.borrower)
    old_state = view.get_unit_state(symbol)
    new_state = _loan_fields(loan)
    new_state['revision'] = old_state.get('revision', 0) + 1
    return UnitStateChange(symbol, old_state, new_state)


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def calculate_collateral_ratio(collateral_amount: int, principal: int) -> int:
    """Collateral as a whole percent of principal; 0 when nothing is borrowed."""
    if principal <= 0:
        return 0
    return collateral_amount * 100 // principal


def calculate_repayment_amount(loan: LoanState) -> int:
    """Principal plus quoted interest. Zero once the loan is closed."""
    return loan.principal + loan.interest_due


def calculate_available_borrow(
    collateral_amount: int,
    principal: int,
    total_liquidity: int,
    collateral_ratio: int = COLLATERAL_RATIO,
) -> int:
    """
    Additional principal the posted collateral supports, capped by pool
    liquidity. Never negative.
    """
    headroom = max(0, collateral_amount * 100 // collateral_ratio - principal)
    return min(headroom, max(0, total_liquidity))


def get_loan_status(loan: LoanState) -> LoanStatus:
    if loan.is_active:
        return LoanStatus.BORROWED
    if loan.collateral_amount > 0:
        return LoanStatus.COLLATERAL_POSTED
    if loan.liquidated:
        return LoanStatus.LIQUIDATED
    if loan.repaid:
        return LoanStatus.REPAID
    return LoanStatus.NO_POSITION


# ============================================================================
# COMPUTE FUNCTIONS
# ============================================================================

def compute_deposit_collateral(
    view: LedgerView,
    borrower: str,
    amount: int,
    pool_symbol: str = POOL_SYMBOL,
) -> PendingTransaction:
    """
    Post `amount` of the base asset as collateral.

    Allowed in every state, including on top of an active loan. Creates the
    loan unit on the borrower's first deposit.

    Raises:
        InvalidAmount: amount is not positive
        InsufficientFunds: borrower holds less than amount
    """
    if amount <= 0:
        raise InvalidAmount("Collateral amount must be greater than 0")

    terms = load_pool_terms(view, pool_symbol)
    balance = wallet_balance(view, borrower, terms.base_asset)
    if balance < amount:
        raise InsufficientFunds(
            f"{borrower} holds {balance} {terms.base_asset}, needs {amount}"
        )

    symbol = loan_symbol(borrower)
    moves = [Move(Decimal(amount), terms.base_asset, borrower, ESCROW_WALLET, f"collateral:{borrower}")]
    origin = TransactionOrigin(OriginType.USER_ACTION, borrower, symbol, "DEPOSIT_COLLATERAL")

    if not view.has_unit(symbol):
        return build_transaction(
            view, moves, [], origin,
            units_to_create=(create_loan_unit(borrower, amount),),
        )

    loan = load_loan(view, borrower)
    updated = LoanState(**{**_loan_fields(loan), 'collateral_amount': loan.collateral_amount + amount})
    return build_transaction(view, moves, [loan_state_change(view, updated)], origin)


def compute_borrow(
    view: LedgerView,
    borrower: str,
    principal: int,
    pool_symbol: str = POOL_SYMBOL,
) -> PendingTransaction:
    """
    Disburse `principal` of the stable asset against posted collateral.

    Checks run in this order and the first failure wins.

    Raises:
        InvalidAmount: principal is not positive
        LoanAlreadyExists: borrower already has an active loan
        InsufficientPoolLiquidity: principal exceeds the pool's total_liquidity
        InsufficientCollateral: collateral ratio would be below the minimum
        InsufficientStableAssetBalanceInPool: stable reserve cannot cover it
    """
    if principal <= 0:
        raise InvalidAmount("Loan amount must be greater than 0")

    loan = load_loan(view, borrower)
    if loan.is_active:
        raise LoanAlreadyExists("Active loan already exists")

    pool = load_pool(view, pool_symbol)
    if principal > pool.total_liquidity:
        raise InsufficientPoolLiquidity("Insufficient pool liquidity")

    terms = load_pool_terms(view, pool_symbol)
    if calculate_collateral_ratio(loan.collateral_amount, principal) < terms.collateral_ratio:
        raise InsufficientCollateral("Insufficient collateral")

    reserve = view.get_balance(STABLE_RESERVE_WALLET, terms.stable_asset)
    if reserve < principal:
        raise InsufficientStableAssetBalanceInPool("Insufficient stable asset balance in pool")

    now = view.current_time
    updated = LoanState(
        borrower=borrower,
        collateral_amount=loan.collateral_amount,
        principal=principal,
        interest_due=calculate_interest_due(principal, terms.interest_rate),
        start_time=now,
        due_time=now + terms.loan_duration,
        repaid=False,
        liquidated=False,
    )
    pool_change = pool_state_change(view, {
        'total_liquidity': pool.total_liquidity - principal,
        'total_disbursed': pool.total_disbursed + principal,
        'active_loan_count': pool.active_loan_count + 1,
    }, pool_symbol)

    moves = [Move(Decimal(principal), terms.stable_asset, STABLE_RESERVE_WALLET, borrower, f"borrow:{borrower}")]
    origin = TransactionOrigin(OriginType.USER_ACTION, borrower, loan_symbol(borrower), "BORROW")
    return build_transaction(view, moves, [loan_state_change(view, updated), pool_change], origin)


def compute_repay(
    view: LedgerView,
    borrower: str,
    payment_amount: int,
    pool_symbol: str = POOL_SYMBOL,
) -> PendingTransaction:
    """
    Close an active loan.

    Only the principal is collected in the stable asset; anything in
    payment_amount above it is not taken. The pool keeps interest_rate percent
    of the collateral as its earnings and the rest goes back to the borrower.

    Raises:
        NoActiveLoan: borrower has no active loan
        InsufficientRepayment: payment_amount is below the principal
        InsufficientFunds: borrower holds less than the principal
    """
    loan = load_loan(view, borrower)
    if not loan.is_active:
        raise NoActiveLoan("No active loan")
    if payment_amount < loan.principal:
        raise InsufficientRepayment("Insufficient repayment amount")

    terms = load_pool_terms(view, pool_symbol)
    balance = wallet_balance(view, borrower, terms.stable_asset)
    if balance < loan.principal:
        raise InsufficientFunds(
            f"{borrower} holds {balance} {terms.stable_asset}, needs {loan.principal}"
        )

    skim = calculate_collateral_skim(loan.collateral_amount, terms.interest_rate)
    returned = loan.collateral_amount - skim

    contract_id = f"repay:{borrower}"
    moves = [Move(Decimal(loan.principal), terms.stable_asset, borrower, STABLE_RESERVE_WALLET, contract_id)]
    if skim > 0:
        moves.append(Move(Decimal(skim), terms.base_asset, ESCROW_WALLET, POOL_WALLET, contract_id))
    if returned > 0:
        moves.append(Move(Decimal(returned), terms.base_asset, ESCROW_WALLET, borrower, contract_id))

    closed = LoanState(
        borrower=borrower,
        start_time=loan.start_time,
        due_time=loan.due_time,
        repaid=True,
        liquidated=False,
    )
    pool = load_pool(view, pool_symbol)
    pool_change = pool_state_change(view, {
        'total_liquidity': pool.total_liquidity + skim,
        'total_interest_earned': pool.total_interest_earned + skim,
        'total_skimmed': pool.total_skimmed + skim,
        'active_loan_count': pool.active_loan_count - 1,
    }, pool_symbol)

    origin = TransactionOrigin(OriginType.USER_ACTION, borrower, loan_symbol(borrower), "REPAY")
    return build_transaction(view, moves, [loan_state_change(view, closed), pool_change], origin)


def compute_remove_collateral(
    view: LedgerView,
    borrower: str,
    pool_symbol: str = POOL_SYMBOL,
) -> PendingTransaction:
    """
    Return all posted collateral when no loan is active.

    Raises:
        ActiveLoanExists: borrower has an active loan
        NoCollateralToRemove: nothing is posted
    """
    loan = load_loan(view, borrower)
    if loan.is_active:
        raise ActiveLoanExists("Active loan exists")
    if loan.collateral_amount <= 0:
        raise NoCollateralToRemove("No collateral to remove")

    terms = load_pool_terms(view, pool_symbol)
    moves = [Move(Decimal(loan.collateral_amount), terms.base_asset, ESCROW_WALLET, borrower,
                  f"remove_collateral:{borrower}")]
    emptied = LoanState(**{**_loan_fields(loan), 'collateral_amount': 0})
    origin = TransactionOrigin(OriginType.USER_ACTION, borrower, loan_symbol(borrower), "REMOVE_COLLATERAL")
    return build_transaction(view, moves, [loan_state_change(view, emptied)], origin)
