"""
liquidation.py - Liquidation Eligibility, Risk Assessment and Seizure

A loan is liquidatable when it is active and either overdue
(now >= due_time) or under-collateralized (ratio < collateral_ratio).
Anyone may liquidate. Liquidation seizes the whole collateral into the pool
custody wallet; there is no stable-asset settlement and no partial
liquidation.

Risk levels for monitoring:

    critical  ratio < 150   or overdue
    high      ratio < 160   or less than 1 day left
    medium    ratio < 170   or less than 3 days left
    low       otherwise
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from .core import (
    LedgerView, Move, PendingTransaction,
    TransactionOrigin, OriginType,
    POOL_SYMBOL, POOL_WALLET, ESCROW_WALLET, COLLATERAL_RATIO,
    LoanNotLiquidatable,
    build_transaction,
)
from .units.lending_pool import load_pool, load_pool_terms, pool_state_change
from .units.collateral_loan import (
    LOAN_PREFIX, LoanState,
    load_loan, loan_state_change, calculate_collateral_ratio,
)


RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"
RISK_CRITICAL = "critical"

# Margins above the minimum ratio for each warning level.
HIGH_RISK_RATIO_MARGIN = 10
MEDIUM_RISK_RATIO_MARGIN = 20
HIGH_RISK_TIME_LEFT = timedelta(days=1)
MEDIUM_RISK_TIME_LEFT = timedelta(days=3)


@dataclass(frozen=True, slots=True)
class PositionRisk:
    """Monitoring snapshot of one borrower's loan."""
    borrower: str
    collateral_amount: int
    principal: int
    collateral_ratio: int
    due_time: Optional[datetime]
    seconds_remaining: int
    is_active: bool
    is_overdue: bool
    is_liquidatable: bool
    risk_level: str


# ============================================================================
# PURE PREDICATES
# ============================================================================

def is_overdue(loan: LoanState, now: datetime) -> bool:
    return loan.is_active and loan.due_time is not None and now >= loan.due_time


def is_undercollateralized(loan: LoanState, collateral_ratio: int = COLLATERAL_RATIO) -> bool:
    return loan.is_active and calculate_collateral_ratio(loan.collateral_amount, loan.principal) < collateral_ratio


def is_liquidatable(loan: LoanState, now: datetime, collateral_ratio: int = COLLATERAL_RATIO) -> bool:
    return is_overdue(loan, now) or is_undercollateralized(loan, collateral_ratio)


def seconds_remaining(loan: LoanState, now: datetime) -> int:
    """Whole seconds until due_time; 0 when overdue or not active."""
    if not loan.is_active or loan.due_time is None:
        return 0
    return max(0, int((loan.due_time - now).total_seconds()))


def classify_risk(
    collateral_ratio: int,
    time_left: timedelta,
    minimum_ratio: int = COLLATERAL_RATIO,
) -> str:
    """Risk bucket for an active loan from its ratio and time to maturity."""
    if collateral_ratio < minimum_ratio or time_left <= timedelta(0):
        return RISK_CRITICAL
    if collateral_ratio < minimum_ratio + HIGH_RISK_RATIO_MARGIN or time_left < HIGH_RISK_TIME_LEFT:
        return RISK_HIGH
    if collateral_ratio < minimum_ratio + MEDIUM_RISK_RATIO_MARGIN or time_left < MEDIUM_RISK_TIME_LEFT:
        return RISK_MEDIUM
    return RISK_LOW


def assess_loan(loan: LoanState, now: datetime, minimum_ratio: int = COLLATERAL_RATIO) -> PositionRisk:
    """Pure risk assessment of a loan at time `now`. Inactive positions are low risk."""
    ratio = calculate_collateral_ratio(loan.collateral_amount, loan.principal)
    remaining = seconds_remaining(loan, now)
    if loan.is_active:
        level = classify_risk(ratio, timedelta(seconds=remaining), minimum_ratio)
    else:
        level = RISK_LOW
    return PositionRisk(
        borrower=loan.borrower,
        collateral_amount=loan.collateral_amount,
        principal=loan.principal,
        collateral_ratio=ratio,
        due_time=loan.due_time,
        seconds_remaining=remaining,
        is_active=loan.is_active,
        is_overdue=is_overdue(loan, now),
        is_liquidatable=is_liquidatable(loan, now, minimum_ratio),
        risk_level=level,
    )


# ============================================================================
# VIEW QUERIES
# ============================================================================

def assess_position(view: LedgerView, borrower: str, pool_symbol: str = POOL_SYMBOL) -> PositionRisk:
    terms = load_pool_terms(view, pool_symbol)
    return assess_loan(load_loan(view, borrower), view.current_time, terms.collateral_ratio)


def list_borrowers(view: LedgerView) -> List[str]:
    """Every address that has ever posted collateral, sorted."""
    return [
        symbol[len(LOAN_PREFIX):]
        for symbol in view.list_units()
        if symbol.startswith(LOAN_PREFIX)
    ]


def find_liquidatable_positions(view: LedgerView, pool_symbol: str = POOL_SYMBOL) -> List[PositionRisk]:
    """All currently liquidatable positions, in borrower order."""
    terms = load_pool_terms(view, pool_symbol)
    now = view.current_time
    positions = []
    for borrower in list_borrowers(view):
        risk = assess_loan(load_loan(view, borrower), now, terms.collateral_ratio)
        if risk.is_liquidatable:
            positions.append(risk)
    return positions


# ============================================================================
# COMPUTE FUNCTION
# ============================================================================

def compute_liquidation(
    view: LedgerView,
    liquidator: str,
    borrower: str,
    pool_symbol: str = POOL_SYMBOL,
    origin_type: OriginType = OriginType.USER_ACTION,
) -> PendingTransaction:
    """
    Seize the borrower's whole collateral into pool custody.

    The liquidator receives nothing and pays nothing; they are recorded on
    the transaction origin.

    Raises:
        LoanNotLiquidatable: loan is not active, or active but healthy and not due
    """
    terms = load_pool_terms(view, pool_symbol)
    loan = load_loan(view, borrower)
    if not is_liquidatable(loan, view.current_time, terms.collateral_ratio):
        raise LoanNotLiquidatable("Loan cannot be liquidated")

    seized = loan.collateral_amount
    moves = []
    if seized > 0:
        moves.append(Move(Decimal(seized), terms.base_asset, ESCROW_WALLET, POOL_WALLET,
                          f"liquidate:{borrower}"))

    closed = LoanState(
        borrower=borrower,
        start_time=loan.start_time,
        due_time=loan.due_time,
        repaid=False,
        liquidated=True,
    )
    pool = load_pool(view, pool_symbol)
    pool_change = pool_state_change(view, {
        'total_liquidity': pool.total_liquidity + seized,
        'total_seized': pool.total_seized + seized,
        'active_loan_count': pool.active_loan_count - 1,
    }, pool_symbol)

    origin = TransactionOrigin(origin_type, liquidator, f"{LOAN_PREFIX}{borrower}", "LIQUIDATE")
    return build_transaction(view, moves, [loan_state_change(view, closed), pool_change], origin)
