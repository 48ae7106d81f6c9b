"""
lending - Collateralized P2P Lending Ledger

Lenders pool a base asset, borrowers post it as collateral and draw a stable
asset against it, and anyone may liquidate overdue or under-collateralized
positions. All value transfers run on a double-entry token ledger.

Usage:
    from datetime import datetime, timedelta
    from lending import LendingProtocol, to_base_units

    protocol = LendingProtocol(initial_time=datetime(2025, 1, 1), verbose=False)
    protocol.fund_stable_reserve(to_base_units(500_000))
    protocol.mint("lender", "ETH", to_base_units(10))
    protocol.mint("borrower", "ETH", to_base_units("1.5"))

    protocol.deposit("lender", to_base_units(10))
    protocol.deposit_collateral("borrower", to_base_units("1.5"))
    protocol.borrow("borrower", to_base_units(1))

    protocol.advance_time(datetime(2025, 1, 1) + timedelta(days=31))
    protocol.liquidate("anyone", "borrower")
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    wallet_balance,
    Unit,
    UnitStateChange,
    ExecuteResult,
    token,
    to_base_units,
    from_base_units,
    SYSTEM_WALLET,
    POOL_WALLET,
    ESCROW_WALLET,
    STABLE_RESERVE_WALLET,
    POOL_SYMBOL,
    BASE_ASSET,
    STABLE_ASSET,
    COLLATERAL_RATIO,
    INTEREST_RATE,
    LOAN_DURATION,
    UNIT_TYPE_TOKEN,
    UNIT_TYPE_LENDING_POOL,
    UNIT_TYPE_COLLATERAL_LOAN,
    # Exceptions
    LedgerError,
    InsufficientFunds,
    UnitNotRegistered,
    WalletNotRegistered,
    LendingError,
    InvalidAmount,
    InsufficientRepayment,
    NoFundsToWithdraw,
    NoFundsError,
    LoanAlreadyExists,
    NoActiveLoan,
    InsufficientCollateral,
    InsufficientPoolLiquidity,
    InsufficientStableAssetBalanceInPool,
    LoanNotLiquidatable,
    ActiveLoanExists,
    NoCollateralToRemove,
    NoCollateralError,
)

# Ledger
from .ledger import Ledger

# Units
from .units import (
    PoolTerms, PoolState, LenderAccount, WithdrawalQuote,
    create_lending_pool, load_pool, load_pool_terms,
    compute_deposit, compute_withdraw,
    LoanStatus, LoanState, loan_symbol, load_loan,
    calculate_collateral_ratio, calculate_repayment_amount, calculate_available_borrow,
    get_loan_status,
    compute_deposit_collateral, compute_borrow, compute_repay, compute_remove_collateral,
)

# Interest
from .interest import (
    calculate_interest_due,
    calculate_collateral_skim,
    calculate_interest_share,
    preview_interest_allocation,
)

# Liquidation
from .liquidation import (
    PositionRisk,
    RISK_LOW, RISK_MEDIUM, RISK_HIGH, RISK_CRITICAL,
    is_overdue, is_liquidatable, classify_risk, assess_loan,
    assess_position, find_liquidatable_positions, compute_liquidation,
)

# Events
from .events import (
    EventFeed,
    LendingEvent,
    LenderDeposit,
    LenderWithdraw,
    CollateralDeposited,
    CollateralRemoved,
    LoanIssued,
    LoanRepaid,
    Liquidated,
)

# Facade and keeper
from .protocol import LendingProtocol
from .keeper import LiquidationKeeper

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction', 'wallet_balance',
    'Unit', 'UnitStateChange', 'ExecuteResult',
    'token', 'to_base_units', 'from_base_units',
    'SYSTEM_WALLET', 'POOL_WALLET', 'ESCROW_WALLET', 'STABLE_RESERVE_WALLET',
    'POOL_SYMBOL', 'BASE_ASSET', 'STABLE_ASSET',
    'COLLATERAL_RATIO', 'INTEREST_RATE', 'LOAN_DURATION',
    'UNIT_TYPE_TOKEN', 'UNIT_TYPE_LENDING_POOL', 'UNIT_TYPE_COLLATERAL_LOAN',
    # Exceptions
    'LedgerError', 'InsufficientFunds', 'UnitNotRegistered', 'WalletNotRegistered',
    'LendingError', 'InvalidAmount', 'InsufficientRepayment',
    'NoFundsToWithdraw', 'NoFundsError', 'LoanAlreadyExists', 'NoActiveLoan',
    'InsufficientCollateral', 'InsufficientPoolLiquidity',
    'InsufficientStableAssetBalanceInPool', 'LoanNotLiquidatable',
    'ActiveLoanExists', 'NoCollateralToRemove', 'NoCollateralError',
    # Ledger
    'Ledger',
    # Pool
    'PoolTerms', 'PoolState', 'LenderAccount', 'WithdrawalQuote',
    'create_lending_pool', 'load_pool', 'load_pool_terms',
    'compute_deposit', 'compute_withdraw',
    # Loans
    'LoanStatus', 'LoanState', 'loan_symbol', 'load_loan',
    'calculate_collateral_ratio', 'calculate_repayment_amount', 'calculate_available_borrow',
    'get_loan_status',
    'compute_deposit_collateral', 'compute_borrow', 'compute_repay', 'compute_remove_collateral',
    # Interest
    'calculate_interest_due', 'calculate_collateral_skim',
    'calculate_interest_share', 'preview_interest_allocation',
    # Liquidation
    'PositionRisk', 'RISK_LOW', 'RISK_MEDIUM', 'RISK_HIGH', 'RISK_CRITICAL',
    'is_overdue', 'is_liquidatable', 'classify_risk', 'assess_loan',
    'assess_position', 'find_liquidatable_positions', 'compute_liquidation',
    # Events
    'EventFeed', 'LendingEvent', 'LenderDeposit', 'LenderWithdraw',
    'CollateralDeposited', 'CollateralRemoved', 'LoanIssued', 'LoanRepaid', 'Liquidated',
    # Facade
    'LendingProtocol', 'LiquidationKeeper',
]

__version__ = '1.0.0'
