"""
Unit modules for the lending protocol.

- lending_pool: the single pool unit (lender principals, pool counters)
- collateral_loan: one loan unit per borrower
"""

from .lending_pool import (
    PoolTerms,
    PoolState,
    LenderAccount,
    WithdrawalQuote,
    create_lending_pool,
    load_pool,
    load_pool_terms,
    get_lender_details,
    quote_withdrawal,
    compute_deposit,
    compute_withdraw,
)

from .collateral_loan import (
    LOAN_PREFIX,
    LoanStatus,
    LoanState,
    loan_symbol,
    create_loan_unit,
    load_loan,
    calculate_collateral_ratio,
    calculate_repayment_amount,
    calculate_available_borrow,
    get_loan_status,
    compute_deposit_collateral,
    compute_borrow,
    compute_repay,
    compute_remove_collateral,
)
