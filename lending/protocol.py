"""
protocol.py - Lending Protocol Facade

LendingProtocol owns the token ledger, the pool unit and every loan unit, and
is the only entry point collaborators (front ends, keepers, scripts) use.

Each mutation runs the same pipeline under one re-entrant lock:

    validate + compute (pure compute_* on the ledger view, raises LendingError)
    -> Ledger.execute (atomic: all moves and state changes, or nothing)
    -> publish the domain event

Reads take the same lock, so they never observe a half-applied mutation,
and return frozen snapshots rather than live state.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal, localcontext
from threading import RLock
from typing import Dict, List, Optional, Any

from .core import (
    Move, Transaction, TransactionOrigin, OriginType, ExecuteResult,
    SYSTEM_WALLET, POOL_WALLET, ESCROW_WALLET, STABLE_RESERVE_WALLET, PROTOCOL_WALLETS,
    POOL_SYMBOL,
    LedgerError, InvalidAmount, UnitNotRegistered, LEDGER_CONTEXT,
    token, build_transaction, from_base_units,
)
from .ledger import Ledger
from .events import (
    EventFeed, LendingEvent,
    LenderDeposit, LenderWithdraw, CollateralDeposited, CollateralRemoved,
    LoanIssued, LoanRepaid, Liquidated,
)
from .interest import preview_interest_allocation
from .liquidation import (
    PositionRisk,
    assess_position, find_liquidatable_positions, compute_liquidation,
    is_liquidatable, is_overdue, list_borrowers,
)
from .units.lending_pool import (
    PoolTerms, PoolState, LenderAccount, WithdrawalQuote,
    create_lending_pool, load_pool, get_lender_details, quote_withdrawal,
    compute_deposit, compute_withdraw,
)
from .units.collateral_loan import (
    LoanState, LoanStatus,
    load_loan, get_loan_status,
    calculate_collateral_ratio, calculate_repayment_amount, calculate_available_borrow,
    compute_deposit_collateral, compute_borrow, compute_repay, compute_remove_collateral,
)


_ASSET_NAMES = {"ETH": "Ether", "DAI": "Dai Stablecoin"}


class LendingProtocol:
    """
    Collateralized peer-to-peer lending pool.

    Lenders deposit the base asset and earn a share of collateral skims.
    Borrowers post the base asset as collateral and borrow the stable asset
    at a fixed minimum collateral ratio. Anyone may liquidate overdue or
    under-collateralized loans.

    Thread Safety:
        All public methods are serialized on an RLock. Subscribers run while
        the lock is held and may call read methods.

    Example:
        protocol = LendingProtocol(verbose=False)
        protocol.fund_stable_reserve(to_base_units(500_000))
        protocol.mint("alice", "ETH", to_base_units(10))
        protocol.deposit("alice", to_base_units(10))
    """

    def __init__(
        self,
        name: str = "lending",
        terms: Optional[PoolTerms] = None,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        self.terms = terms or PoolTerms()
        self.ledger = Ledger(name, initial_time=initial_time, verbose=verbose)
        self.events = EventFeed()
        self.verbose = verbose
        self.lock = RLock()
        self.pool_symbol = POOL_SYMBOL

        for symbol in (self.terms.base_asset, self.terms.stable_asset):
            self.ledger.register_unit(
                token(symbol, _ASSET_NAMES.get(symbol, symbol), self.terms.decimals)
            )
        self.ledger.register_unit(create_lending_pool(self.terms, self.pool_symbol))
        for wallet in sorted(PROTOCOL_WALLETS):
            self.ledger.register_wallet(wallet)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _log(self, message: str) -> None:
        if self.verbose:
            print(f"[{self.ledger.current_time.isoformat()}] {message}")

    def _fmt(self, amount: int) -> str:
        with localcontext(LEDGER_CONTEXT):
            return f"{from_base_units(amount, self.terms.decimals).normalize():f}"

    @staticmethod
    def _check_address(address: str) -> None:
        if not isinstance(address, str) or not address.strip():
            raise ValueError("Address cannot be empty")
        if address == SYSTEM_WALLET or address in PROTOCOL_WALLETS:
            raise ValueError(f"Address {address} is reserved")

    @staticmethod
    def _check_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TypeError(f"Amounts are integer base units, got {type(amount).__name__}")

    def _ensure_wallet(self, address: str) -> None:
        """Register a participant wallet once its first mutation has validated."""
        if not self.ledger.is_registered(address):
            self.ledger.register_wallet(address)

    def _commit(self, pending) -> Transaction:
        """Execute a computed transaction; anything but APPLIED is an engine error."""
        result = self.ledger.execute(pending)
        if result != ExecuteResult.APPLIED:
            reason = self.ledger.last_rejection or result.value
            raise LedgerError(f"Transaction {pending.intent_id} not applied: {reason}")
        return self.ledger.transaction_log[-1]

    def _publish(self, event: LendingEvent) -> LendingEvent:
        self.events.publish(event)
        return event

    # ========================================================================
    # CLOCK AND FAUCET
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self.ledger.current_time

    def advance_time(self, new_time: datetime) -> None:
        with self.lock:
            self.ledger.advance_time(new_time)

    def mint(self, address: str, symbol: str, amount: int) -> Transaction:
        """Issue `amount` of a registered token to an address from the system wallet."""
        self._check_amount(amount)
        if amount <= 0:
            raise InvalidAmount("Mint amount must be greater than 0")
        with self.lock:
            if not self.ledger.has_unit(symbol):
                raise UnitNotRegistered(f"Unit {symbol} not registered")
            if address != STABLE_RESERVE_WALLET:
                self._check_address(address)
                self._ensure_wallet(address)
            sequence = len(self.ledger.transaction_log)
            pending = build_transaction(
                self.ledger,
                [Move(Decimal(amount), symbol, SYSTEM_WALLET, address, f"mint:{address}:{sequence}")],
                origin=TransactionOrigin(OriginType.SYSTEM, "faucet", symbol, "MINT"),
            )
            tx = self._commit(pending)
            self._log(f"minted {self._fmt(amount)} {symbol} to {address}")
            return tx

    def fund_stable_reserve(self, amount: int) -> Transaction:
        """Issue stable asset into the reserve that loans are disbursed from."""
        return self.mint(STABLE_RESERVE_WALLET, self.terms.stable_asset, amount)

    def balance_of(self, address: str, symbol: str) -> int:
        with self.lock:
            if not self.ledger.is_registered(address):
                return 0
            return int(self.ledger.get_balance(address, symbol))

    # ========================================================================
    # LENDER OPERATIONS
    # ========================================================================

    def deposit(self, lender: str, amount: int) -> LenderDeposit:
        self._check_amount(amount)
        with self.lock:
            self._check_address(lender)
            pending = compute_deposit(self.ledger, lender, amount, self.pool_symbol)
            self._ensure_wallet(lender)
            tx = self._commit(pending)
            self._log(f"{lender} deposited {self._fmt(amount)} {self.terms.base_asset}")
            return self._publish(LenderDeposit(lender, amount, tx.execution_time, tx.exec_id))

    def withdraw(self, lender: str) -> LenderWithdraw:
        with self.lock:
            self._check_address(lender)
            quote = quote_withdrawal(self.ledger, lender, self.pool_symbol)
            pending = compute_withdraw(self.ledger, lender, self.pool_symbol)
            self._ensure_wallet(lender)
            tx = self._commit(pending)
            self._log(
                f"{lender} withdrew {self._fmt(quote.amount)} {self.terms.base_asset} "
                f"(interest {self._fmt(quote.interest)})"
            )
            return self._publish(LenderWithdraw(
                lender, quote.amount, quote.principal, quote.interest, tx.execution_time, tx.exec_id
            ))

    # ========================================================================
    # BORROWER OPERATIONS
    # ========================================================================

    def deposit_collateral(self, borrower: str, amount: int) -> CollateralDeposited:
        self._check_amount(amount)
        with self.lock:
            self._check_address(borrower)
            pending = compute_deposit_collateral(self.ledger, borrower, amount, self.pool_symbol)
            self._ensure_wallet(borrower)
            tx = self._commit(pending)
            self._log(f"{borrower} posted {self._fmt(amount)} {self.terms.base_asset} collateral")
            return self._publish(CollateralDeposited(borrower, amount, tx.execution_time, tx.exec_id))

    def borrow(self, borrower: str, principal: int) -> LoanIssued:
        self._check_amount(principal)
        with self.lock:
            self._check_address(borrower)
            pending = compute_borrow(self.ledger, borrower, principal, self.pool_symbol)
            self._ensure_wallet(borrower)
            tx = self._commit(pending)
            loan = load_loan(self.ledger, borrower)
            self._log(
                f"{borrower} borrowed {self._fmt(principal)} {self.terms.stable_asset}, "
                f"due {loan.due_time.isoformat()}"
            )
            return self._publish(LoanIssued(
                borrower, loan.principal, loan.interest_due, loan.due_time, tx.execution_time, tx.exec_id
            ))

    def repay_loan(self, borrower: str, payment_amount: int) -> LoanRepaid:
        """
        Close the active loan. payment_amount must cover the principal; only
        the principal is collected.
        """
        self._check_amount(payment_amount)
        with self.lock:
            self._check_address(borrower)
            principal = load_loan(self.ledger, borrower).principal
            pending = compute_repay(self.ledger, borrower, payment_amount, self.pool_symbol)
            self._ensure_wallet(borrower)
            tx = self._commit(pending)
            self._log(f"{borrower} repaid {self._fmt(principal)} {self.terms.stable_asset}")
            return self._publish(LoanRepaid(borrower, principal, tx.execution_time, tx.exec_id))

    def remove_collateral(self, borrower: str) -> CollateralRemoved:
        with self.lock:
            self._check_address(borrower)
            amount = load_loan(self.ledger, borrower).collateral_amount
            pending = compute_remove_collateral(self.ledger, borrower, self.pool_symbol)
            self._ensure_wallet(borrower)
            tx = self._commit(pending)
            self._log(f"{borrower} removed {self._fmt(amount)} {self.terms.base_asset} collateral")
            return self._publish(CollateralRemoved(borrower, amount, tx.execution_time, tx.exec_id))

    # ========================================================================
    # LIQUIDATION
    # ========================================================================

    def liquidate(
        self,
        caller: str,
        borrower: str,
        origin_type: OriginType = OriginType.USER_ACTION,
    ) -> Liquidated:
        """Seize an overdue or under-collateralized borrower's whole collateral."""
        self._check_address(caller)
        with self.lock:
            collateral = load_loan(self.ledger, borrower).collateral_amount
            tx = self._commit(compute_liquidation(
                self.ledger, caller, borrower, self.pool_symbol, origin_type
            ))
            self._log(f"{caller} liquidated {borrower}, seized {self._fmt(collateral)} {self.terms.base_asset}")
            return self._publish(Liquidated(borrower, collateral, caller, tx.execution_time, tx.exec_id))

    # ========================================================================
    # READ QUERIES
    # ========================================================================

    def get_pool_details(self) -> PoolState:
        with self.lock:
            return load_pool(self.ledger, self.pool_symbol)

    def get_pool_balance(self) -> int:
        return self.get_pool_details().total_liquidity

    def get_total_interest_earned(self) -> int:
        return self.get_pool_details().total_interest_earned

    def get_active_loan_count(self) -> int:
        return self.get_pool_details().active_loan_count

    def get_lender_details(self, lender: str) -> LenderAccount:
        with self.lock:
            return get_lender_details(self.ledger, lender, self.pool_symbol)

    def quote_withdrawal(self, lender: str) -> WithdrawalQuote:
        with self.lock:
            return quote_withdrawal(self.ledger, lender, self.pool_symbol)

    def preview_interest_allocation(self) -> Dict[str, int]:
        pool = self.get_pool_details()
        return preview_interest_allocation(pool.lenders, pool.total_interest_earned)

    def get_loan_details(self, borrower: str) -> LoanState:
        with self.lock:
            return load_loan(self.ledger, borrower)

    def get_loan_status(self, borrower: str) -> LoanStatus:
        return get_loan_status(self.get_loan_details(borrower))

    def get_collateral_ratio(self, borrower: str) -> int:
        loan = self.get_loan_details(borrower)
        return calculate_collateral_ratio(loan.collateral_amount, loan.principal)

    def calculate_repayment_amount(self, borrower: str) -> int:
        return calculate_repayment_amount(self.get_loan_details(borrower))

    def get_available_borrow_amount(self, borrower: str) -> int:
        with self.lock:
            loan = load_loan(self.ledger, borrower)
            pool = load_pool(self.ledger, self.pool_symbol)
            return calculate_available_borrow(
                loan.collateral_amount, loan.principal, pool.total_liquidity,
                self.terms.collateral_ratio,
            )

    def is_loan_liquidatable(self, borrower: str) -> bool:
        with self.lock:
            return is_liquidatable(
                load_loan(self.ledger, borrower), self.ledger.current_time, self.terms.collateral_ratio
            )

    def is_loan_overdue(self, borrower: str) -> bool:
        with self.lock:
            return is_overdue(load_loan(self.ledger, borrower), self.ledger.current_time)

    def assess_position(self, borrower: str) -> PositionRisk:
        with self.lock:
            return assess_position(self.ledger, borrower, self.pool_symbol)

    def find_liquidatable_positions(self) -> List[PositionRisk]:
        with self.lock:
            return find_liquidatable_positions(self.ledger, self.pool_symbol)

    def verify_accounting(self) -> Dict[str, Any]:
        """
        Check the pool's bookkeeping against itself and against custody.

        Checks:
        - total_liquidity equals deposits - withdrawals - interest paid
          - disbursed + skims + seized collateral
        - lender principals sum to deposits - principal withdrawn
        - pool custody holds total_liquidity + disbursed principal
        - every token's supply across wallets nets to zero

        Returns:
            Dict with 'valid' and a list of 'discrepancies' (descriptions).
        """
        with self.lock:
            pool = load_pool(self.ledger, self.pool_symbol)
            base = self.terms.base_asset
            discrepancies = []

            expected_liquidity = (
                pool.total_deposited - pool.total_withdrawn - pool.total_interest_paid
                - pool.total_disbursed + pool.total_skimmed + pool.total_seized
            )
            if pool.total_liquidity != expected_liquidity:
                discrepancies.append(
                    f"total_liquidity {pool.total_liquidity} != expected {expected_liquidity}"
                )

            expected_principal = pool.total_deposited - pool.total_withdrawn
            if pool.total_lender_principal != expected_principal:
                discrepancies.append(
                    f"lender principal {pool.total_lender_principal} != expected {expected_principal}"
                )

            custody = int(self.ledger.get_balance(POOL_WALLET, base))
            if custody != pool.total_liquidity + pool.total_disbursed:
                discrepancies.append(
                    f"pool custody {custody} != total_liquidity + disbursed "
                    f"{pool.total_liquidity + pool.total_disbursed}"
                )

            escrow = int(self.ledger.get_balance(ESCROW_WALLET, base))
            loans = [load_loan(self.ledger, b) for b in list_borrowers(self.ledger)]
            posted = sum(loan.collateral_amount for loan in loans)
            if escrow != posted:
                discrepancies.append(f"escrow {escrow} != posted collateral {posted}")

            active = sum(1 for loan in loans if loan.is_active)
            if active != pool.active_loan_count:
                discrepancies.append(f"active loans {active} != active_loan_count {pool.active_loan_count}")

            supply = self.ledger.verify_double_entry({
                base: Decimal("0"), self.terms.stable_asset: Decimal("0"),
            })
            for item in supply['discrepancies']:
                discrepancies.append(f"{item['unit']} supply {item['actual']} != {item['expected']}")

            return {'valid': not discrepancies, 'discrepancies': discrepancies}
