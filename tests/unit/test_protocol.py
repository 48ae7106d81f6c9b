"""
test_protocol.py - Unit tests for the LendingProtocol facade

Tests:
- Construction and faucet
- Address and amount validation
- Each mutation's event and error surface
- Read queries
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from lending import (
    LendingProtocol, PoolTerms, LoanStatus, OriginType,
    LenderDeposit, LenderWithdraw, CollateralDeposited, CollateralRemoved,
    LoanIssued, LoanRepaid, Liquidated,
    POOL_WALLET, ESCROW_WALLET, STABLE_RESERVE_WALLET, SYSTEM_WALLET,
    InvalidAmount, InsufficientFunds, NoFundsToWithdraw, LoanAlreadyExists,
    NoActiveLoan, InsufficientCollateral, InsufficientPoolLiquidity,
    InsufficientStableAssetBalanceInPool, LoanNotLiquidatable, ActiveLoanExists,
    NoCollateralToRemove, InsufficientRepayment, UnitNotRegistered,
)
from tests.conftest import START, RESERVE, eth, dai, assert_accounting


class TestSetup:

    def test_units_and_wallets(self, protocol):
        assert protocol.ledger.list_units() == ["DAI", "ETH", "POOL"]
        for wallet in (POOL_WALLET, ESCROW_WALLET, STABLE_RESERVE_WALLET):
            assert protocol.ledger.is_registered(wallet)

    def test_faucet(self, protocol):
        assert protocol.balance_of(STABLE_RESERVE_WALLET, "DAI") == RESERVE
        assert protocol.balance_of("lender", "ETH") == eth(10)
        assert protocol.balance_of("stranger", "ETH") == 0

    def test_repeated_mints_all_apply(self, protocol):
        protocol.mint("lender", "ETH", 1)
        protocol.mint("lender", "ETH", 1)
        assert protocol.balance_of("lender", "ETH") == eth(10) + 2

    def test_mint_unknown_token(self, protocol):
        with pytest.raises(UnitNotRegistered):
            protocol.mint("newcomer", "BTC", 1)
        assert not protocol.ledger.is_registered("newcomer")

    def test_custom_terms(self):
        protocol = LendingProtocol("t", PoolTerms(collateral_ratio=200), START, verbose=False)
        protocol.fund_stable_reserve(RESERVE)
        protocol.mint("lender", "ETH", eth(10))
        protocol.mint("b", "ETH", eth(2))
        protocol.deposit("lender", eth(10))
        protocol.deposit_collateral("b", eth(2))
        with pytest.raises(InsufficientCollateral):
            protocol.borrow("b", dai("1.01"))
        protocol.borrow("b", dai(1))

    def test_verbose_output(self, capsys):
        protocol = LendingProtocol("t", initial_time=START, verbose=True)
        protocol.mint("lender", "ETH", eth(1))
        protocol.deposit("lender", eth(1))
        out = capsys.readouterr().out
        assert "lender deposited 1 ETH" in out


class TestValidation:

    @pytest.mark.parametrize("address", ["", "  ", SYSTEM_WALLET, POOL_WALLET, ESCROW_WALLET])
    def test_reserved_or_blank_address(self, protocol, address):
        with pytest.raises(ValueError):
            protocol.deposit(address, 1)

    @pytest.mark.parametrize("amount", [1.5, Decimal(1), "1", True])
    def test_amount_must_be_int(self, protocol, amount):
        with pytest.raises(TypeError):
            protocol.deposit("lender", amount)


class TestLenderOperations:

    def test_deposit_event(self, protocol):
        event = protocol.deposit("lender", eth(10))
        assert isinstance(event, LenderDeposit)
        assert (event.lender, event.amount) == ("lender", eth(10))
        assert event.timestamp == START
        assert event.exec_id.startswith("exec:test:")
        assert protocol.get_pool_balance() == eth(10)
        assert protocol.get_lender_details("lender").principal == eth(10)
        assert protocol.balance_of(POOL_WALLET, "ETH") == eth(10)

    def test_deposit_zero(self, protocol):
        with pytest.raises(InvalidAmount):
            protocol.deposit("lender", 0)

    def test_deposit_more_than_held(self, protocol):
        with pytest.raises(InsufficientFunds):
            protocol.deposit("lender", eth(11))
        assert protocol.get_pool_balance() == 0

    def test_withdraw_without_deposit(self, protocol):
        with pytest.raises(NoFundsToWithdraw):
            protocol.withdraw("lender")

    def test_withdraw_event(self, protocol):
        protocol.deposit("lender", eth(10))
        event = protocol.withdraw("lender")
        assert isinstance(event, LenderWithdraw)
        assert (event.amount, event.principal, event.interest) == (eth(10), eth(10), 0)
        assert protocol.balance_of("lender", "ETH") == eth(10)
        assert protocol.get_lender_details("lender").principal == 0

    def test_second_withdraw_fails(self, protocol):
        protocol.deposit("lender", eth(10))
        protocol.withdraw("lender")
        with pytest.raises(NoFundsToWithdraw):
            protocol.withdraw("lender")


class TestBorrowerOperations:

    def test_deposit_collateral_event(self, protocol):
        event = protocol.deposit_collateral("borrower", eth(1))
        assert isinstance(event, CollateralDeposited)
        assert protocol.get_loan_status("borrower") == LoanStatus.COLLATERAL_POSTED
        assert protocol.balance_of(ESCROW_WALLET, "ETH") == eth(1)

    def test_borrow_event(self, protocol):
        protocol.deposit("lender", eth(10))
        protocol.deposit_collateral("borrower", eth("1.5"))
        event = protocol.borrow("borrower", dai(1))
        assert isinstance(event, LoanIssued)
        assert event.interest == dai("0.05")
        assert event.due_time == START + timedelta(days=30)
        assert protocol.balance_of("borrower", "DAI") == dai(1)
        assert protocol.get_active_loan_count() == 1

    def test_borrow_without_pool_liquidity(self, protocol):
        protocol.deposit_collateral("borrower", eth("1.5"))
        with pytest.raises(InsufficientPoolLiquidity):
            protocol.borrow("borrower", dai(1))

    def test_borrow_without_reserve(self):
        protocol = LendingProtocol("t", initial_time=START, verbose=False)
        protocol.mint("lender", "ETH", eth(10))
        protocol.mint("b", "ETH", eth(2))
        protocol.deposit("lender", eth(10))
        protocol.deposit_collateral("b", eth(2))
        with pytest.raises(InsufficientStableAssetBalanceInPool):
            protocol.borrow("b", dai(1))

    def test_double_borrow(self, active_loan):
        with pytest.raises(LoanAlreadyExists):
            active_loan.borrow("borrower", 1)

    def test_repay_event(self, active_loan):
        event = active_loan.repay_loan("borrower", dai(1))
        assert isinstance(event, LoanRepaid)
        assert event.principal == dai(1)
        assert active_loan.get_loan_status("borrower") == LoanStatus.REPAID

    def test_repay_twice(self, active_loan):
        active_loan.repay_loan("borrower", dai(1))
        with pytest.raises(NoActiveLoan):
            active_loan.repay_loan("borrower", dai(1))

    def test_repay_too_little(self, active_loan):
        with pytest.raises(InsufficientRepayment):
            active_loan.repay_loan("borrower", dai(1) - 1)
        assert active_loan.get_loan_details("borrower").is_active

    def test_remove_collateral_event(self, protocol):
        protocol.deposit_collateral("borrower", eth(1))
        event = protocol.remove_collateral("borrower")
        assert isinstance(event, CollateralRemoved)
        assert event.amount == eth(1)
        assert protocol.balance_of("borrower", "ETH") == eth("1.5")
        assert protocol.get_loan_status("borrower") == LoanStatus.NO_POSITION

    def test_remove_collateral_blocked(self, active_loan):
        with pytest.raises(ActiveLoanExists):
            active_loan.remove_collateral("borrower")

    def test_remove_collateral_nothing_posted(self, protocol):
        with pytest.raises(NoCollateralToRemove):
            protocol.remove_collateral("borrower")


class TestLiquidate:

    def test_healthy_loan(self, active_loan):
        with pytest.raises(LoanNotLiquidatable):
            active_loan.liquidate("anyone", "borrower")

    def test_liquidate_event(self, overdue):
        event = overdue.liquidate("anyone", "borrower")
        assert isinstance(event, Liquidated)
        assert (event.borrower, event.collateral_amount, event.liquidator) == (
            "borrower", eth("1.5"), "anyone")
        assert overdue.ledger.transaction_log[-1].origin.origin_type == OriginType.USER_ACTION

    def test_liquidator_needs_no_wallet(self, overdue):
        overdue.liquidate("drive-by", "borrower")
        assert not overdue.ledger.is_registered("drive-by")


class TestReads:

    def test_reads_on_active_loan(self, active_loan):
        assert active_loan.get_collateral_ratio("borrower") == 150
        assert active_loan.calculate_repayment_amount("borrower") == dai("1.05")
        assert active_loan.get_available_borrow_amount("borrower") == 0
        assert not active_loan.is_loan_liquidatable("borrower")
        assert not active_loan.is_loan_overdue("borrower")
        assert active_loan.assess_position("borrower").collateral_ratio == 150
        assert active_loan.find_liquidatable_positions() == []

    def test_reads_on_unknown_address(self, protocol):
        assert protocol.get_loan_status("ghost") == LoanStatus.NO_POSITION
        assert protocol.get_collateral_ratio("ghost") == 0
        assert protocol.calculate_repayment_amount("ghost") == 0
        assert protocol.get_available_borrow_amount("ghost") == 0
        assert not protocol.is_loan_liquidatable("ghost")
        assert protocol.get_lender_details("ghost").principal == 0

    def test_available_borrow(self, protocol):
        protocol.deposit("lender", eth(10))
        protocol.deposit_collateral("borrower", eth("1.5"))
        assert protocol.get_available_borrow_amount("borrower") == eth(1)

    def test_snapshots_are_detached(self, protocol):
        protocol.deposit("lender", eth(10))
        details = protocol.get_pool_details()
        details.lenders['lender'] = 0
        assert protocol.get_lender_details("lender").principal == eth(10)

    def test_overdue_flags(self, overdue):
        assert overdue.is_loan_overdue("borrower")
        assert overdue.is_loan_liquidatable("borrower")
        assert [p.borrower for p in overdue.find_liquidatable_positions()] == ["borrower"]

    def test_accounting_after_each_step(self, protocol):
        assert_accounting(protocol)
        protocol.deposit("lender", eth(10))
        assert_accounting(protocol)
        protocol.deposit_collateral("borrower", eth("1.5"))
        protocol.borrow("borrower", dai(1))
        assert_accounting(protocol)
        protocol.repay_loan("borrower", dai(1))
        assert_accounting(protocol)
