"""
Atomicity Conformance Tests

INVARIANT: A rejected operation changes nothing.

    ∀ operation O raising a LendingError:
        balances, pool state, loan states, transaction log and event
        history are identical before and after O.
"""

import pytest
from hypothesis import given, settings

from lending import (
    ExecuteResult, compute_deposit,
    InsufficientFunds, InsufficientCollateral, NoFundsToWithdraw, NoActiveLoan,
    NoCollateralToRemove, LoanNotLiquidatable,
)
from tests.conformance.operations import (
    operation, operation_sequence, new_protocol, apply_operation,
)
from tests.conftest import eth


def _snapshot(protocol):
    ledger = protocol.ledger
    return (
        {w: dict(ledger.get_wallet_balances(w)) for w in sorted(ledger.list_wallets())},
        {u: ledger.get_unit_state(u) for u in ledger.list_units()},
        len(ledger.transaction_log),
        len(protocol.events),
    )


class TestAtomicityProperties:

    @given(operation_sequence, operation())
    @settings(max_examples=150, deadline=None)
    def test_rejected_operation_changes_nothing(self, ops, final):
        """
        PROPERTY: If an operation raises, the ledger is exactly as before.
        """
        protocol = new_protocol()
        for op in ops:
            apply_operation(protocol, op)
        before = _snapshot(protocol)
        error = apply_operation(protocol, final)
        if error is not None:
            assert _snapshot(protocol) == before

    @given(operation_sequence)
    @settings(max_examples=100, deadline=None)
    def test_one_event_per_applied_mutation(self, ops):
        """
        PROPERTY: Every successful mutation emits exactly one event.
        """
        protocol = new_protocol()
        mutations = 0
        for op in ops:
            error = apply_operation(protocol, op)
            if error is None and op[0] != "wait":
                mutations += 1
        assert len(protocol.events) == mutations


class TestStaleComputation:

    def test_stale_pool_transaction_rejected(self):
        """
        A deposit computed before another deposit commits cannot apply.
        """
        protocol = new_protocol()
        stale = compute_deposit(protocol.ledger, "alice", eth(1))
        protocol.deposit("bob", eth(1))
        before = _snapshot(protocol)

        assert protocol.ledger.execute(stale) == ExecuteResult.REJECTED
        assert "stale state" in protocol.ledger.last_rejection
        assert _snapshot(protocol) == before


class TestUnknownAddresses:
    """Rejected calls from addresses the ledger has never seen register nothing."""

    @pytest.mark.parametrize("call, error", [
        (lambda p: p.withdraw("stranger"), NoFundsToWithdraw),
        (lambda p: p.repay_loan("stranger", 1), NoActiveLoan),
        (lambda p: p.remove_collateral("stranger"), NoCollateralToRemove),
        (lambda p: p.deposit("stranger", eth(1)), InsufficientFunds),
        (lambda p: p.deposit_collateral("stranger", eth(1)), InsufficientFunds),
        (lambda p: p.borrow("stranger", eth(1)), InsufficientCollateral),
        (lambda p: p.liquidate("stranger", "nobody"), LoanNotLiquidatable),
    ])
    def test_rejected_call_registers_no_wallet(self, call, error):
        protocol = new_protocol()
        protocol.deposit("alice", eth(5))
        wallets = protocol.ledger.list_wallets()
        before = _snapshot(protocol)

        with pytest.raises(error):
            call(protocol)

        assert protocol.ledger.list_wallets() == wallets
        assert _snapshot(protocol) == before

    def test_first_successful_call_registers_wallet(self):
        protocol = new_protocol()
        protocol.mint("newcomer", "ETH", eth(2))
        protocol.deposit_collateral("newcomer", eth(2))
        assert protocol.ledger.is_registered("newcomer")
        assert protocol.get_loan_details("newcomer").collateral_amount == eth(2)
