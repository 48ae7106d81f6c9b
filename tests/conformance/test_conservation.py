"""
Conservation Law Conformance Tests

INVARIANTS, after every operation in any sequence:

    total_liquidity = deposited - withdrawn - interest paid
                      - disbursed + skimmed + seized
    sum(lender principals) = deposited - withdrawn
    pool custody = total_liquidity + disbursed
    escrow = sum(posted collateral)
    sum over wallets of each token = 0   (issuance nets against the system wallet)

Repaid principal flows back to the stable reserve and is never added to
total_liquidity.
"""

from hypothesis import given, settings, note

from lending import STABLE_RESERVE_WALLET
from tests.conformance.operations import (
    operation_sequence, new_protocol, apply_operation, LENDERS, BORROWERS, STARTING_ETH,
)
from tests.conftest import RESERVE


class TestConservationProperties:
    """Property-based tests for the pool's books."""

    @given(operation_sequence)
    @settings(max_examples=150, deadline=None)
    def test_books_balance_after_every_operation(self, ops):
        """
        PROPERTY: verify_accounting() holds after every operation.
        """
        protocol = new_protocol()
        for op in ops:
            error = apply_operation(protocol, op)
            note(f"{op} -> {error!r}")
            result = protocol.verify_accounting()
            assert result['valid'], result['discrepancies']

    @given(operation_sequence)
    @settings(max_examples=100, deadline=None)
    def test_base_asset_never_created(self, ops):
        """
        PROPERTY: ETH held by participants and protocol wallets always sums
        to what was minted.
        """
        protocol = new_protocol()
        for op in ops:
            apply_operation(protocol, op)
        minted = STARTING_ETH * len(LENDERS + BORROWERS)
        total = sum(
            int(balance) for wallet, balance in protocol.ledger.get_positions("ETH").items()
            if wallet != "system"
        )
        assert total == minted

    @given(operation_sequence)
    @settings(max_examples=100, deadline=None)
    def test_stable_asset_outstanding_matches_open_loans(self, ops):
        """
        PROPERTY: Stable asset outside the reserve equals principal of loans
        that were disbursed and never repaid (liquidated loans keep theirs).
        """
        protocol = new_protocol()
        for op in ops:
            apply_operation(protocol, op)
        pool = protocol.get_pool_details()
        outstanding = RESERVE - protocol.balance_of(STABLE_RESERVE_WALLET, "DAI")
        held = sum(protocol.balance_of(b, "DAI") for b in BORROWERS)
        assert outstanding == held
        assert outstanding <= pool.total_disbursed
