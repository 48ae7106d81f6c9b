"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit, functional and conformance tests:
- Bare token ledgers
- Protocols with a funded stable reserve and funded participants
- Amount and accounting helpers
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from lending import (
    Ledger, LendingProtocol, token, to_base_units,
)


START = datetime(2025, 1, 1)
RESERVE = to_base_units(500_000)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def eth(amount) -> int:
    """Whole or fractional tokens (str / int) to 18-decimal base units."""
    return to_base_units(amount)


dai = eth


def make_protocol(**balances) -> LendingProtocol:
    """
    Protocol at START with a 500k stable reserve and the given ETH balances.

    Example:
        make_protocol(lender=eth(10), borrower=eth("1.5"))
    """
    protocol = LendingProtocol("test", initial_time=START, verbose=False)
    protocol.fund_stable_reserve(RESERVE)
    for address, amount in balances.items():
        protocol.mint(address, "ETH", amount)
    return protocol


def assert_accounting(protocol: LendingProtocol) -> None:
    """Fail with the discrepancy list if the pool's books do not balance."""
    result = protocol.verify_accounting()
    assert result['valid'], result['discrepancies']


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Ledger with ETH and DAI registered and no wallets."""
    ledger = Ledger("test", START, verbose=False, test_mode=True)
    ledger.register_unit(token("ETH", "Ether"))
    ledger.register_unit(token("DAI", "Dai Stablecoin"))
    return ledger


@pytest.fixture
def funded_ledger(empty_ledger):
    """Ledger with alice and bob holding 100 ETH each via set_balance."""
    for wallet in ("alice", "bob"):
        empty_ledger.register_wallet(wallet)
        empty_ledger.set_balance(wallet, "ETH", Decimal(eth(100)))
    return empty_ledger


@pytest.fixture
def protocol():
    """Protocol with a funded reserve, lender (10 ETH) and borrower (1.5 ETH)."""
    return make_protocol(lender=eth(10), borrower=eth("1.5"))


@pytest.fixture
def active_loan(protocol):
    """The protocol fixture after: 10 ETH deposit, 1.5 collateral, 1.0 DAI borrowed."""
    protocol.deposit("lender", eth(10))
    protocol.deposit_collateral("borrower", eth("1.5"))
    protocol.borrow("borrower", dai(1))
    return protocol


@pytest.fixture
def overdue(active_loan):
    """The active_loan fixture 31 days later."""
    active_loan.advance_time(START + timedelta(days=31))
    return active_loan
