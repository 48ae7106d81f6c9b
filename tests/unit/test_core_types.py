"""
test_core_types.py - Unit tests for core data structures

Tests:
- Move validation
- Token factory and base-unit conversions
- PendingTransaction intent ids
- UnitStateChange diffs
- Exception hierarchy
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal

from lending import (
    Move, PendingTransaction, TransactionOrigin, OriginType, UnitStateChange,
    token, to_base_units, from_base_units, UNIT_TYPE_TOKEN,
    LedgerError, LendingError, InvalidAmount, InsufficientRepayment,
    NoFundsToWithdraw, NoFundsError, NoCollateralToRemove, NoCollateralError,
    InsufficientFunds, LoanAlreadyExists, NoActiveLoan, InsufficientCollateral,
    InsufficientPoolLiquidity, InsufficientStableAssetBalanceInPool,
    LoanNotLiquidatable, ActiveLoanExists,
)


class TestMove:
    """Tests for Move validation."""

    def test_int_quantity_becomes_decimal(self):
        move = Move(5, "ETH", "alice", "bob", "c1")
        assert move.quantity == Decimal(5)
        assert isinstance(move.quantity, Decimal)

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            Move(Decimal(0), "ETH", "alice", "bob", "c1")

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            Move(Decimal(-1), "ETH", "alice", "bob", "c1")

    def test_same_source_and_dest_rejected(self):
        with pytest.raises(ValueError, match="different"):
            Move(Decimal(1), "ETH", "alice", "alice", "c1")

    def test_empty_fields_rejected(self):
        with pytest.raises(ValueError):
            Move(Decimal(1), "", "alice", "bob", "c1")
        with pytest.raises(ValueError):
            Move(Decimal(1), "ETH", " ", "bob", "c1")
        with pytest.raises(ValueError):
            Move(Decimal(1), "ETH", "alice", "bob", "")

    def test_float_quantity_rejected(self):
        with pytest.raises(ValueError, match="Decimal or int"):
            Move(1.5, "ETH", "alice", "bob", "c1")

    def test_infinite_quantity_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            Move(Decimal("Infinity"), "ETH", "alice", "bob", "c1")


class TestTokens:
    """Tests for token() and amount conversions."""

    def test_token_is_integral_and_non_negative(self):
        unit = token("ETH", "Ether")
        assert unit.unit_type == UNIT_TYPE_TOKEN
        assert unit.decimal_places == 0
        assert unit.min_balance == Decimal(0)
        assert unit.state == {'decimals': 18}

    def test_token_negative_decimals_rejected(self):
        with pytest.raises(ValueError):
            token("ETH", "Ether", decimals=-1)

    def test_to_base_units(self):
        assert to_base_units(1) == 10**18
        assert to_base_units("1.5") == 1_500_000_000_000_000_000
        assert to_base_units(Decimal("0.000000000000000001")) == 1

    def test_to_base_units_truncates_dust(self):
        assert to_base_units("0.0000000000000000019") == 1

    def test_to_base_units_rejects_float(self):
        with pytest.raises(TypeError):
            to_base_units(1.5)

    def test_from_base_units(self):
        assert from_base_units(1_500_000_000_000_000_000) == Decimal("1.5")
        assert from_base_units(250, decimals=2) == Decimal("2.5")

    def test_conversions_exact_on_worker_thread(self):
        huge = 10**40 + 1
        with ThreadPoolExecutor(max_workers=1) as pool:
            human = pool.submit(from_base_units, huge).result()
            back = pool.submit(to_base_units, human).result()
        assert back == huge


class TestPendingTransaction:
    """Tests for intent ids."""

    def _pending(self, quantity=1, old=None, new=None):
        origin = TransactionOrigin(OriginType.USER_ACTION, "alice", "POOL", "DEPOSIT")
        changes = ()
        if old is not None:
            changes = (UnitStateChange("POOL", old, new),)
        return PendingTransaction(
            moves=(Move(quantity, "ETH", "alice", "pool_custody", "deposit:alice"),),
            state_changes=changes,
            origin=origin,
            timestamp=datetime(2025, 1, 1),
        )

    def test_same_content_same_intent_id(self):
        assert self._pending().intent_id == self._pending().intent_id

    def test_different_quantity_different_intent_id(self):
        assert self._pending(1).intent_id != self._pending(2).intent_id

    def test_large_quantities_distinct_on_worker_thread(self):
        with ThreadPoolExecutor(max_workers=1) as pool:
            a, b = pool.map(lambda q: self._pending(q).intent_id, [10**29 + 1, 10**29 + 2])
        assert a != b

    def test_state_change_affects_intent_id(self):
        a = self._pending(old={'total_liquidity': 0}, new={'total_liquidity': 1})
        b = self._pending(old={'total_liquidity': 1}, new={'total_liquidity': 2})
        assert a.intent_id != b.intent_id

    def test_dict_order_does_not_affect_intent_id(self):
        a = self._pending(old={'a': 1, 'b': 2}, new={'a': 2, 'b': 2})
        b = self._pending(old={'b': 2, 'a': 1}, new={'b': 2, 'a': 2})
        assert a.intent_id == b.intent_id

    def test_is_empty(self):
        empty = PendingTransaction((), (), TransactionOrigin(OriginType.SYSTEM, "x"), datetime(2025, 1, 1))
        assert empty.is_empty()
        assert not self._pending().is_empty()


class TestUnitStateChange:

    def test_changed_fields(self):
        sc = UnitStateChange("POOL", {'a': 1, 'b': 2}, {'a': 1, 'b': 3, 'c': 4})
        assert sc.changed_fields() == {'b': (2, 3), 'c': (None, 4)}


class TestExceptionHierarchy:
    """All lending failures are LendingErrors, which are LedgerErrors."""

    @pytest.mark.parametrize("exc", [
        InvalidAmount, InsufficientRepayment, NoFundsToWithdraw, LoanAlreadyExists,
        NoActiveLoan, InsufficientCollateral, InsufficientPoolLiquidity,
        InsufficientStableAssetBalanceInPool, LoanNotLiquidatable,
        ActiveLoanExists, NoCollateralToRemove,
    ])
    def test_lending_errors(self, exc):
        assert issubclass(exc, LendingError)
        assert issubclass(exc, LedgerError)

    def test_insufficient_repayment_is_invalid_amount(self):
        assert issubclass(InsufficientRepayment, InvalidAmount)

    def test_insufficient_funds_is_engine_error(self):
        assert issubclass(InsufficientFunds, LedgerError)
        assert not issubclass(InsufficientFunds, LendingError)

    def test_aliases(self):
        assert NoFundsError is NoFundsToWithdraw
        assert NoCollateralError is NoCollateralToRemove
