"""
Core types and pure functions for the lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError, the accounting errors, and the lending errors
4. Type aliases: Positions, BalanceMap, UnitState
5. Token factory and base-unit conversion helpers
6. Protocol constants (collateral ratio, interest rate, loan duration)

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Context, Decimal, ROUND_DOWN, localcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, Union, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Amounts are integral base units (wei-like). Decimal only appears on Moves
# and in human-readable conversions, so the context needs enough precision
# to hold 18-decimal tokens with large supplies exactly. Decimal contexts are
# per thread, so ledger arithmetic always runs inside localcontext(LEDGER_CONTEXT).
#
LEDGER_CONTEXT = Context(prec=78)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Protocol custody wallets.
POOL_WALLET = "pool_custody"
ESCROW_WALLET = "collateral_escrow"
STABLE_RESERVE_WALLET = "stable_reserve"

PROTOCOL_WALLETS = frozenset({POOL_WALLET, ESCROW_WALLET, STABLE_RESERVE_WALLET})

# Unit type constants (strings, not enum).
UNIT_TYPE_TOKEN = "TOKEN"
UNIT_TYPE_LENDING_POOL = "LENDING_POOL"
UNIT_TYPE_COLLATERAL_LOAN = "COLLATERAL_LOAN"

# Default asset symbols: volatile base asset and stable loan asset.
BASE_ASSET = "ETH"
STABLE_ASSET = "DAI"

# Both default assets use 18 decimals.
TOKEN_DECIMALS = 18

# Protocol parameters.
COLLATERAL_RATIO = 150          # percent
INTEREST_RATE = 5               # percent, flat per loan
LOAN_DURATION = timedelta(days=30)

# Symbol of the single pool unit.
POOL_SYMBOL = "POOL"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Internal state for a unit (pool record, loan record, token metadata).
UnitState = Dict[str, Any]

# Address of a lender, borrower or liquidator.
Address = str


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Pool, loan and liquidation functions accept a LedgerView to declare that
    they only read. The Ledger class implements this protocol but also
    provides mutation methods; tests use FakeView, which cannot mutate.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Return the balance of a unit in a wallet (Decimal("0") if none)."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def has_unit(self, unit_symbol: str) -> bool:
        """Return True if a unit with this symbol is registered."""
        ...

    def list_units(self) -> List[str]:
        """Return all registered unit symbols, sorted."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (balances, registration, stale state).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Lender / borrower / liquidator call
    KEEPER = "keeper"                     # Automatic liquidation sweep
    SYSTEM = "system"                     # Issuance, initial setup


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a wallet does not hold enough of a token for a transfer."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class LendingError(LedgerError):
    """Base exception for lending protocol precondition failures."""
    pass


class InvalidAmount(LendingError):
    """Zero or negative amount."""
    pass


class InsufficientRepayment(InvalidAmount):
    """Repayment smaller than the outstanding principal."""
    pass


class NoFundsToWithdraw(LendingError):
    """Lender has no principal in the pool."""
    pass


class LoanAlreadyExists(LendingError):
    """Borrower already has an active loan."""
    pass


class NoActiveLoan(LendingError):
    """Borrower has no active loan."""
    pass


class InsufficientCollateral(LendingError):
    """Posted collateral is below the required ratio for the principal."""
    pass


class InsufficientPoolLiquidity(LendingError):
    """Pool liquidity cannot cover the requested amount."""
    pass


class InsufficientStableAssetBalanceInPool(LendingError):
    """Stable reserve cannot cover the disbursement."""
    pass


class LoanNotLiquidatable(LendingError):
    """Loan is neither overdue nor undercollateralized."""
    pass


class ActiveLoanExists(LendingError):
    """Collateral cannot be removed while a loan is active."""
    pass


class NoCollateralToRemove(LendingError):
    """Borrower has no posted collateral."""
    pass


# Short names used by front-end collaborators.
NoFundsError = NoFundsToWithdraw
NoCollateralError = NoCollateralToRemove


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: USER_ACTION, KEEPER or SYSTEM
        source_id: Address (or component name) that caused the transaction
        unit_symbol: Unit that triggered this, if any (e.g. "LOAN:alice")
        event_type: Operation name (e.g. "BORROW", "LIQUIDATE")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Before/after snapshot of one unit's state.

    old_state doubles as the optimistic-concurrency guard: the ledger refuses
    to apply the change if the unit no longer holds old_state.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Fields that differ between old and new state, as (old, new)."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old) | set(new):
            if old.get(key) != new.get(key):
                changes[key] = (old.get(key), new.get(key))
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of a token between two wallets.

    Attributes:
        quantity: Amount in base units (integral, positive Decimal).
        unit_symbol: Token being transferred (e.g. "ETH", "DAI").
        source: Wallet debited.
        dest: Wallet credited.
        contract_id: Identifier of the operation generating this move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, int) and not isinstance(self.quantity, bool):
            object.__setattr__(self, 'quantity', Decimal(self.quantity))
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal or int, got {type(self.quantity)}")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}->{self.dest})"


def _canonicalize(value: Any) -> str:
    """
    Deterministic string form of a state value for hashing.

    Independent of dict insertion order and of Decimal exponent
    (Decimal("1.0") and Decimal("1") serialize the same).
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        with localcontext(LEDGER_CONTEXT):
            return f"D:{format(value.normalize(), 'f')}"
    if isinstance(value, int):
        return f"I:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, timedelta):
        return f"P:{value.total_seconds()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(item) for item in value) + "]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = (),
) -> str:
    """
    Content hash of a transaction's intent, used for idempotency.

    Same moves, state changes and origin always give the same id. Because
    every lending operation records the pool or loan state it was computed
    against, two legitimate repeats of an operation never collide.
    """
    parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        parts.append(f"event:{origin.event_type}")
    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        parts.append(f"unit_create:{unit.symbol}|{unit.unit_type}")
    for m in sorted(moves, key=lambda m: (m.unit_symbol, m.source, m.dest, m.contract_id, m.quantity)):
        parts.append(f"move:{_canonicalize(m.quantity)}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")
    for sc in sorted(state_changes, key=lambda s: s.unit):
        parts.append(f"state_change:{sc.unit}|{_canonicalize(sc.old_state)}|{_canonicalize(sc.new_state)}")
    return hashlib.sha256("|".join(parts).encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Built by the pool, loan and liquidation compute_* functions and handed
    to Ledger.execute(), which validates and applies it atomically.

    Attributes:
        moves: Token transfers between wallets
        state_changes: Unit state changes (old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: Logical time the transaction was built at
        units_to_create: Units to register before applying (new loan records)
        intent_id: Content-addressable hash (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(self, 'intent_id', _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.units_to_create
            ))

    def is_empty(self) -> bool:
        """True if there are no moves, no state changes and no units to create."""
        return not self.moves and not self.state_changes and not self.units_to_create

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction stamped with the view's current time.

    State snapshots are deep-copied so later mutation of the caller's dicts
    cannot leak into the transaction.

    Example:
        old = view.get_unit_state(POOL_SYMBOL)
        new = {**old, 'total_liquidity': old['total_liquidity'] + amount}
        return build_transaction(
            view,
            [Move(amount, "ETH", "alice", POOL_WALLET, "deposit_alice")],
            [UnitStateChange(POOL_SYMBOL, old, new)],
        )
    """
    if origin is None:
        origin = TransactionOrigin(OriginType.USER_ACTION, "anonymous")

    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves, state_changes, origin, timestamp, intent_id: from the pending transaction
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: Ledger time when applied
        sequence_number: Monotonic sequence within the ledger
        units_to_create: Units registered by this transaction
        contract_ids: Contract IDs of the moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.units_to_create:
            raise ValueError("Transaction must have moves, state_changes, or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(self, 'contract_ids', frozenset(m.contract_id for m in self.moves))

    def __repr__(self) -> str:
        lines = [
            f"Transaction {self.exec_id}",
            f"  intent_id : {self.intent_id}",
            f"  time      : {self.execution_time}",
            f"  origin    : {self.origin}",
        ]
        for unit in self.units_to_create:
            lines.append(f"  + unit {unit.symbol} ({unit.unit_type})")
        for i, move in enumerate(self.moves):
            lines.append(f"  [{i}] {move.quantity} {move.unit_symbol}: {move.source} -> {move.dest}")
        for sc in self.state_changes:
            for field_name, (old_val, new_val) in sorted(sc.changed_fields().items()):
                lines.append(f"  {sc.unit}.{field_name}: {old_val!r} -> {new_val!r}")
        return "\n".join(lines)


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Sorted tuple of (key, value) pairs for storage on a frozen Unit."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Inverse of _freeze_state."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit registered on the ledger.

    Tokens (ETH, DAI) carry balances; the pool unit and the per-borrower loan
    units carry only state.

    Attributes:
        symbol: Identifier (e.g. "ETH", "POOL", "LOAN:alice").
        name: Human-readable name.
        unit_type: TOKEN, LENDING_POOL or COLLATERAL_LOAN.
        min_balance: Minimum balance in any non-system wallet.
        max_balance: Maximum balance in any wallet.
        decimal_places: Quantization of balances (0 = integral base units).
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = 0
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """The unit's state as a new mutable dictionary."""
        return _thaw_state(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """Quantize to decimal_places, truncating; unchanged if None."""
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(value)
        with localcontext(LEDGER_CONTEXT):
            return value.quantize(Decimal(10) ** -self.decimal_places, rounding=ROUND_DOWN)


# ============================================================================
# TOKEN FACTORY AND CONVERSIONS
# ============================================================================

def token(symbol: str, name: str, decimals: int = TOKEN_DECIMALS) -> Unit:
    """
    Create a fungible token unit whose balances are integral base units.

    Non-system wallets cannot go below zero, so every transfer out of a
    custody wallet is backed by an actual balance.

    Args:
        symbol: Token ticker (e.g. "ETH", "DAI").
        name: Full name (e.g. "Ether").
        decimals: Base units per whole token, as a power of ten (default 18).
    """
    if decimals < 0:
        raise ValueError(f"decimals cannot be negative, got {decimals}")
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        min_balance=Decimal("0"),
        decimal_places=0,
        _frozen_state=_freeze_state({'decimals': decimals}),
    )


def to_base_units(amount: Union[Decimal, int, str], decimals: int = TOKEN_DECIMALS) -> int:
    """
    Convert a human amount to integer base units, truncating sub-unit dust.

    Example:
        to_base_units("1.5") == 1_500_000_000_000_000_000
    """
    if isinstance(amount, float):
        raise TypeError("Use str or Decimal amounts, not float")
    with localcontext(LEDGER_CONTEXT):
        value = Decimal(amount) * (Decimal(10) ** decimals)
        return int(value.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(amount: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Convert integer base units to a human Decimal amount."""
    with localcontext(LEDGER_CONTEXT):
        return Decimal(amount) / (Decimal(10) ** decimals)


def wallet_balance(view: LedgerView, wallet_id: str, unit_symbol: str) -> Decimal:
    """Balance held by a wallet, or zero for a wallet the ledger has never seen."""
    if wallet_id not in view.list_wallets():
        return Decimal("0")
    return view.get_balance(wallet_id, unit_symbol)
