"""
events.py - Domain Events and Notification Feed

Every successful mutation of the lending protocol emits exactly one event,
published after the underlying transaction has been applied. Events are
plain frozen records; subscribers are plain callables.

Core concepts:
1. Event records: LenderDeposit, LenderWithdraw, CollateralDeposited,
   CollateralRemoved, LoanIssued, LoanRepaid, Liquidated
2. EventFeed: ordered history plus name-filtered subscriptions
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple, Union


# ============================================================================
# EVENT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class LenderDeposit:
    lender: str
    amount: int
    timestamp: datetime
    exec_id: str = ""

    @property
    def parties(self) -> Tuple[str, ...]:
        return (self.lender,)


@dataclass(frozen=True, slots=True)
class LenderWithdraw:
    """amount = principal + interest."""
    lender: str
    amount: int
    principal: int
    interest: int
    timestamp: datetime
    exec_id: str = ""

    @property
    def parties(self) -> Tuple[str, ...]:
        return (self.lender,)


@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    borrower: str
    amount: int
    timestamp: datetime
    exec_id: str = ""

    @property
    def parties(self) -> Tuple[str, ...]:
        return (self.borrower,)


@dataclass(frozen=True, slots=True)
class CollateralRemoved:
    borrower: str
    amount: int
    timestamp: datetime
    exec_id: str = ""

    @property
    def parties(self) -> Tuple[str, ...]:
        return (self.borrower,)


@dataclass(frozen=True, slots=True)
class LoanIssued:
    borrower: str
    principal: int
    interest: int
    due_time: datetime
    timestamp: datetime
    exec_id: str = ""

    @property
    def parties(self) -> Tuple[str, ...]:
        return (self.borrower,)


@dataclass(frozen=True, slots=True)
class LoanRepaid:
    borrower: str
    principal: int
    timestamp: datetime
    exec_id: str = ""

    @property
    def parties(self) -> Tuple[str, ...]:
        return (self.borrower,)


@dataclass(frozen=True, slots=True)
class Liquidated:
    borrower: str
    collateral_amount: int
    liquidator: str
    timestamp: datetime
    exec_id: str = ""

    @property
    def parties(self) -> Tuple[str, ...]:
        return (self.borrower, self.liquidator)


LendingEvent = Union[
    LenderDeposit, LenderWithdraw, CollateralDeposited, CollateralRemoved,
    LoanIssued, LoanRepaid, Liquidated,
]

EVENT_TYPES = {
    cls.__name__: cls
    for cls in (LenderDeposit, LenderWithdraw, CollateralDeposited, CollateralRemoved,
                LoanIssued, LoanRepaid, Liquidated)
}

# Subscriber: called with the event after commit.
EventSubscriber = Callable[[LendingEvent], None]


def event_name(event: LendingEvent) -> str:
    return type(event).__name__


# ============================================================================
# EVENT FEED
# ============================================================================

class EventFeed:
    """
    Append-only event history with synchronous subscribers.

    Subscribers run in subscription order on the publishing thread. An
    exception from a subscriber propagates to the caller of publish(); the
    event is already recorded in the history by then.
    """

    def __init__(self):
        self._history: List[LendingEvent] = []
        self._subscribers: List[Tuple[Optional[str], EventSubscriber]] = []

    def subscribe(self, subscriber: EventSubscriber, name: Optional[str] = None) -> Callable[[], None]:
        """
        Register a subscriber for all events, or only events called `name`.

        Returns a function that removes the subscription.
        """
        if name is not None and name not in EVENT_TYPES:
            raise ValueError(f"Unknown event name: {name}")
        entry = (name, subscriber)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def publish(self, event: LendingEvent) -> None:
        self._history.append(event)
        name = event_name(event)
        for wanted, subscriber in list(self._subscribers):
            if wanted is None or wanted == name:
                subscriber(event)

    def history(self, address: Optional[str] = None, name: Optional[str] = None) -> List[LendingEvent]:
        """Past events, oldest first, optionally filtered by party address and event name."""
        return [
            event for event in self._history
            if (address is None or address in event.parties)
            and (name is None or event_name(event) == name)
        ]

    def counts(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for event in self._history:
            name = event_name(event)
            totals[name] = totals.get(name, 0) + 1
        return totals

    def __len__(self) -> int:
        return len(self._history)
