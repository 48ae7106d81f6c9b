"""
keeper.py - Liquidation Keeper

Drives the protocol clock forward and liquidates every position that has
become eligible. Each step():

1. Advance protocol time
2. Scan loan units in borrower order
3. Liquidate each eligible loan under the keeper's address

The scan and the liquidations run under the protocol lock, so no other
caller can change a position between being found and being liquidated.
"""

from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from .core import OriginType
from .events import Liquidated
from .protocol import LendingProtocol


class LiquidationKeeper:
    """
    Automatic liquidator for a LendingProtocol.

    Liquidations are recorded with OriginType.KEEPER and the keeper's
    address as liquidator.
    """

    def __init__(
        self,
        protocol: LendingProtocol,
        liquidator: str = "keeper",
        verbose: Optional[bool] = None,
    ):
        self.protocol = protocol
        self.liquidator = liquidator
        self.verbose = protocol.verbose if verbose is None else verbose

    def step(self, timestamp: datetime) -> List[Liquidated]:
        """
        Advance time to `timestamp` and liquidate everything eligible.

        Returns:
            The Liquidated events emitted, in borrower order
        """
        liquidated: List[Liquidated] = []
        with self.protocol.lock:
            self.protocol.advance_time(timestamp)
            for position in self.protocol.find_liquidatable_positions():
                if self.verbose:
                    reason = "overdue" if position.is_overdue else f"ratio {position.collateral_ratio}%"
                    print(f"[KEEPER] liquidating {position.borrower} ({reason})")
                liquidated.append(self.protocol.liquidate(
                    self.liquidator, position.borrower, origin_type=OriginType.KEEPER
                ))
        return liquidated

    def run(self, timestamps: List[datetime]) -> List[Liquidated]:
        """Run step() over a sequence of timestamps."""
        events: List[Liquidated] = []
        for timestamp in timestamps:
            events.extend(self.step(timestamp))
        return events
