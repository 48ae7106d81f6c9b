#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lending Pool Step by Step

This is a pedagogical demonstration of how the collateralized lending pool
works on top of the double-entry ledger. Each step builds on the previous
one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Lenders      - The empty pool, deposits, interest previews
  4-6:  Borrowers    - Collateral, borrowing limits, rejected requests
  7-8:  Settlement   - Repayment, the collateral skim, interest withdrawal
  9-10: Liquidation  - Overdue loans, the keeper, the accounting proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from lending import (
    LendingProtocol, LiquidationKeeper, LendingError,
    to_base_units, from_base_units,
    POOL_WALLET, ESCROW_WALLET, STABLE_RESERVE_WALLET,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    verbose: bool = True

    # Initial funding (whole tokens)
    stable_reserve: int = 500_000
    alice_eth: str = "6"
    bob_eth: str = "4"
    carol_eth: str = "3"
    dave_eth: str = "1.5"

    # Loans
    carol_collateral: str = "3"
    carol_borrow: str = "2"
    dave_collateral: str = "1.5"
    dave_borrow: str = "1"


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def fmt(amount: int) -> str:
    return f"{from_base_units(amount):,.4f}"


def show_pool(protocol: LendingProtocol):
    pool = protocol.get_pool_details()
    print(f"Total liquidity:   {fmt(pool.total_liquidity)} ETH")
    print(f"Interest earned:   {fmt(pool.total_interest_earned)} ETH")
    print(f"Active loans:      {pool.active_loan_count}")
    print(f"Pool custody:      {fmt(protocol.balance_of(POOL_WALLET, 'ETH'))} ETH")
    print(f"Collateral escrow: {fmt(protocol.balance_of(ESCROW_WALLET, 'ETH'))} ETH")


# ============================================================================
# PHASE 1: LENDERS (Steps 1-3)
# ============================================================================

def step_01_empty_pool():
    """Create the protocol and fund the participants."""
    step_header(1, "The Empty Pool",
        "See what a fresh protocol registers before anyone acts.")

    print("""
    The protocol owns three things on its ledger:

    1. TOKENS - ETH (the base asset) and DAI (the stable asset)
    2. POOL   - A single unit whose state tracks lenders and totals
    3. VAULTS - Custody, collateral escrow and the stable reserve wallets

    Users get tokens from the faucet (mint), which debits the system wallet.
    """)

    protocol = LendingProtocol("tutorial", initial_time=CONFIG.start_time, verbose=CONFIG.verbose)
    protocol.fund_stable_reserve(to_base_units(CONFIG.stable_reserve))
    for name, amount in (("alice", CONFIG.alice_eth), ("bob", CONFIG.bob_eth),
                         ("carol", CONFIG.carol_eth), ("dave", CONFIG.dave_eth)):
        protocol.mint(name, "ETH", to_base_units(amount))

    section_header("Initial State")
    show_pool(protocol)
    print(f"Stable reserve:    {fmt(protocol.balance_of(STABLE_RESERVE_WALLET, 'DAI'))} DAI")
    print(f"Units registered:  {protocol.ledger.list_units()}")
    return protocol


def step_02_lender_deposits(protocol: LendingProtocol):
    """Two lenders supply the pool."""
    step_header(2, "Lender Deposits",
        "Deposits move ETH into custody and credit the lender's principal.")

    alice = protocol.deposit("alice", to_base_units(CONFIG.alice_eth))
    bob = protocol.deposit("bob", to_base_units(CONFIG.bob_eth))
    print(f"Events: {alice}")
    print(f"        {bob}")

    section_header("Pool After Deposits")
    show_pool(protocol)
    for lender in ("alice", "bob"):
        account = protocol.get_lender_details(lender)
        print(f"{lender:6s} principal: {fmt(account.principal)} ETH")
    return protocol


def step_03_interest_preview(protocol: LendingProtocol):
    """Nothing has been earned yet, so previews are empty."""
    step_header(3, "Interest Preview",
        "Lenders share interest pro rata to principal at withdrawal time.")

    print(f"Allocation now: {protocol.preview_interest_allocation()}")
    print("No loan has been repaid, so there is nothing to share yet.")
    return protocol


# ============================================================================
# PHASE 2: BORROWERS (Steps 4-6)
# ============================================================================

def step_04_post_collateral(protocol: LendingProtocol):
    """Borrowers lock ETH in escrow."""
    step_header(4, "Posting Collateral",
        "Collateral sits in escrow and caps how much DAI can be drawn.")

    protocol.deposit_collateral("carol", to_base_units(CONFIG.carol_collateral))
    protocol.deposit_collateral("dave", to_base_units(CONFIG.dave_collateral))

    for borrower in ("carol", "dave"):
        print(f"{borrower:6s} status={protocol.get_loan_status(borrower).value:18s} "
              f"can borrow {fmt(protocol.get_available_borrow_amount(borrower))} DAI")
    return protocol


def step_05_rejected_borrow(protocol: LendingProtocol):
    """Over-borrowing is refused and nothing changes."""
    step_header(5, "A Rejected Borrow",
        "Understand that a failed request leaves every balance untouched.")

    before = protocol.balance_of("carol", "DAI")
    try:
        protocol.borrow("carol", to_base_units(CONFIG.carol_collateral))
    except LendingError as exc:
        print(f"Rejected: {type(exc).__name__}: {exc}")
    print(f"carol DAI before={fmt(before)} after={fmt(protocol.balance_of('carol', 'DAI'))}")
    return protocol


def step_06_borrow(protocol: LendingProtocol):
    """Both borrowers draw DAI."""
    step_header(6, "Borrowing",
        "A loan fixes principal, flat interest and a due time.")

    for borrower, amount in (("carol", CONFIG.carol_borrow), ("dave", CONFIG.dave_borrow)):
        event = protocol.borrow(borrower, to_base_units(amount))
        print(f"{borrower:6s} borrowed {fmt(event.principal)} DAI, interest quoted "
              f"{fmt(event.interest)}, due {event.due_time:%Y-%m-%d}")
        print(f"       collateral ratio {protocol.get_collateral_ratio(borrower)}%")

    section_header("Pool With Two Loans")
    show_pool(protocol)
    return protocol


# ============================================================================
# PHASE 3: SETTLEMENT (Steps 7-8)
# ============================================================================

def step_07_repay(protocol: LendingProtocol):
    """Carol repays and the pool keeps a slice of her collateral."""
    step_header(7, "Repayment",
        "Repaying returns the DAI and releases collateral minus the skim.")

    protocol.advance_time(CONFIG.start_time + timedelta(days=10))
    due = protocol.calculate_repayment_amount("carol")
    print(f"carol owes {fmt(due)} DAI (principal + quoted interest)")

    protocol.mint("carol", "DAI", due - protocol.balance_of("carol", "DAI"))
    eth_before = protocol.balance_of("carol", "ETH")
    protocol.repay_loan("carol", due)
    returned = protocol.balance_of("carol", "ETH") - eth_before
    print(f"carol got back {fmt(returned)} ETH of {CONFIG.carol_collateral} posted")
    print(f"status: {protocol.get_loan_status('carol').value}")

    section_header("Pool After Repayment")
    show_pool(protocol)
    return protocol


def step_08_withdraw_interest(protocol: LendingProtocol):
    """Alice exits with her principal and share of the skim."""
    step_header(8, "Withdrawing With Interest",
        "The earned skim is split 60/40 by principal.")

    print(f"Allocation now: {protocol.preview_interest_allocation()}")
    quote = protocol.quote_withdrawal("alice")
    print(f"alice would receive {fmt(quote.principal)} + {fmt(quote.interest)} ETH")

    event = protocol.withdraw("alice")
    print(f"alice withdrew {fmt(event.amount)} ETH")
    show_pool(protocol)
    return protocol


# ============================================================================
# PHASE 4: LIQUIDATION (Steps 9-10)
# ============================================================================

def step_09_keeper(protocol: LendingProtocol):
    """Dave misses his due date and the keeper steps in."""
    step_header(9, "Overdue Loans and the Keeper",
        "Anyone may liquidate a loan past due; the keeper does it on a schedule.")

    keeper = LiquidationKeeper(protocol)
    for day in (20, 31):
        when = CONFIG.start_time + timedelta(days=day)
        protocol.advance_time(when)
        risk = protocol.assess_position("dave")
        print(f"day {day}: dave risk={risk.risk_level} liquidatable={risk.is_liquidatable}")
        events = keeper.step(when)
        for event in events:
            print(f"       seized {fmt(event.collateral_amount)} ETH by {event.liquidator}")

    print(f"dave status: {protocol.get_loan_status('dave').value}")
    show_pool(protocol)
    return protocol


def step_10_accounting(protocol: LendingProtocol):
    """Prove the books balance."""
    step_header(10, "The Accounting Proof",
        "Every pool total is reconstructable from the event history.")

    print(f"Event counts: {protocol.events.counts()}")
    protocol.withdraw("bob")
    result = protocol.verify_accounting()
    print(f"valid={result['valid']} discrepancies={result['discrepancies']}")
    print(f"Pool keeps {fmt(protocol.get_pool_balance())} ETH after every lender has left")
    return protocol


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LENDING POOL - INTERACTIVE TUTORIAL")
    print("=" * 70)
    print("""
    Press Enter to advance through each step.

    PHASES:
      1-3:  Lenders      - Pool, deposits, interest preview
      4-6:  Borrowers    - Collateral, limits, loans
      7-8:  Settlement   - Repayment and interest withdrawal
      9-10: Liquidation  - Keeper and accounting proof
    """)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    protocol = step_01_empty_pool()
    for step in (step_02_lender_deposits, step_03_interest_preview,
                 step_04_post_collateral, step_05_rejected_borrow, step_06_borrow,
                 step_07_repay, step_08_withdraw_interest,
                 step_09_keeper, step_10_accounting):
        wait_for_enter()
        protocol = step(protocol)

    print(f"\n{'='*70}")
    print("TUTORIAL COMPLETE")
    print(f"{'='*70}")


if __name__ == "__main__":
    main()
