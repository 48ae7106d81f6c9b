"""
interest.py - Interest Calculation and Distribution

Two interest figures exist side by side:

    interest_due   = principal * rate // 100    quoted to the borrower at issuance
    collateral skim = collateral * rate // 100   what lenders actually earn

The skim is taken out of the borrower's collateral when the loan is repaid and
credited to the pool's total_interest_earned. It is not assigned to lenders
at that moment. A lender's share is worked out only when they withdraw:

    share = total_interest_earned * lender_principal // sum(all principals)

so anyone holding principal at withdrawal time shares in interest earned before
they joined, and the truncated remainder stays in the pool as dust.

All functions here are pure integer arithmetic on base units.
"""

from __future__ import annotations
from typing import Dict, Mapping

from .core import INTEREST_RATE


def calculate_interest_due(principal: int, interest_rate: int = INTEREST_RATE) -> int:
    """Flat interest quoted on a loan of `principal` base units."""
    if principal < 0:
        raise ValueError(f"principal cannot be negative, got {principal}")
    return principal * interest_rate // 100


def calculate_collateral_skim(collateral_amount: int, interest_rate: int = INTEREST_RATE) -> int:
    """Portion of posted collateral kept by the pool when a loan is repaid."""
    if collateral_amount < 0:
        raise ValueError(f"collateral_amount cannot be negative, got {collateral_amount}")
    return collateral_amount * interest_rate // 100


def calculate_interest_share(
    total_interest_earned: int,
    lender_principal: int,
    total_principal: int,
) -> int:
    """
    A lender's pro-rata claim on the interest earned so far.

    Truncates toward zero. Returns 0 when nobody holds principal, so a
    withdrawal never divides by zero.
    """
    if total_principal <= 0 or lender_principal <= 0 or total_interest_earned <= 0:
        return 0
    if lender_principal > total_principal:
        raise ValueError(
            f"lender principal {lender_principal} exceeds total principal {total_principal}"
        )
    return total_interest_earned * lender_principal // total_principal


def preview_interest_allocation(
    lenders: Mapping[str, int],
    total_interest_earned: int,
) -> Dict[str, int]:
    """
    Each lender's current interest claim if they withdrew right now.

    Read-only; nothing is reserved. Lenders with zero principal are omitted.
    The claims sum to at most total_interest_earned; the difference is dust
    that no single withdrawal can reach.

    Example:
        preview_interest_allocation({"alice": 6, "bob": 4}, 100)
        # {"alice": 60, "bob": 40}
    """
    total_principal = sum(lenders.values())
    return {
        address: calculate_interest_share(total_interest_earned, principal, total_principal)
        for address, principal in sorted(lenders.items())
        if principal > 0
    }
