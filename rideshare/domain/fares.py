"""
Fare Allocation
===============

Formula
-------
Share = Total_Fare / Headcount

* **Headcount** = booked participants + 1 (the host always rides).
* A joiner pays ``total_fare / (headcount + 1)`` -- the headcount *after*
  they join.  The share is frozen at join time; earlier riders are not
  rebalanced, so shares need not sum to ``total_fare``.

Rounding
--------
All arithmetic is ``Decimal``; shares are rounded half-up to the
smallest currency unit (0.01).

Complexity: O(1).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CURRENCY_QUANTUM = Decimal("0.01")


def to_decimal(amount: Decimal | float | int | str) -> Decimal:
    """Convert without picking up binary float noise (0.1 -> '0.1')."""
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def headcount(booked_count: int) -> int:
    """Riders on board: booked participants plus the host."""
    return booked_count + 1


def has_seat(booked_count: int, max_passengers: int) -> bool:
    return headcount(booked_count) < max_passengers


def compute_share(
    total_fare: Decimal | float | int | str, riders: int
) -> Decimal:
    """Per-rider share of *total_fare* when *riders* people split it."""
    if riders < 1:
        raise ValueError("riders must be at least 1")
    share = to_decimal(total_fare) / Decimal(riders)
    return share.quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)
