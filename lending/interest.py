"""
interest.py - Single-Step Interest Compounding

Pure functions: no pool, no port, all inputs explicit.

=== ACCRUAL RULE ===

One compounding step adds simple interest on the current balance:

    interest    = round(rate * balance)        (whole ledger units)
    new_balance = balance + interest

Rounding is ROUND_HALF_EVEN under the package's pinned Decimal context, so
the same inputs give the same integer on every run. No floats are involved.

A tick applies exactly one step to every open position, however many ticks
the position has been open. compound_periods() repeats the step for
projections; it is never called by tick().

Example:
    balance 100 @ 1%  -> 101 after one step
    balance 101 @ 1%  -> 102 after the next (1.01 rounds to 1)
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal

from .core import Amount, Position, INTEREST_ROUNDING


def accrued_interest(balance: Amount, rate: Decimal) -> Amount:
    """
    Interest for one step on balance at rate, quantized to whole units.

    Args:
        balance: Non-negative integer balance
        rate: Fraction in [0, 1]

    Returns:
        Non-negative integer interest
    """
    if balance <= 0 or rate <= 0:
        return 0
    raw = Decimal(balance) * rate
    return int(raw.to_integral_value(rounding=INTEREST_ROUNDING))


def compound(position: Position) -> Position:
    """
    Apply one compounding step to a position.

    Direction, rate, opened_at and reserved are unchanged.
    """
    interest = accrued_interest(position.balance, position.interest_rate)
    if interest == 0:
        return position
    return replace(position, balance=position.balance + interest)


def compound_periods(position: Position, periods: int) -> Position:
    """
    Apply compound() `periods` times in a row.

    Args:
        position: Starting position
        periods: Number of steps (0 returns the position unchanged)

    Raises:
        ValueError: If periods is negative
    """
    if periods < 0:
        raise ValueError(f"periods cannot be negative, got {periods}")
    for _ in range(periods):
        position = compound(position)
    return position


def project_balance(balance: Amount, rate: Decimal, ticks: int) -> Amount:
    """Balance after `ticks` single-step compoundings of `balance` at `rate`."""
    if ticks < 0:
        raise ValueError(f"ticks cannot be negative, got {ticks}")
    for _ in range(ticks):
        balance += accrued_interest(balance, rate)
    return balance
