"""
tax_engine.py - Procrastination Tax Computation

Pure functions that price the delay on a scheduled transaction. Nothing here
touches ledger storage; every function takes a record snapshot (or plain
integers) and the current time, and returns an integer.

Formula:
    days = floor((now - created_at) / 1 day)
    rate = 0                                      if days == 0  (grace period)
    rate = min(base * days * isqrt(days), cap)    otherwise     (~ base * days^1.5)
    tax  = floor(amount * rate / 10000)

Integer arithmetic only. The result must be bit-for-bit reproducible by any
other implementation of the same formula, so floats are never involved.
"""

from __future__ import annotations
from datetime import datetime, timedelta

from .core import BASIS_POINTS, MAX_TAX_RATE, SECONDS_PER_DAY, ScheduledTransaction


ONE_DAY = timedelta(seconds=SECONDS_PER_DAY)


def isqrt(x: int) -> int:
    """
    Integer square root: the largest r with r*r <= x.

    Babylonian (Newton) iteration starting above the root. The sequence is
    strictly decreasing until it reaches floor(sqrt(x)), at which point the
    next estimate stops decreasing and the loop exits.

    Raises:
        ValueError: If x is negative.
    """
    if x < 0:
        raise ValueError(f"isqrt of negative number: {x}")
    if x == 0:
        return 0
    y = x
    z = (x + 1) // 2
    while z < y:
        y = z
        z = (x // z + z) // 2
    return y


def days_elapsed(created_at: datetime, now: datetime) -> int:
    """Whole days between created_at and now. Zero if now is not after created_at."""
    if now <= created_at:
        return 0
    return (now - created_at) // ONE_DAY


def tax_rate(base_rate: int, days: int, max_rate: int = MAX_TAX_RATE) -> int:
    """
    Accrued rate in basis points after `days` whole days.

    Same-day execution is free. Afterwards the rate grows as
    base * days * isqrt(days) and saturates at max_rate.
    """
    if days <= 0:
        return 0
    rate = base_rate * days * isqrt(days)
    return min(rate, max_rate)


def current_tax_rate(
    record: ScheduledTransaction,
    now: datetime,
    max_rate: int = MAX_TAX_RATE,
) -> int:
    """Capped rate for a record at `now`; 0 once the record is terminal."""
    if record.executed:
        return 0
    return tax_rate(record.base_tax_rate, days_elapsed(record.created_at, now), max_rate)


def compute_tax(
    record: ScheduledTransaction,
    now: datetime,
    max_rate: int = MAX_TAX_RATE,
) -> int:
    """
    Tax owed if `record` were executed at `now`.

    Returns 0 for executed records and zero amounts. Safe to call from any
    number of readers concurrently.

    Example:
        # 1000 escrowed, base 100bp, executed two days later:
        # days=2, isqrt(2)=1, rate=100*2*1=200bp, tax=1000*200//10000=20
        compute_tax(record, record.created_at + timedelta(days=2))  # -> 20
    """
    if record.executed or record.amount == 0:
        return 0
    rate = current_tax_rate(record, now, max_rate)
    return record.amount * rate // BASIS_POINTS
