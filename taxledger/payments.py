"""
payments.py - Value-Transfer Collaborator

The ledger never moves money itself. Payouts go through a Transfer: any
callable taking (recipient, amount) that either completes or raises. A raise
means the payout did not happen, and the ledger rolls back the mutation that
requested it.

The ledger guard is held while a Transfer runs. A Transfer may read the
ledger from its own thread, but any other thread that reads the ledger waits
until the Transfer returns. A Transfer must therefore never block on another
thread that reads the ledger (for example by handing the payout to a worker
and joining it); that thread cannot proceed and both deadlock. Hand such
work off without waiting, or do it from a subscriber, which runs after the
guard is released.

PayoutRail is the in-memory Transfer used by default, by the demo and by the
tests. It records every payout it accepts, in order.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .core import InvalidAmount, is_int


# (recipient, amount) -> None; raises on failure. Runs under the ledger guard.
Transfer = Callable[[str, int], None]


@dataclass(frozen=True, slots=True)
class Payout:
    """A completed transfer out of the ledger."""
    recipient: str
    amount: int
    sequence_number: int

    def __repr__(self) -> str:
        return f"Payout(#{self.sequence_number} {self.amount} -> {self.recipient})"


class PayoutRail:
    """
    In-memory transfer primitive.

    Example:
        rail = PayoutRail()
        ledger = TaxLedger("main", owner="admin", transfer=rail)
        ...
        rail.total_paid("alice")
    """

    def __init__(self):
        self.payouts: List[Payout] = []

    def __call__(self, recipient: str, amount: int) -> None:
        if not recipient or not recipient.strip():
            raise ValueError("Payout recipient cannot be empty")
        if not is_int(amount) or amount <= 0:
            raise InvalidAmount(f"Payout amount must be a positive integer, got {amount!r}")
        self.payouts.append(Payout(recipient, amount, len(self.payouts)))

    def total_paid(self, recipient: Optional[str] = None) -> int:
        """Sum of payouts, optionally restricted to one recipient."""
        return sum(
            p.amount for p in self.payouts
            if recipient is None or p.recipient == recipient
        )

    def by_recipient(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for p in self.payouts:
            totals[p.recipient] = totals.get(p.recipient, 0) + p.amount
        return totals
