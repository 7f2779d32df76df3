"""
helpers.py - Test Helpers for TaxLedger

Ledger construction shortcuts, clock helpers, conservation checks and
Transfer doubles shared by the unit, functional and conformance suites.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional

from taxledger import TaxLedger, TaxConfig, PayoutRail


T0 = datetime(2025, 1, 1, 9, 30)


def make_ledger(
    rail: Optional[PayoutRail] = None,
    config: Optional[TaxConfig] = None,
    owner: str = "admin",
    transfer=None,
    name: str = "test",
) -> TaxLedger:
    """Create a quiet ledger starting at T0."""
    return TaxLedger(
        name,
        owner=owner,
        config=config,
        transfer=transfer if transfer is not None else rail,
        initial_time=T0,
        verbose=False,
    )


def later(ledger: TaxLedger, days: int = 0, seconds: int = 0) -> None:
    """Move the ledger clock forward."""
    ledger.advance_time(ledger.current_time + timedelta(days=days, seconds=seconds))


def assert_conserved(ledger: TaxLedger, rail: Optional[PayoutRail] = None) -> None:
    """Books balance, and (if given) the rail saw exactly what the ledger paid out."""
    result = ledger.verify_conservation()
    assert result['valid'], result['discrepancies']
    info = ledger.get_contract_info()
    assert info.total_balance == info.available_tax + info.user_funds
    if rail is not None:
        assert rail.total_paid() == ledger.total_paid_out
        assert ledger.total_deposited - rail.total_paid() == ledger.total_held


class FailingTransfer:
    """Transfer that always fails, like a rejected bank payment."""

    def __init__(self):
        self.attempts = 0

    def __call__(self, recipient: str, amount: int) -> None:
        self.attempts += 1
        raise RuntimeError("payment network unavailable")


class SwitchableTransfer:
    """Transfer that fails while `failing` is set and records payouts otherwise."""

    def __init__(self):
        self.rail = PayoutRail()
        self.failing = False

    def __call__(self, recipient: str, amount: int) -> None:
        if self.failing:
            raise ConnectionError("payment network unavailable")
        self.rail(recipient, amount)
