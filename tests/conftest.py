"""
conftest.py - Shared pytest fixtures for taxledger tests

Provides common fixtures used across unit, functional and conformance tests:
- A fresh in-memory payout rail
- A quiet ledger paying through that rail
- A ledger with one pending transaction
"""

import pytest

from taxledger import PayoutRail

from tests.helpers import make_ledger


@pytest.fixture
def rail():
    """Fresh in-memory payout rail."""
    return PayoutRail()


@pytest.fixture
def ledger(rail):
    """Quiet ledger owned by 'admin' starting at T0, paying through `rail`."""
    return make_ledger(rail)


@pytest.fixture
def pending(ledger):
    """Ledger with alice's 1000 escrowed (exact deposit). Returns (ledger, tx_id)."""
    tx_id = ledger.schedule("alice", 1000, 1000, "rent")
    return ledger, tx_id
