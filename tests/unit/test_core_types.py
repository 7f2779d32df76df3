"""
test_core_types.py - Unit tests for core data types

Tests:
- TaxConfig validation
- ScheduledTransaction validation and immutability
- Transaction id derivation
- LedgerEvent and TransactionDetails helpers
- Exception hierarchy
"""

import pytest
from dataclasses import FrozenInstanceError, replace
from datetime import datetime

from taxledger import (
    TaxConfig, ScheduledTransaction, TransactionDetails, LedgerInfo,
    LedgerEvent, EventType, compute_transaction_id,
    LedgerError, InputError, InvalidAmount, InsufficientDeposit,
    NotAuthorized, TransactionNotFound, AlreadyExecuted, NoBalance,
    TaxExceedsPrincipal, TransferFailed, ReentrantCall, ObserverError,
    DEFAULT_BASE_TAX_RATE, MAX_TAX_RATE, is_int,
)


T0 = datetime(2025, 1, 1)


def _record(**overrides):
    fields = dict(
        tx_id="abc123",
        owner="alice",
        amount=1000,
        created_at=T0,
        base_tax_rate=100,
        sequence_number=0,
    )
    fields.update(overrides)
    return ScheduledTransaction(**fields)


class TestTaxConfig:
    """Tests for TaxConfig validation."""

    def test_defaults(self):
        config = TaxConfig()
        assert config.base_tax_rate == DEFAULT_BASE_TAX_RATE == 100
        assert config.max_tax_rate == MAX_TAX_RATE == 5000
        assert config.beneficiary is None

    def test_zero_base_rate_rejected(self):
        with pytest.raises(ValueError, match="base_tax_rate"):
            TaxConfig(base_tax_rate=0)

    def test_float_base_rate_rejected(self):
        with pytest.raises(ValueError, match="base_tax_rate"):
            TaxConfig(base_tax_rate=1.5)

    def test_bool_base_rate_rejected(self):
        with pytest.raises(ValueError, match="base_tax_rate"):
            TaxConfig(base_tax_rate=True)

    def test_max_rate_must_leave_principal(self):
        with pytest.raises(ValueError, match="below 10000"):
            TaxConfig(max_tax_rate=10000)

    def test_max_rate_must_be_positive(self):
        with pytest.raises(ValueError, match="max_tax_rate"):
            TaxConfig(max_tax_rate=0)

    def test_empty_beneficiary_rejected(self):
        with pytest.raises(ValueError, match="beneficiary"):
            TaxConfig(beneficiary="  ")

    def test_immutable(self):
        config = TaxConfig()
        with pytest.raises(FrozenInstanceError):
            config.base_tax_rate = 200


class TestScheduledTransaction:
    """Tests for the transaction record."""

    def test_create_pending(self):
        record = _record(tx_type="rent")
        assert record.is_pending
        assert not record.executed
        assert not record.cancelled
        assert record.tx_type == "rent"

    @pytest.mark.parametrize("amount", [0, -1, 10.5, True])
    def test_invalid_amount_rejected(self, amount):
        with pytest.raises(ValueError, match="amount"):
            _record(amount=amount)

    def test_empty_owner_rejected(self):
        with pytest.raises(ValueError, match="owner"):
            _record(owner="")

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError, match="tx_id"):
            _record(tx_id="")

    def test_cancelled_must_be_executed(self):
        with pytest.raises(ValueError, match="cancelled"):
            _record(cancelled=True)

    def test_immutable(self):
        record = _record()
        with pytest.raises(FrozenInstanceError):
            record.executed = True

    def test_replace_produces_terminal_copy(self):
        record = _record()
        done = replace(record, executed=True)
        assert done.executed and not record.executed
        assert done.tx_id == record.tx_id

    def test_repr_shows_status(self):
        assert "pending" in repr(_record())
        assert "executed" in repr(_record(executed=True))
        assert "cancelled" in repr(_record(executed=True, cancelled=True))


class TestTransactionId:
    """Tests for content-derived transaction ids."""

    def test_deterministic(self):
        a = compute_transaction_id("main", "alice", 100, T0, 0)
        b = compute_transaction_id("main", "alice", 100, T0, 0)
        assert a == b

    def test_sha256_hex(self):
        tx_id = compute_transaction_id("main", "alice", 100, T0, 0)
        assert len(tx_id) == 64
        int(tx_id, 16)

    @pytest.mark.parametrize("changed", [
        ("other", "alice", 100, T0, 0),
        ("main", "bob", 100, T0, 0),
        ("main", "alice", 101, T0, 0),
        ("main", "alice", 100, datetime(2025, 1, 1, 0, 0, 1), 0),
        ("main", "alice", 100, T0, 1),
    ])
    def test_every_field_matters(self, changed):
        base = compute_transaction_id("main", "alice", 100, T0, 0)
        assert compute_transaction_id(*changed) != base

    def test_field_boundaries_are_unambiguous(self):
        a = compute_transaction_id("ab", "c", 100, T0, 0)
        b = compute_transaction_id("a", "bc", 100, T0, 0)
        assert a != b


class TestEventsAndViews:
    """Tests for LedgerEvent, TransactionDetails and LedgerInfo."""

    def test_event_params_dict(self):
        event = LedgerEvent(
            EventType.SCHEDULED, T0, 0, "alice", tx_id="abc123", amount=100,
            params=(("deposit", 150), ("tx_type", "rent")),
        )
        assert event.params_dict == {"deposit": 150, "tx_type": "rent"}
        assert "scheduled#0" in repr(event)
        assert "deposit=150" in repr(event)

    def test_details_payout_for_pending(self):
        details = TransactionDetails(_record(), current_tax=20, tax_rate=200, days_passed=2)
        assert details.payout_if_executed_now == 980

    def test_details_payout_for_executed(self):
        details = TransactionDetails(_record(executed=True), 0, 0, 5)
        assert details.payout_if_executed_now == 0

    def test_ledger_info_fields(self):
        info = LedgerInfo(total_balance=150, available_tax=20, user_funds=130)
        assert info.total_balance == info.available_tax + info.user_funds


class TestExceptionHierarchy:
    """All ledger errors share one base, grouped by category."""

    @pytest.mark.parametrize("exc", [
        InputError, InvalidAmount, InsufficientDeposit, NotAuthorized,
        TransactionNotFound, AlreadyExecuted, NoBalance,
        TaxExceedsPrincipal, TransferFailed, ReentrantCall, ObserverError,
    ])
    def test_all_derive_from_ledger_error(self, exc):
        assert issubclass(exc, LedgerError)

    def test_input_errors(self):
        assert issubclass(InvalidAmount, InputError)
        assert issubclass(InsufficientDeposit, InputError)
        assert not issubclass(NotAuthorized, InputError)

    def test_observer_error_carries_result(self):
        event = LedgerEvent(EventType.SCHEDULED, T0, 0, "alice", tx_id="abc123", amount=100)
        cause = RuntimeError("observer down")
        error = ObserverError("schedule", "abc123", [(event, cause)])
        assert error.result == "abc123"
        assert error.errors == [(event, cause)]
        assert "schedule committed" in str(error)
        assert "observer down" in str(error)


class TestIsInt:
    """The shared integer check used for amounts and rates."""

    @pytest.mark.parametrize("value", [0, 1, -5, 10 ** 30])
    def test_accepts_integers(self, value):
        assert is_int(value)

    @pytest.mark.parametrize("value", [True, False, 1.0, "1", None])
    def test_rejects_everything_else(self, value):
        assert not is_int(value)
