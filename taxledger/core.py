"""
Core types and pure functions for the procrastination-tax ledger.

This module provides the foundational data structures and protocols for the ledger:
1. Constants: day length, basis-point scale, default and maximum tax rates
2. Configuration: TaxConfig, validated at construction
3. Exceptions: LedgerError and the categorised error types below it
4. Immutable data structures: ScheduledTransaction, TransactionDetails, LedgerInfo, LedgerEvent
5. Protocols: LedgerView for read-only ledger access
6. Identity: content-derived transaction ids

All functions in this module are pure. Nothing here mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import hashlib
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

SECONDS_PER_DAY = 86400

# 10000 basis points == 100%.
BASIS_POINTS = 10000

# Base tax rate applied to new transactions: 100bp == 1% per day^1.5.
DEFAULT_BASE_TAX_RATE = 100

# Ceiling on the accrued rate: 5000bp == 50% of the escrowed amount.
MAX_TAX_RATE = 5000

# Domain separator for transaction id hashing. Bump the version suffix if the
# hashed fields ever change, so ids from different schemes cannot collide.
TX_ID_DOMAIN = "taxledger.tx.v1"

# Default starting point of the logical clock.
EPOCH = datetime(1970, 1, 1)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InputError(LedgerError):
    """Raised when caller-supplied arguments are malformed. Never retried."""
    pass


class InvalidAmount(InputError):
    """Raised when an amount is not a positive integer."""
    pass


class InsufficientDeposit(InputError):
    """Raised when the deposited value does not cover the declared amount."""
    pass


class NotAuthorized(LedgerError):
    """Raised when the caller lacks the capability required by an operation."""
    pass


class TransactionNotFound(LedgerError):
    """Raised when a transaction id is unknown to the ledger."""
    pass


class AlreadyExecuted(LedgerError):
    """Raised when a transaction has already reached its terminal state."""
    pass


class NoBalance(LedgerError):
    """Raised when a withdrawal is attempted against a zero balance."""
    pass


class TaxExceedsPrincipal(LedgerError):
    """
    Raised when the accrued tax would consume the whole escrowed amount.

    Unreachable while MAX_TAX_RATE < BASIS_POINTS; seeing it means the
    rate configuration is broken.
    """
    pass


class TransferFailed(LedgerError):
    """Raised when the value-transfer collaborator fails. Ledger state is rolled back."""
    pass


class ReentrantCall(LedgerError):
    """Raised when a mutating operation is entered while another is in flight on the same thread."""
    pass


class ObserverError(LedgerError):
    """
    Raised after a committed operation when one or more subscribers failed.

    The operation itself succeeded: its state change and any payout stand.
    `result` holds what the operation returned and `errors` the
    (event, exception) pairs from the failing callbacks, in delivery order.
    """

    def __init__(self, operation: str, result: Any, errors: List[Tuple[LedgerEvent, Exception]]):
        self.operation = operation
        self.result = result
        self.errors = errors
        super().__init__(
            f"{operation} committed but {len(errors)} subscriber call(s) failed: "
            + "; ".join(f"{event.event_type.value}: {exc!r}" for event, exc in errors)
        )


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class TaxConfig:
    """
    Immutable tax configuration for a ledger instance.

    Attributes:
        base_tax_rate: Basis points stamped on every new transaction.
        max_tax_rate: Basis-point ceiling on the accrued rate. Must stay below
            BASIS_POINTS so a payout can never be driven to zero.
        beneficiary: Recipient of protocol tax withdrawals. None means the
            ledger owner.
    """
    base_tax_rate: int = DEFAULT_BASE_TAX_RATE
    max_tax_rate: int = MAX_TAX_RATE
    beneficiary: Optional[str] = None

    def __post_init__(self):
        if not is_int(self.base_tax_rate) or self.base_tax_rate <= 0:
            raise ValueError(f"base_tax_rate must be a positive integer, got {self.base_tax_rate!r}")
        if not is_int(self.max_tax_rate) or self.max_tax_rate <= 0:
            raise ValueError(f"max_tax_rate must be a positive integer, got {self.max_tax_rate!r}")
        if self.max_tax_rate >= BASIS_POINTS:
            raise ValueError(
                f"max_tax_rate must be below {BASIS_POINTS}bp, got {self.max_tax_rate}"
            )
        if self.beneficiary is not None and not self.beneficiary.strip():
            raise ValueError("beneficiary cannot be empty")


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class ScheduledTransaction:
    """
    An escrowed amount waiting to be executed.

    Attributes:
        tx_id: Content-derived identifier (see compute_transaction_id).
        owner: Identity that scheduled the transaction and may execute it.
        amount: Escrowed value in the smallest currency unit (always > 0).
        created_at: Logical ledger time at scheduling.
        base_tax_rate: Basis points fixed at creation.
        sequence_number: Store-owned counter value used in the id.
        tx_type: Free-form label supplied by the owner.
        executed: Terminal flag. Set by execute and by cancel.
        cancelled: True when the terminal transition was a cancellation.

    Immutable: the ledger swaps in a replaced copy on the single terminal
    transition.
    """
    tx_id: str
    owner: str
    amount: int
    created_at: datetime
    base_tax_rate: int
    sequence_number: int
    tx_type: str = ""
    executed: bool = False
    cancelled: bool = False

    def __post_init__(self):
        if not self.tx_id:
            raise ValueError("tx_id cannot be empty")
        if not self.owner or not self.owner.strip():
            raise ValueError("owner cannot be empty")
        if not is_int(self.amount) or self.amount <= 0:
            raise ValueError(f"amount must be a positive integer, got {self.amount!r}")
        if not is_int(self.base_tax_rate) or self.base_tax_rate < 0:
            raise ValueError(f"base_tax_rate must be a non-negative integer, got {self.base_tax_rate!r}")
        if self.cancelled and not self.executed:
            raise ValueError("a cancelled transaction must also be marked executed")

    @property
    def is_pending(self) -> bool:
        return not self.executed

    def __repr__(self) -> str:
        if self.cancelled:
            status = "cancelled"
        elif self.executed:
            status = "executed"
        else:
            status = "pending"
        return f"ScheduledTransaction({self.tx_id[:12]}, {self.amount} by {self.owner}, {status})"


@dataclass(frozen=True, slots=True)
class TransactionDetails:
    """Record snapshot plus live tax figures, as returned by the detail query."""
    record: ScheduledTransaction
    current_tax: int
    tax_rate: int
    days_passed: int

    @property
    def payout_if_executed_now(self) -> int:
        if self.record.executed:
            return 0
        return self.record.amount - self.current_tax


@dataclass(frozen=True, slots=True)
class LedgerInfo:
    """
    Aggregate balance breakdown.

    total_balance == available_tax + user_funds always holds.
    """
    total_balance: int
    available_tax: int
    user_funds: int


# ============================================================================
# EVENTS
# ============================================================================

class EventType(Enum):
    """Notifications emitted by the ledger after a mutation commits."""
    SCHEDULED = "scheduled"
    EXECUTED = "executed"
    CANCELLED = "cancelled"
    BALANCE_WITHDRAWN = "balance_withdrawn"
    TAX_WITHDRAWN = "tax_withdrawn"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"
    BENEFICIARY_CHANGED = "beneficiary_changed"


@dataclass(frozen=True, slots=True)
class LedgerEvent:
    """
    Immutable record of a committed mutation.

    The event log is the audit trail: replaying it against a fresh ledger
    reproduces the same state.

    Attributes:
        event_type: What happened.
        timestamp: Logical ledger time of the mutation.
        sequence_number: Position in the ledger's event log.
        caller: Authenticated identity that invoked the operation.
        tx_id: Transaction affected, if any.
        amount: Primary value of the event (escrow, payout, refund, withdrawal).
        params: Event-specific extras as a frozen tuple of (key, value) pairs.
    """
    event_type: EventType
    timestamp: datetime
    sequence_number: int
    caller: str
    tx_id: Optional[str] = None
    amount: int = 0
    params: Tuple[Tuple[str, Any], ...] = ()

    @property
    def params_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    def __repr__(self) -> str:
        parts = [f"{self.event_type.value}#{self.sequence_number}", f"caller={self.caller}"]
        if self.tx_id:
            parts.append(f"tx={self.tx_id[:12]}")
        if self.amount:
            parts.append(f"amount={self.amount}")
        for key, value in self.params:
            parts.append(f"{key}={value}")
        return f"LedgerEvent({', '.join(parts)})"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Authorization predicates and reporting helpers accept a LedgerView to
    declare that they never mutate. TaxLedger implements it.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    @property
    def owner(self) -> str:
        """Return the privileged administrator identity."""
        ...

    def get_transaction(self, tx_id: str) -> ScheduledTransaction:
        """Return the record for tx_id. Raises TransactionNotFound."""
        ...

    def get_user_transactions(self, owner: str) -> List[str]:
        """Return the owner's transaction ids in scheduling order."""
        ...

    def get_spare_balance(self, owner: str) -> int:
        """Return the owner's spare balance (0 if unknown)."""
        ...


# ============================================================================
# IDENTITY
# ============================================================================

def compute_transaction_id(
    ledger_name: str,
    owner: str,
    amount: int,
    created_at: datetime,
    sequence_number: int,
) -> str:
    """
    Compute the content-derived id of a scheduled transaction.

    SHA-256 over a domain-separated, length-prefixed encoding of the inputs.
    The sequence number is store-owned and strictly increasing, so ids never
    collide within a ledger even when every other field repeats.
    """
    fields = (
        TX_ID_DOMAIN,
        ledger_name,
        owner,
        str(amount),
        created_at.isoformat(),
        str(sequence_number),
    )
    # Length prefixes keep ("ab", "c") and ("a", "bc") apart.
    content = "|".join(f"{len(part)}:{part}" for part in fields)
    return hashlib.sha256(content.encode()).hexdigest()


def is_int(value: Any) -> bool:
    """True for real integers; bool is rejected even though it subclasses int."""
    return isinstance(value, int) and not isinstance(value, bool)
