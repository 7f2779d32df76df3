"""
taxledger - Escrow Ledger with a Procrastination Tax

Users escrow value against a scheduled transaction. Executing it on the day it
was scheduled is free; every day of delay after that costs a growing share of
the escrow (base_rate * days^1.5, capped), collected into a protocol tax pool.

Usage:
    from datetime import timedelta
    from taxledger import TaxLedger, PayoutRail

    rail = PayoutRail()
    ledger = TaxLedger("main", owner="admin", transfer=rail)

    tx_id = ledger.schedule("alice", amount=1000, deposit=1200, tx_type="rent")
    ledger.advance_time(ledger.current_time + timedelta(days=2))

    ledger.execute("alice", tx_id)          # pays 980, 20 goes to the tax pool
    ledger.withdraw_user_balance("alice")   # pays the 200 overpayment
    ledger.withdraw_protocol_tax("admin")   # pays 20 to the beneficiary
"""

# Core types
from .core import (
    ScheduledTransaction,
    TransactionDetails,
    LedgerInfo,
    LedgerEvent,
    EventType,
    LedgerView,
    TaxConfig,
    compute_transaction_id,
    LedgerError,
    InputError,
    InvalidAmount,
    InsufficientDeposit,
    NotAuthorized,
    TransactionNotFound,
    AlreadyExecuted,
    NoBalance,
    TaxExceedsPrincipal,
    TransferFailed,
    ReentrantCall,
    ObserverError,
    is_int,
    SECONDS_PER_DAY,
    BASIS_POINTS,
    DEFAULT_BASE_TAX_RATE,
    MAX_TAX_RATE,
)

# Tax engine
from .tax_engine import (
    isqrt,
    days_elapsed,
    tax_rate,
    current_tax_rate,
    compute_tax,
)

# Guards
from .guards import (
    ReentrancyGuard,
    require_ledger_owner,
    require_record_owner,
)

# Payments
from .payments import (
    Transfer,
    Payout,
    PayoutRail,
)

# Ledger
from .ledger import TaxLedger


__all__ = [
    # Core
    'ScheduledTransaction', 'TransactionDetails', 'LedgerInfo',
    'LedgerEvent', 'EventType', 'LedgerView', 'TaxConfig',
    'compute_transaction_id',
    'LedgerError', 'InputError', 'InvalidAmount', 'InsufficientDeposit',
    'NotAuthorized', 'TransactionNotFound', 'AlreadyExecuted', 'NoBalance',
    'TaxExceedsPrincipal', 'TransferFailed', 'ReentrantCall', 'ObserverError',
    'is_int',
    'SECONDS_PER_DAY', 'BASIS_POINTS', 'DEFAULT_BASE_TAX_RATE', 'MAX_TAX_RATE',
    # Tax engine
    'isqrt', 'days_elapsed', 'tax_rate', 'current_tax_rate', 'compute_tax',
    # Guards
    'ReentrancyGuard', 'require_ledger_owner', 'require_record_owner',
    # Payments
    'Transfer', 'Payout', 'PayoutRail',
    # Ledger
    'TaxLedger',
]

__version__ = '1.0.0'
