"""
ledger.py - Stateful Escrow Ledger with Procrastination Tax

TaxLedger is the central state manager. It is the only module that mutates
state, ensuring controlled and auditable changes.

Key responsibilities:
    - Escrows deposits against scheduled transactions and tracks spare balances
    - Charges the procrastination tax at execution time (via tax_engine)
    - Pays out through an injected Transfer, rolling back if the payout fails
    - Serialises every mutation behind a single non-reentrant guard
    - Records every committed mutation in the event log (clone, replay)

State held per ledger:
    transactions        tx_id -> ScheduledTransaction (never deleted)
    user_transactions   owner -> [tx_id, ...] in scheduling order
    spare_balances      owner -> unscheduled value owed back
    tax_pool            tax collected and not yet withdrawn

Conservation:
    total_deposited - total_paid_out
        == sum(pending escrow) + sum(spare_balances) + tax_pool
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

from .core import (
    # Types
    ScheduledTransaction, TransactionDetails, LedgerInfo,
    LedgerEvent, EventType, TaxConfig,
    # Constants
    EPOCH,
    # Exceptions
    LedgerError, InputError, InvalidAmount, InsufficientDeposit,
    NotAuthorized, TransactionNotFound, AlreadyExecuted, NoBalance,
    TaxExceedsPrincipal, TransferFailed, ObserverError,
    # Helper functions
    compute_transaction_id, is_int,
)
from .guards import ReentrancyGuard, require_ledger_owner, require_record_owner
from .payments import PayoutRail, Transfer
from .tax_engine import compute_tax, current_tax_rate, days_elapsed


EventCallback = Callable[[LedgerEvent], None]


def _mutating(method):
    """
    Run a TaxLedger method under the ledger's guard.

    Events committed by the method are handed to subscribers only after the
    guard is released, so observers may call back into the ledger. Every
    subscriber sees every event even if another one raises; failures are
    collected and raised afterwards as ObserverError carrying the result.
    """
    @wraps(method)
    def wrapper(self: TaxLedger, *args, **kwargs):
        operation = method.__name__
        with self._guard.hold(operation):
            try:
                result = method(self, *args, **kwargs)
                committed = self._outbox
            finally:
                self._outbox = []
        errors = []
        for event in committed:
            for callback in list(self._subscribers):
                try:
                    callback(event)
                except Exception as exc:
                    if self.verbose:
                        print(f"✗ SUBSCRIBER FAILED on {event.event_type.value}: {exc!r}")
                    errors.append((event, exc))
        if errors:
            raise ObserverError(operation, result, errors) from errors[0][1]
        return result
    return wrapper


class TaxLedger:
    """
    Escrow ledger that taxes procrastination.

    Implements the LedgerView protocol, so it can be handed to authorization
    predicates and reporting helpers that only read.

    Design Principles:
        - Always validates: every operation checks input, capability and
          record state before touching anything. A rejected call changes
          nothing.
        - Pays last: internal state is committed before the transfer is
          invoked; if the transfer raises, the commit is undone and
          TransferFailed propagates.
        - One mutation at a time: schedule, execute, cancel, withdrawals and
          admin changes all run inside the same ReentrancyGuard.

    Thread Safety:
        Safe to share between threads. Racing execute/cancel calls on one id
        resolve in lock order; the loser sees AlreadyExecuted.

    Example:
        ledger = TaxLedger("main", owner="admin")
        tx_id = ledger.schedule("alice", amount=1000, deposit=1000, tx_type="rent")
        ledger.advance_time(ledger.current_time + timedelta(days=2))
        payout = ledger.execute("alice", tx_id)   # 980, 20 goes to the tax pool
    """

    def __init__(
        self,
        name: str,
        owner: str,
        config: Optional[TaxConfig] = None,
        transfer: Optional[Transfer] = None,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier (part of every transaction id)
            owner: Privileged administrator identity
            config: Tax configuration (default: TaxConfig())
            transfer: Payout primitive (default: a fresh PayoutRail)
            initial_time: Starting logical time (default: 1970-01-01)
            verbose: Print one line per operation (default: True)
        """
        if not name or not name.strip():
            raise ValueError("Ledger name cannot be empty")
        if not owner or not owner.strip():
            raise ValueError("Ledger owner cannot be empty")
        self.name = name
        self.config = config or TaxConfig()
        self.verbose = verbose
        self._owner = owner
        self._beneficiary: Optional[str] = self.config.beneficiary
        self._transfer: Transfer = transfer if transfer is not None else PayoutRail()
        self._current_time: datetime = initial_time or EPOCH
        # Starting point, kept for replay()
        self._initial_owner = owner
        self._initial_time = self._current_time

        self.transactions: Dict[str, ScheduledTransaction] = {}
        self.user_transactions: Dict[str, List[str]] = {}
        self.spare_balances: Dict[str, int] = {}
        self.tax_pool: int = 0
        self.total_deposited: int = 0
        self.total_paid_out: int = 0
        self.event_log: List[LedgerEvent] = []
        # Strictly increasing, feeds transaction ids
        self._next_sequence: int = 0

        self._guard = ReentrancyGuard()
        self._subscribers: List[EventCallback] = []
        self._outbox: List[LedgerEvent] = []

    def __repr__(self) -> str:
        return (
            f"TaxLedger({self.name}, {len(self.transactions)} transactions, "
            f"held={self.total_held}, tax_pool={self.tax_pool})"
        )

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def beneficiary(self) -> str:
        """Recipient of tax withdrawals. Follows the owner unless set explicitly."""
        return self._beneficiary or self._owner

    @property
    def transfer(self) -> Transfer:
        return self._transfer

    @property
    def total_held(self) -> int:
        """Value currently held by the ledger: everything deposited minus everything paid out."""
        return self.total_deposited - self.total_paid_out

    def get_transaction(self, tx_id: str) -> ScheduledTransaction:
        """
        Return the record for a transaction id.

        Raises:
            TransactionNotFound: If tx_id was never scheduled on this ledger
        """
        with self._guard.read():
            record = self.transactions.get(tx_id)
        if record is None:
            raise TransactionNotFound(f"Transaction {tx_id} not found")
        return record

    def get_user_transactions(self, owner: str) -> List[str]:
        """Transaction ids scheduled by owner, oldest first (a copy)."""
        with self._guard.read():
            return list(self.user_transactions.get(owner, ()))

    def get_spare_balance(self, owner: str) -> int:
        with self._guard.read():
            return self.spare_balances.get(owner, 0)

    def get_transaction_details(self, tx_id: str) -> TransactionDetails:
        """
        Return a record together with its live tax figures.

        Tax and rate are computed at the ledger's current time and are zero for
        executed or cancelled records.
        """
        with self._guard.read():
            record = self.get_transaction(tx_id)
            now = self._current_time
        max_rate = self.config.max_tax_rate
        return TransactionDetails(
            record=record,
            current_tax=compute_tax(record, now, max_rate),
            tax_rate=current_tax_rate(record, now, max_rate),
            days_passed=days_elapsed(record.created_at, now),
        )

    def get_days_passed(self, tx_id: str) -> int:
        """Whole days since the transaction was scheduled."""
        with self._guard.read():
            record = self.get_transaction(tx_id)
            now = self._current_time
        return days_elapsed(record.created_at, now)

    def get_current_tax_rate(self, tx_id: str) -> int:
        """Capped tax rate in basis points that execute() would apply right now."""
        with self._guard.read():
            record = self.get_transaction(tx_id)
            now = self._current_time
        return current_tax_rate(record, now, self.config.max_tax_rate)

    def get_contract_info(self) -> LedgerInfo:
        """
        Aggregate balance breakdown.

        Returns:
            LedgerInfo(total_balance, available_tax, user_funds) where user_funds
            is everything that is not collected tax: pending escrow plus spare
            balances.
        """
        with self._guard.read():
            total = self.total_held
            return LedgerInfo(
                total_balance=total,
                available_tax=self.tax_pool,
                user_funds=total - self.tax_pool,
            )

    def pending_escrow(self) -> int:
        """Sum of escrowed amounts on transactions not yet executed or cancelled."""
        with self._guard.read():
            return sum(r.amount for r in self.transactions.values() if not r.executed)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that every unit of value held is accounted for.

        The ledger holds total_deposited - total_paid_out. That must equal
        pending escrow + spare balances + tax pool, and no balance may be
        negative.

        Returns:
            Dict with keys:
            - 'valid': bool - True if the books balance
            - 'total_held', 'escrowed', 'spare', 'tax_pool': the components
            - 'discrepancies': List[str] describing any violation

        Example:
            result = ledger.verify_conservation()
            assert result['valid'], result['discrepancies']
        """
        with self._guard.read():
            escrowed = sum(r.amount for r in self.transactions.values() if not r.executed)
            spare = sum(self.spare_balances.values())
            tax_pool = self.tax_pool
            total_held = self.total_held
            negative = sorted(w for w, b in self.spare_balances.items() if b < 0)

        discrepancies = []
        accounted = escrowed + spare + tax_pool
        if accounted != total_held:
            discrepancies.append(
                f"held {total_held} != escrowed {escrowed} + spare {spare} + tax {tax_pool}"
            )
        if tax_pool < 0:
            discrepancies.append(f"negative tax pool: {tax_pool}")
        for wallet in negative:
            discrepancies.append(f"negative spare balance for {wallet}")

        return {
            'valid': not discrepancies,
            'total_held': total_held,
            'escrowed': escrowed,
            'spare': spare,
            'tax_pool': tax_pool,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # OBSERVERS
    # ========================================================================

    def subscribe(self, callback: EventCallback) -> None:
        """
        Call `callback` with every LedgerEvent committed from now on.

        A callback that raises does not undo the operation or stop delivery
        to other subscribers. The caller gets ObserverError, whose `result`
        is the operation's return value.
        """
        self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        self._subscribers.remove(callback)

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @_mutating
    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock to a new time.

        Time can only move forward, never backward. Jumps of any size are fine.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # TRANSACTION LIFECYCLE (Mutating)
    # ========================================================================

    @_mutating
    def schedule(self, owner: str, amount: int, deposit: int, tx_type: str = "") -> str:
        """
        Escrow `amount` out of `deposit` against a new transaction.

        Any excess of deposit over amount is credited to the owner's spare
        balance.

        Args:
            owner: Authenticated caller, who becomes the record owner
            amount: Value to escrow (positive integer)
            deposit: Value sent with the call (>= amount)
            tx_type: Free-form label

        Returns:
            The new transaction id

        Raises:
            InputError: If owner is empty or tx_type is not a string
            InvalidAmount: If amount or deposit is not a positive integer
            InsufficientDeposit: If deposit < amount
        """
        if not isinstance(owner, str) or not owner.strip():
            raise self._reject("schedule", InputError("owner cannot be empty"))
        if not is_int(amount) or amount <= 0:
            raise self._reject("schedule", InvalidAmount(f"amount must be a positive integer, got {amount!r}"))
        if not is_int(deposit):
            raise self._reject("schedule", InvalidAmount(f"deposit must be an integer, got {deposit!r}"))
        if deposit < amount:
            raise self._reject("schedule", InsufficientDeposit(f"deposit {deposit} < amount {amount}"))
        if not isinstance(tx_type, str):
            raise self._reject("schedule", InputError(f"tx_type must be a string, got {tx_type!r}"))

        sequence = self._next_sequence
        tx_id = compute_transaction_id(self.name, owner, amount, self._current_time, sequence)
        if tx_id in self.transactions:
            raise self._reject("schedule", LedgerError(f"transaction id collision: {tx_id}"))

        record = ScheduledTransaction(
            tx_id=tx_id,
            owner=owner,
            amount=amount,
            created_at=self._current_time,
            base_tax_rate=self.config.base_tax_rate,
            sequence_number=sequence,
            tx_type=tx_type,
        )
        self._next_sequence += 1
        self.transactions[tx_id] = record
        self.user_transactions.setdefault(owner, []).append(tx_id)
        excess = deposit - amount
        if excess:
            self.spare_balances[owner] = self.spare_balances.get(owner, 0) + excess
        self.total_deposited += deposit

        self._emit(EventType.SCHEDULED, owner, tx_id=tx_id, amount=amount,
                   deposit=deposit, tx_type=tx_type)
        if self.verbose:
            extra = f", spare +{excess}" if excess else ""
            print(f"✓ SCHEDULED {tx_id[:12]}: {amount} by {owner} [{tx_type}]{extra}")
        return tx_id

    @_mutating
    def execute(self, caller: str, tx_id: str) -> int:
        """
        Execute a scheduled transaction, charging the procrastination tax.

        The record is marked executed and the tax added to the pool before the
        payout of amount - tax is sent to the caller. If the payout fails both
        changes are undone.

        Returns:
            The amount paid out

        Raises:
            TransactionNotFound, NotAuthorized, AlreadyExecuted,
            TaxExceedsPrincipal, TransferFailed
        """
        record = self._lookup("execute", tx_id)
        self._authorize("execute", require_record_owner, record, caller)
        if record.executed:
            raise self._reject("execute", AlreadyExecuted(f"Transaction {tx_id} already executed"))

        tax = compute_tax(record, self._current_time, self.config.max_tax_rate)
        if tax >= record.amount:
            raise self._reject("execute", TaxExceedsPrincipal(
                f"tax {tax} >= amount {record.amount} for {tx_id}"
            ))
        payout = record.amount - tax

        self.transactions[tx_id] = replace(record, executed=True)
        self.tax_pool += tax

        def undo():
            self.transactions[tx_id] = record
            self.tax_pool -= tax

        self._pay("execute", caller, payout, undo)

        self._emit(EventType.EXECUTED, caller, tx_id=tx_id, amount=payout, tax=tax)
        if self.verbose:
            print(f"✓ EXECUTED {tx_id[:12]}: paid {payout} to {caller}, tax {tax}")
        return payout

    @_mutating
    def cancel(self, caller: str, tx_id: str) -> int:
        """
        Administrative override: cancel a pending transaction without tax.

        The full escrow is credited to the record owner's spare balance for
        later withdrawal. Nothing is paid out here.

        Returns:
            The amount refunded to spare balance

        Raises:
            NotAuthorized: If caller is not the ledger owner
            TransactionNotFound, AlreadyExecuted
        """
        self._authorize("cancel", require_ledger_owner, self, caller, "cancel")
        record = self._lookup("cancel", tx_id)
        if record.executed:
            raise self._reject("cancel", AlreadyExecuted(f"Transaction {tx_id} already executed"))

        self.transactions[tx_id] = replace(record, executed=True, cancelled=True)
        self.spare_balances[record.owner] = self.spare_balances.get(record.owner, 0) + record.amount

        self._emit(EventType.CANCELLED, caller, tx_id=tx_id, amount=record.amount,
                   owner=record.owner)
        if self.verbose:
            print(f"✓ CANCELLED {tx_id[:12]}: {record.amount} refunded to {record.owner}")
        return record.amount

    # ========================================================================
    # WITHDRAWALS (Mutating)
    # ========================================================================

    @_mutating
    def withdraw_user_balance(self, caller: str) -> int:
        """
        Pay out the caller's whole spare balance and zero it.

        Raises:
            NoBalance: If the caller's spare balance is zero
            TransferFailed: If the payout fails (balance is restored)
        """
        balance = self.spare_balances.get(caller, 0)
        if balance <= 0:
            raise self._reject("withdraw_user_balance", NoBalance(f"{caller} has no balance to withdraw"))

        self.spare_balances[caller] = 0

        def undo():
            self.spare_balances[caller] = balance

        self._pay("withdraw_user_balance", caller, balance, undo)

        self._emit(EventType.BALANCE_WITHDRAWN, caller, amount=balance)
        if self.verbose:
            print(f"✓ WITHDRAWN {balance} to {caller}")
        return balance

    @_mutating
    def withdraw_protocol_tax(self, caller: str) -> int:
        """
        Pay out the collected tax pool to the beneficiary and zero it.

        Raises:
            NotAuthorized: If caller is not the ledger owner
            NoBalance: If no tax has been collected
            TransferFailed: If the payout fails (pool is restored)
        """
        self._authorize("withdraw_protocol_tax", require_ledger_owner, self, caller,
                        "withdraw_protocol_tax")
        amount = self.tax_pool
        if amount <= 0:
            raise self._reject("withdraw_protocol_tax", NoBalance("no tax to withdraw"))

        recipient = self.beneficiary
        self.tax_pool = 0

        def undo():
            self.tax_pool = amount

        self._pay("withdraw_protocol_tax", recipient, amount, undo)

        self._emit(EventType.TAX_WITHDRAWN, caller, amount=amount, beneficiary=recipient)
        if self.verbose:
            print(f"✓ TAX WITHDRAWN {amount} to {recipient}")
        return amount

    # ========================================================================
    # ADMINISTRATION (Mutating)
    # ========================================================================

    @_mutating
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """
        Hand the administrator role to new_owner.

        If no explicit beneficiary was set, tax withdrawals follow the new owner.
        """
        self._authorize("transfer_ownership", require_ledger_owner, self, caller,
                        "transfer_ownership")
        if not isinstance(new_owner, str) or not new_owner.strip():
            raise self._reject("transfer_ownership", InputError("new owner cannot be empty"))
        previous = self._owner
        self._owner = new_owner

        self._emit(EventType.OWNERSHIP_TRANSFERRED, caller, new_owner=new_owner,
                   previous_owner=previous)
        if self.verbose:
            print(f"✓ OWNERSHIP {previous} -> {new_owner}")

    @_mutating
    def set_beneficiary(self, caller: str, beneficiary: Optional[str]) -> None:
        """Redirect tax withdrawals. None makes them follow the owner again."""
        self._authorize("set_beneficiary", require_ledger_owner, self, caller,
                        "set_beneficiary")
        if beneficiary is not None and (not isinstance(beneficiary, str) or not beneficiary.strip()):
            raise self._reject("set_beneficiary", InputError("beneficiary cannot be empty"))
        self._beneficiary = beneficiary

        self._emit(EventType.BENEFICIARY_CHANGED, caller, beneficiary=beneficiary)
        if self.verbose:
            print(f"✓ BENEFICIARY {self.beneficiary}")

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _reject(self, operation: str, error: LedgerError) -> LedgerError:
        """Report a rejection and hand the error back for the caller to raise."""
        if self.verbose:
            print(f"✗ REJECTED {operation}: {error}")
        return error

    def _authorize(self, operation: str, predicate: Callable[..., None], *args) -> None:
        try:
            predicate(*args)
        except NotAuthorized as error:
            raise self._reject(operation, error)

    def _lookup(self, operation: str, tx_id: str) -> ScheduledTransaction:
        record = self.transactions.get(tx_id)
        if record is None:
            raise self._reject(operation, TransactionNotFound(f"Transaction {tx_id} not found"))
        return record

    def _pay(self, operation: str, recipient: str, amount: int, undo: Callable[[], None]) -> None:
        """
        Invoke the transfer as the last step of a mutation.

        On failure the mutation is undone through `undo` and TransferFailed is
        raised with the collaborator's exception chained.
        """
        try:
            self._transfer(recipient, amount)
        except Exception as exc:
            undo()
            raise self._reject(operation, TransferFailed(
                f"payout of {amount} to {recipient} failed: {exc}"
            )) from exc
        self.total_paid_out += amount

    def _emit(
        self,
        event_type: EventType,
        caller: str,
        tx_id: Optional[str] = None,
        amount: int = 0,
        **params: Any,
    ) -> LedgerEvent:
        """Append a committed event to the log and queue it for subscribers."""
        event = LedgerEvent(
            event_type=event_type,
            timestamp=self._current_time,
            sequence_number=len(self.event_log),
            caller=caller,
            tx_id=tx_id,
            amount=amount,
            params=tuple(sorted(params.items())),
        )
        self.event_log.append(event)
        self._outbox.append(event)
        return event

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self, transfer: Optional[Transfer] = None) -> TaxLedger:
        """
        Create an independent copy of this ledger.

        Cloned state includes records, indexes, balances, the tax pool, counters,
        the event log and the current time. Subscribers are not copied, and the
        clone pays out through `transfer` (default: a fresh PayoutRail) so
        what-if operations on it never move real value.

        Returns:
            A new TaxLedger with identical state
        """
        with self._guard.read():
            cloned = TaxLedger(
                name=self.name,
                owner=self._owner,
                config=self.config,
                transfer=transfer,
                initial_time=self._current_time,
                verbose=self.verbose,
            )
            cloned._beneficiary = self._beneficiary
            cloned._initial_owner = self._initial_owner
            cloned._initial_time = self._initial_time

            # Records are frozen, so a shallow copy of the mapping is enough
            cloned.transactions = dict(self.transactions)
            cloned.user_transactions = {o: list(ids) for o, ids in self.user_transactions.items()}
            cloned.spare_balances = dict(self.spare_balances)
            cloned.tax_pool = self.tax_pool
            cloned.total_deposited = self.total_deposited
            cloned.total_paid_out = self.total_paid_out
            cloned.event_log = list(self.event_log)
            cloned._next_sequence = self._next_sequence
        return cloned

    def replay(self) -> TaxLedger:
        """
        Rebuild a fresh ledger by re-applying the event log.

        The rebuilt ledger starts from this ledger's initial owner, config and
        time, pays out through its own PayoutRail, and must reproduce every
        transaction id and every amount in the log.

        Returns:
            New TaxLedger with replayed state

        Raises:
            LedgerError: If the replay diverges from the log
        """
        with self._guard.read():
            events = list(self.event_log)
        replayed = TaxLedger(
            name=self.name,
            owner=self._initial_owner,
            config=self.config,
            initial_time=self._initial_time,
            verbose=self.verbose,
        )
        for event in events:
            if event.timestamp > replayed.current_time:
                replayed.advance_time(event.timestamp)
            replayed._apply(event)
        return replayed

    def _apply(self, event: LedgerEvent) -> None:
        params = event.params_dict
        kind = event.event_type

        if kind is EventType.SCHEDULED:
            result: Any = self.schedule(event.caller, event.amount, params["deposit"], params["tx_type"])
            expected: Any = event.tx_id
        elif kind is EventType.EXECUTED:
            result, expected = self.execute(event.caller, event.tx_id), event.amount
        elif kind is EventType.CANCELLED:
            result, expected = self.cancel(event.caller, event.tx_id), event.amount
        elif kind is EventType.BALANCE_WITHDRAWN:
            result, expected = self.withdraw_user_balance(event.caller), event.amount
        elif kind is EventType.TAX_WITHDRAWN:
            result, expected = self.withdraw_protocol_tax(event.caller), event.amount
        elif kind is EventType.OWNERSHIP_TRANSFERRED:
            self.transfer_ownership(event.caller, params["new_owner"])
            result = expected = None
        elif kind is EventType.BENEFICIARY_CHANGED:
            self.set_beneficiary(event.caller, params["beneficiary"])
            result = expected = None
        else:
            raise LedgerError(f"Cannot replay event type {kind}")

        if result != expected:
            raise LedgerError(
                f"Replay diverged at event {event.sequence_number}: "
                f"expected {expected!r}, got {result!r}"
            )
