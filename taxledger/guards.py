"""
guards.py - Capability Checks and Mutual Exclusion

Two kinds of guard protect the ledger:
1. Authorization predicates: plain functions evaluated before any mutation.
   They raise NotAuthorized and never change state.
2. ReentrancyGuard: one lock per ledger. Every mutating entry point runs
   inside it, so at most one mutation is in flight at a time. A mutating call
   made from inside an in-flight one on the same thread (for example from a
   payout callback) is rejected instead of deadlocking.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, Optional
import threading

from .core import LedgerView, NotAuthorized, ReentrantCall, ScheduledTransaction


# ============================================================================
# AUTHORIZATION PREDICATES
# ============================================================================

def require_ledger_owner(view: LedgerView, caller: str, operation: str) -> None:
    """Allow only the ledger administrator to run `operation`."""
    if caller != view.owner:
        raise NotAuthorized(f"{operation}: {caller} is not the ledger owner")


def require_record_owner(record: ScheduledTransaction, caller: str) -> None:
    """Allow only the identity that scheduled `record` to act on it."""
    if caller != record.owner:
        raise NotAuthorized(
            f"{caller} does not own transaction {record.tx_id[:12]}"
        )


# ============================================================================
# MUTUAL EXCLUSION
# ============================================================================

class ReentrancyGuard:
    """
    Non-reentrant lock around a ledger's mutating operations.

    Usage:
        guard = ReentrancyGuard()
        with guard.hold("execute"):
            ...  # mutate, then pay out

        with guard.read():
            ...  # consistent snapshot, allowed from inside hold()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._holder: Optional[int] = None
        self._operation: Optional[str] = None

    @property
    def operation(self) -> Optional[str]:
        """Name of the mutation currently in flight, if any."""
        return self._operation

    def held_by_current_thread(self) -> bool:
        return self._holder == threading.get_ident()

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        """
        Run a mutation exclusively.

        Raises:
            ReentrantCall: If this thread is already inside hold().
        """
        if self.held_by_current_thread():
            raise ReentrantCall(
                f"{operation} called while {self._operation or 'a read'} is in progress"
            )
        with self._lock:
            self._holder = threading.get_ident()
            self._operation = operation
            try:
                yield
            finally:
                self._holder = None
                self._operation = None

    @contextmanager
    def read(self) -> Iterator[None]:
        """
        Take a consistent snapshot.

        Nested reads, and reads from inside hold() on the same thread, go
        straight through since the lock is already ours. Mutating from inside
        read() is rejected like any other re-entry.

        Other threads wait here while a mutation, payout included, is in
        flight.
        """
        if self.held_by_current_thread():
            yield
            return
        with self._lock:
            self._holder = threading.get_ident()
            try:
                yield
            finally:
                self._holder = None
