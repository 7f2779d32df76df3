"""
test_concurrency.py - Functional tests for a ledger shared between threads

Tests:
- Racing execute/cancel on one transaction: exactly one wins
- Many threads executing the same transaction: paid once
- Concurrent scheduling: unique ids, dense sequence numbers
- Readers running alongside writers always see balanced books
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from taxledger import AlreadyExecuted, EventType, LedgerError

from tests.helpers import make_ledger, later, assert_conserved


def _race(*calls):
    """Start every call at the same moment and collect (result, error) pairs."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        barrier.wait()
        try:
            return call(), None
        except LedgerError as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


class TestExecuteCancelRace:
    """Execute and cancel racing on the same id."""

    def test_exactly_one_wins(self, rail):
        for _ in range(25):
            ledger = make_ledger(rail)
            tx_id = ledger.schedule("alice", 1000, 1000)
            later(ledger, days=2)

            outcomes = _race(
                lambda: ledger.execute("alice", tx_id),
                lambda: ledger.cancel("admin", tx_id),
            )
            winners = [result for result, error in outcomes if error is None]
            losers = [error for result, error in outcomes if error is not None]
            assert len(winners) == 1
            assert len(losers) == 1
            assert isinstance(losers[0], AlreadyExecuted)

            record = ledger.get_transaction(tx_id)
            assert record.executed
            if record.cancelled:
                assert ledger.get_spare_balance("alice") == 1000
                assert ledger.tax_pool == 0
            else:
                assert ledger.get_spare_balance("alice") == 0
                assert ledger.tax_pool == 20
            result = ledger.verify_conservation()
            assert result['valid'], result['discrepancies']

        assert_conserved(ledger)

    def test_many_executors_pay_once(self, ledger, rail):
        tx_id = ledger.schedule("alice", 5000, 5000)
        outcomes = _race(*[lambda: ledger.execute("alice", tx_id)] * 8)

        assert sum(1 for _, error in outcomes if error is None) == 1
        assert all(
            isinstance(error, AlreadyExecuted) for _, error in outcomes if error is not None
        )
        assert rail.total_paid("alice") == 5000
        assert [e.event_type for e in ledger.event_log].count(EventType.EXECUTED) == 1
        assert_conserved(ledger, rail)


class TestConcurrentScheduling:
    """Many threads scheduling at once."""

    def test_unique_ids_and_dense_sequence(self, ledger, rail):
        users = [f"user{i}" for i in range(8)]

        def schedule_many(user):
            return [ledger.schedule(user, 100, 110) for _ in range(25)]

        with ThreadPoolExecutor(max_workers=len(users)) as pool:
            batches = list(pool.map(schedule_many, users))

        all_ids = [tx_id for batch in batches for tx_id in batch]
        assert len(all_ids) == len(set(all_ids)) == 200
        sequences = sorted(ledger.get_transaction(t).sequence_number for t in all_ids)
        assert sequences == list(range(200))

        for user, batch in zip(users, batches):
            assert ledger.get_user_transactions(user) == batch
            assert ledger.get_spare_balance(user) == 250
        assert ledger.total_held == 200 * 110
        assert_conserved(ledger, rail)

    def test_readers_see_balanced_books(self, ledger, rail):
        stop = threading.Event()
        failures = []

        def reader():
            while not stop.is_set():
                result = ledger.verify_conservation()
                if not result['valid']:
                    failures.append(result['discrepancies'])

        def writer(user):
            for _ in range(50):
                tx_id = ledger.schedule(user, 100, 150)
                ledger.execute(user, tx_id)
                ledger.withdraw_user_balance(user)

        readers = [threading.Thread(target=reader) for _ in range(2)]
        for thread in readers:
            thread.start()
        try:
            with ThreadPoolExecutor(max_workers=4) as pool:
                list(pool.map(writer, ["alice", "bob", "carol", "dave"]))
        finally:
            stop.set()
            for thread in readers:
                thread.join(timeout=5)

        assert failures == []
        assert ledger.total_held == 0
        assert rail.total_paid() == 4 * 50 * 150
        assert_conserved(ledger, rail)
