"""
Race tests for the ledger engine using real threads.

Each test releases N threads at a Barrier so their atomic units overlap,
then checks that the outcome is the same as some serial order:

- N full-balance transfers from one account: exactly one succeeds
- N uses of one one-time promotion: exactly one succeeds
- N awards against a pool that covers one: exactly one succeeds
- N fulfillments of one redemption: exactly one succeeds

Runs on SQLite by default (BEGIN IMMEDIATE serializes units) and against
PostgreSQL when DATABASE_URL is set (row locks and guarded updates).
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from points_kernel.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InsufficientBalanceError,
    InsufficientPoolError,
    PromotionInvalidError,
)

pytestmark = [pytest.mark.slow_locks]

NUM_THREADS = 8


def _race(fn, num_threads: int = NUM_THREADS) -> list:
    """
    Run fn(thread_index) on num_threads threads released together.

    Returns one entry per thread: the return value or the raised exception.
    """
    barrier = Barrier(num_threads, timeout=30)

    def run(i: int):
        barrier.wait()
        try:
            return fn(i)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=num_threads) as pool:
        return list(pool.map(run, range(num_threads)))


def _split(outcomes, *expected_errors):
    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    unexpected = [f for f in failures if not isinstance(f, expected_errors)]
    assert not unexpected, unexpected
    return successes, failures


class TestConcurrentTransfers:

    def test_full_balance_spent_once(self, ledger, make_account, account_state, read):
        alice = make_account(points=100)
        recipients = [make_account() for _ in range(NUM_THREADS)]

        outcomes = _race(lambda i: ledger.transfer(alice, "regular", recipients[i], 100))

        successes, failures = _split(outcomes, InsufficientBalanceError, ConflictError)
        assert len(successes) == 1
        assert len(failures) == NUM_THREADS - 1
        assert any(isinstance(f, InsufficientBalanceError) for f in failures)

        assert account_state(alice).points == 0
        assert sum(account_state(r).points for r in recipients) == 100
        assert read(lambda sel: sel.verify_balance(alice)).matches

    def test_partial_transfers_never_overdraw(self, ledger, make_account, account_state, read):
        alice = make_account(points=100)
        bob = make_account()

        outcomes = _race(lambda i: ledger.transfer(alice, "regular", bob, 30))

        successes, _ = _split(outcomes, InsufficientBalanceError, ConflictError)
        assert len(successes) <= 3
        assert account_state(alice).points == 100 - 30 * len(successes)
        assert account_state(alice).points >= 0
        assert read(lambda sel: sel.verify_balance(bob)).matches


class TestConcurrentPromotions:

    def test_onetime_promotion_used_once(
        self, ledger, cashier, make_account, make_promotion, account_state
    ):
        alice = make_account()
        once = make_promotion(promotion_type="onetime", points=100)

        outcomes = _race(
            lambda i: ledger.purchase(cashier, "cashier", alice, "1.00", promotion_ids=[once])
        )

        successes, _ = _split(outcomes, PromotionInvalidError, ConflictError)
        assert len(successes) == 1
        assert account_state(alice).points == 104


class TestConcurrentEventAwards:

    def test_pool_never_over_awarded(self, ledger, manager, make_account, make_event, read):
        guests = [make_account() for _ in range(NUM_THREADS)]
        event = make_event(allocated=100, awarded=90, guests=tuple(guests))

        outcomes = _race(
            lambda i: ledger.award_event_points(manager, "manager", event, 10, recipient=guests[i])
        )

        successes, _ = _split(outcomes, InsufficientPoolError, ConflictError)
        assert len(successes) == 1
        status = read(lambda sel: sel.pool_status(event))
        assert status.awarded == 100
        assert status.awarded_by_ledger == 10


class TestConcurrentFulfillment:

    def test_redemption_fulfilled_once(self, ledger, make_account, account_state, read):
        alice = make_account(points=50)
        cashiers = [make_account(role="cashier") for _ in range(NUM_THREADS)]
        pending = ledger.request_redemption(alice, "regular", 50).record

        outcomes = _race(
            lambda i: ledger.process_redemption(cashiers[i], "cashier", pending.id)
        )

        successes, _ = _split(outcomes, AlreadyProcessedError, ConflictError)
        assert len(successes) == 1
        state = account_state(alice)
        assert state.points == 0
        assert state.reserved_points == 0
        assert read(lambda sel: sel.get_transaction(pending.id)).processed_by_id == (
            successes[0].record.processed_by_id
        )
