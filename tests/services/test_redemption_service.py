"""
Tests for redemption requests and fulfillment.

These tests verify:
- A redemption request reserves points without debiting them
- Fulfillment debits points, releases the reservation and stamps the
  transaction exactly once
- Double fulfillment is rejected with AlreadyProcessedError
- Requests and fulfillments are guarded against overdraw
"""

import pytest

from points_kernel.exceptions import (
    AlreadyProcessedError,
    InsufficientBalanceError,
    InvalidRequestError,
    TransactionNotFoundError,
    UnauthorizedError,
)


class TestRedemptionRequest:

    def test_request_reserves(self, ledger, make_account, account_state, read):
        alice = make_account(points=50)

        tx = ledger.request_redemption(alice, "regular", 50, remark="mug").record

        assert tx.type == "redemption"
        assert tx.points == 50
        assert tx.applied_points == 0
        assert not tx.is_processed
        state = account_state(alice)
        assert state.points == 50
        assert state.reserved_points == 50
        assert state.available_points == 0
        assert read(lambda sel: sel.computed_reserved(alice)) == 50
        assert read(lambda sel: sel.verify_balance(alice)).matches

    def test_request_over_available_rejected(self, ledger, make_account, account_state):
        alice = make_account(points=50)
        ledger.request_redemption(alice, "regular", 30)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger.request_redemption(alice, "regular", 21)
        assert exc_info.value.available == 20
        assert account_state(alice).reserved_points == 30

    def test_unverified_cannot_redeem(self, ledger, make_account):
        alice = make_account(points=50, verified=False)
        with pytest.raises(UnauthorizedError):
            ledger.request_redemption(alice, "regular", 10)

    def test_pending_listed(self, ledger, make_account, read):
        alice = make_account(points=50)
        bob = make_account(points=50)
        a = ledger.request_redemption(alice, "regular", 10).record
        b = ledger.request_redemption(bob, "regular", 20).record

        assert [t.id for t in read(lambda sel: sel.pending_redemptions())] == [a.id, b.id]
        assert [t.id for t in read(lambda sel: sel.pending_redemptions(bob))] == [b.id]


class TestFulfillment:

    def test_redeem_full_balance(self, ledger, make_account, cashier, account_state, read):
        alice = make_account(points=50)
        pending = ledger.request_redemption(alice, "regular", 50).record

        done = ledger.process_redemption(cashier, "cashier", pending.id).record

        assert done.id == pending.id
        assert done.processed_by_id == cashier
        assert done.processed_at is not None
        assert done.applied_points == -50
        state = account_state(alice)
        assert state.points == 0
        assert state.reserved_points == 0
        assert read(lambda sel: sel.verify_balance(alice)).matches
        assert read(lambda sel: sel.pending_redemptions()) == []

    def test_double_fulfillment_rejected(self, ledger, make_account, cashier, account_state):
        alice = make_account(points=50)
        pending = ledger.request_redemption(alice, "regular", 50).record
        ledger.process_redemption(cashier, "cashier", pending.id)

        with pytest.raises(AlreadyProcessedError) as exc_info:
            ledger.process_redemption(cashier, "cashier", pending.id)

        assert exc_info.value.processed_by_id == cashier
        assert account_state(alice).points == 0

    def test_regular_cannot_process(self, ledger, make_account):
        alice = make_account(points=50)
        pending = ledger.request_redemption(alice, "regular", 10).record
        with pytest.raises(UnauthorizedError):
            ledger.process_redemption(alice, "regular", pending.id)

    def test_not_a_redemption(self, ledger, make_account, cashier, read):
        alice = make_account(points=50)
        purchase_id = read(lambda sel: sel.transactions_for_account(alice))[0].id
        with pytest.raises(InvalidRequestError):
            ledger.process_redemption(cashier, "cashier", purchase_id)

    def test_unknown_transaction(self, ledger, cashier):
        with pytest.raises(TransactionNotFoundError):
            ledger.process_redemption(cashier, "cashier", 424242)

    def test_balance_reduced_below_hold(self, ledger, make_account, cashier, manager, account_state, read):
        alice = make_account(points=50)
        pending = ledger.request_redemption(alice, "regular", 50).record
        ledger.adjust(manager, "manager", alice, -20, related_id=pending.id)

        with pytest.raises(InsufficientBalanceError):
            ledger.process_redemption(cashier, "cashier", pending.id)

        # the stamp is rolled back with the failed debit
        assert not read(lambda sel: sel.get_transaction(pending.id)).is_processed
        assert account_state(alice).reserved_points == 50
