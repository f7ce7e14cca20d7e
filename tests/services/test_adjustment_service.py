"""
Tests for manager adjustments.
"""

import pytest

from points_kernel.exceptions import (
    AccountNotFoundError,
    TransactionNotFoundError,
    UnauthorizedError,
)


@pytest.fixture
def funded(make_account, read):
    """An account with 100 points and the id of its funding purchase."""
    account_id = make_account(points=100)
    purchase_id = read(lambda sel: sel.transactions_for_account(account_id))[0].id
    return account_id, purchase_id


class TestAdjustment:

    def test_positive_adjustment(self, ledger, manager, funded, account_state, read):
        alice, purchase_id = funded

        tx = ledger.adjust(manager, "manager", alice, 25, related_id=purchase_id, remark="goodwill").record

        assert tx.type == "adjustment"
        assert tx.points == tx.applied_points == 25
        assert tx.related_id == purchase_id
        assert tx.remark == "goodwill"
        assert account_state(alice).points == 125
        assert read(lambda sel: sel.verify_balance(alice)).matches

    def test_negative_adjustment_may_go_below_zero(self, ledger, manager, funded, account_state, read):
        alice, purchase_id = funded

        ledger.adjust(manager, "manager", alice, -150, related_id=purchase_id)

        assert account_state(alice).points == -50
        assert read(lambda sel: sel.verify_balance(alice)).matches

    def test_related_to_another_accounts_transaction(self, ledger, manager, funded, make_account, account_state):
        _, purchase_id = funded
        bob = make_account()
        ledger.adjust(manager, "manager", bob, 10, related_id=purchase_id)
        assert account_state(bob).points == 10

    def test_superuser_may_adjust(self, ledger, funded, make_account, account_state):
        alice, purchase_id = funded
        root = make_account(role="superuser")
        ledger.adjust(root, "superuser", alice, 1, related_id=purchase_id)
        assert account_state(alice).points == 101


class TestAdjustmentRejections:

    def test_cashier_cannot_adjust(self, ledger, cashier, funded):
        alice, purchase_id = funded
        with pytest.raises(UnauthorizedError):
            ledger.adjust(cashier, "cashier", alice, 10, related_id=purchase_id)

    def test_missing_related_transaction(self, ledger, manager, funded, account_state):
        alice, _ = funded
        with pytest.raises(TransactionNotFoundError) as exc_info:
            ledger.adjust(manager, "manager", alice, 10, related_id=424242)
        assert exc_info.value.transaction_id == 424242
        assert account_state(alice).points == 100

    def test_unknown_beneficiary(self, ledger, manager, funded):
        _, purchase_id = funded
        with pytest.raises(AccountNotFoundError):
            ledger.adjust(manager, "manager", "ghost", 10, related_id=purchase_id)
