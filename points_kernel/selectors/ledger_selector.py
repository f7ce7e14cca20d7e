"""
Module: points_kernel.selectors.ledger_selector
Responsibility: Read-only queries over the points ledger: transaction
    lookup, per-account history, balance reconstruction and pool status.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - computed_balance() is derived only from ledger rows:
        sum(applied_points where beneficiary = account)
      + sum(points_delta of reconciliations for account)
      It never reads Account.points, so verify_balance() is an independent
      check of the stored total.

Audit relevance:
    verify_balance() and pool_status() are the conservation checks run by
    tests and by operators after incidents.
"""

from sqlalchemy import func, select

from points_kernel.domain.dtos import BalanceCheck, PoolStatus, TransactionRecord
from points_kernel.exceptions import (
    AccountNotFoundError,
    EventNotFoundError,
    TransactionNotFoundError,
)
from points_kernel.models.account import Account
from points_kernel.models.event import EventGuest, LoyaltyEvent
from points_kernel.models.reconciliation import SuspicionReconciliation
from points_kernel.models.transaction import LedgerTransaction, TransactionType
from points_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[LedgerTransaction]):
    """Read side of the points ledger."""

    def _account(self, ref: int | str) -> Account:
        if isinstance(ref, str):
            stmt = select(Account).where(Account.utorid == ref)
        else:
            stmt = select(Account).where(Account.id == ref)
        account = self.session.execute(stmt).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(ref)
        return account

    def get_transaction(self, transaction_id: int) -> TransactionRecord:
        """
        Raises:
            TransactionNotFoundError: If the id does not exist.
        """
        tx = self.session.get(LedgerTransaction, transaction_id)
        if tx is None:
            raise TransactionNotFoundError(transaction_id)
        return TransactionRecord.from_model(tx)

    def transactions_for_account(self, account: int | str) -> list[TransactionRecord]:
        """Every transaction whose beneficiary is ``account``, oldest first."""
        account_id = self._account(account).id
        rows = self.session.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.beneficiary_id == account_id)
            .order_by(LedgerTransaction.id)
        ).scalars().all()
        return [TransactionRecord.from_model(tx) for tx in rows]

    def pending_redemptions(self, account: int | str | None = None) -> list[TransactionRecord]:
        """Unprocessed redemptions, optionally limited to one account."""
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.transaction_type == TransactionType.REDEMPTION.value,
            LedgerTransaction.processed_by_id.is_(None),
        )
        if account is not None:
            stmt = stmt.where(LedgerTransaction.beneficiary_id == self._account(account).id)
        rows = self.session.execute(stmt.order_by(LedgerTransaction.id)).scalars().all()
        return [TransactionRecord.from_model(tx) for tx in rows]

    def computed_balance(self, account: int | str) -> int:
        """Balance rebuilt from ledger and reconciliation rows."""
        account_id = self._account(account).id
        applied = self.session.execute(
            select(func.coalesce(func.sum(LedgerTransaction.applied_points), 0)).where(
                LedgerTransaction.beneficiary_id == account_id
            )
        ).scalar_one()
        reconciled = self.session.execute(
            select(func.coalesce(func.sum(SuspicionReconciliation.points_delta), 0)).where(
                SuspicionReconciliation.account_id == account_id
            )
        ).scalar_one()
        return int(applied) + int(reconciled)

    def computed_reserved(self, account: int | str) -> int:
        """Sum of pending redemption amounts; must equal reserved_points."""
        account_id = self._account(account).id
        pending = self.session.execute(
            select(func.coalesce(func.sum(LedgerTransaction.points), 0)).where(
                LedgerTransaction.beneficiary_id == account_id,
                LedgerTransaction.transaction_type == TransactionType.REDEMPTION.value,
                LedgerTransaction.processed_by_id.is_(None),
            )
        ).scalar_one()
        return int(pending)

    def verify_balance(self, account: int | str) -> BalanceCheck:
        """Compare the stored balance with computed_balance()."""
        stored = self._account(account)
        return BalanceCheck(
            account_id=stored.id,
            stored=stored.points,
            computed=self.computed_balance(stored.id),
        )

    def pool_status(self, event_id: int) -> PoolStatus:
        """
        Raises:
            EventNotFoundError: If the event does not exist.
        """
        event = self.session.get(LoyaltyEvent, event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        guest_count = self.session.execute(
            select(func.count()).select_from(EventGuest).where(EventGuest.event_id == event_id)
        ).scalar_one()
        by_ledger = self.session.execute(
            select(func.coalesce(func.sum(LedgerTransaction.points), 0)).where(
                LedgerTransaction.transaction_type == TransactionType.EVENT.value,
                LedgerTransaction.related_id == event_id,
            )
        ).scalar_one()
        return PoolStatus(
            event_id=event.id,
            allocated=event.points_allocated,
            awarded=event.points_awarded,
            guest_count=int(guest_count),
            awarded_by_ledger=int(by_ledger),
        )
