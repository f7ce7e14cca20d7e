"""
TransactionLedger -- append-only writer for ledger transactions and
suspicion reconciliations.

Responsibility:
    Append LedgerTransaction and SuspicionReconciliation rows, lock a
    transaction for fulfillment, and apply the one-time fulfillment stamp.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by LedgerEngine.

Invariants enforced:
    - append() is the only way ledger rows are created.
    - mark_processed() is a conditional UPDATE on processed_by_id IS NULL.
      Of two units stamping the same redemption, exactly one sees
      rowcount 1; the other raises AlreadyProcessedError.

Failure modes:
    - TransactionNotFoundError for an unknown id.
    - AlreadyProcessedError when the stamp guard matches no row.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import exists, select, update

from points_kernel.exceptions import AlreadyProcessedError, TransactionNotFoundError
from points_kernel.logging_config import get_logger
from points_kernel.models.reconciliation import SuspicionReconciliation
from points_kernel.models.transaction import LedgerTransaction, TransactionType
from points_kernel.services.base import BaseService

logger = get_logger("services.transaction_ledger")


class TransactionLedger(BaseService[LedgerTransaction]):
    """
    Append-only ledger writer.

    Contract:
        Rows are flushed immediately so their ids are available to later
        steps of the same atomic unit (transfer legs, promotion uses).
    """

    def append(
        self,
        transaction_type: TransactionType,
        beneficiary_id: int,
        points: int,
        applied_points: int,
        created_by_id: int,
        created_at: datetime,
        counterparty_id: int | None = None,
        face_amount: Decimal | None = None,
        related_id: int | None = None,
        promotion_ids: tuple[int, ...] = (),
        remark: str | None = None,
    ) -> LedgerTransaction:
        """
        Append one ledger row.

        Postconditions:
            The row is flushed and has an id.
        """
        tx = LedgerTransaction(
            transaction_type=transaction_type.value,
            beneficiary_id=beneficiary_id,
            counterparty_id=counterparty_id,
            points=points,
            applied_points=applied_points,
            face_amount=face_amount,
            related_id=related_id,
            promotion_ids=list(promotion_ids),
            remark=remark,
            created_by_id=created_by_id,
            created_at=created_at,
        )
        self.session.add(tx)
        self.session.flush()

        logger.debug(
            "ledger_transaction_appended",
            extra={
                "transaction_id": tx.id,
                "type": transaction_type.value,
                "beneficiary_id": beneficiary_id,
                "points": points,
                "applied_points": applied_points,
            },
        )
        return tx

    def exists(self, transaction_id: int) -> bool:
        return bool(
            self.session.execute(
                select(exists().where(LedgerTransaction.id == transaction_id))
            ).scalar()
        )

    def get(self, transaction_id: int) -> LedgerTransaction:
        """
        Raises:
            TransactionNotFoundError: If the id does not exist.
        """
        tx = self.session.get(LedgerTransaction, transaction_id)
        if tx is None:
            raise TransactionNotFoundError(transaction_id)
        return tx

    def lock(self, transaction_id: int) -> LedgerTransaction:
        """
        Lock a transaction row for update.

        Raises:
            TransactionNotFoundError: If the id does not exist.
        """
        tx = self.session.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if tx is None:
            raise TransactionNotFoundError(transaction_id)
        return tx

    def mark_processed(
        self,
        transaction_id: int,
        processed_by_id: int,
        processed_at: datetime,
        applied_points: int,
    ) -> None:
        """
        Stamp a pending redemption as fulfilled, exactly once.

        Raises:
            AlreadyProcessedError: If processed_by_id was already set.
        """
        result = self.session.execute(
            update(LedgerTransaction)
            .where(
                LedgerTransaction.id == transaction_id,
                LedgerTransaction.processed_by_id.is_(None),
            )
            .values(
                processed_by_id=processed_by_id,
                processed_at=processed_at,
                applied_points=applied_points,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.session.execute(
                select(LedgerTransaction.processed_by_id).where(
                    LedgerTransaction.id == transaction_id
                )
            ).scalar_one_or_none()
            raise AlreadyProcessedError(transaction_id, current)

        tx = self.session.get(LedgerTransaction, transaction_id)
        if tx is not None:
            self.session.refresh(tx)

    def record_reconciliation(
        self,
        account_id: int,
        transaction_id: int | None,
        suspicious: bool,
        points_delta: int,
        created_by_id: int,
        created_at: datetime,
    ) -> SuspicionReconciliation:
        row = SuspicionReconciliation(
            account_id=account_id,
            transaction_id=transaction_id,
            suspicious=suspicious,
            points_delta=points_delta,
            created_by_id=created_by_id,
            created_at=created_at,
        )
        self.session.add(row)
        self.session.flush()
        return row
