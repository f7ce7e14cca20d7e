"""
AccountStore -- locked reads and guarded balance updates for accounts.

Responsibility:
    Resolve accounts by id or utorid, lock them for the current atomic
    unit, and move their balance and reservation counters.

Architecture position:
    Kernel > Services -- imperative shell.  Called only by LedgerEngine.

Invariants enforced:
    - Locks are taken with SELECT ... FOR UPDATE in ascending id order, so
      two units locking the same pair of accounts cannot deadlock.
    - Counters are moved with store-level UPDATE statements, never by
      read-modify-write on a loaded value.  Debits carry their guard in
      the WHERE clause and check rowcount:
        debit_available   points - reserved_points >= amount
        reserve           points - reserved_points >= amount
        settle_reserved   reserved_points >= amount AND points >= amount
    - After every counter update the ORM copy is refreshed so later reads
      in the same unit see the stored value.

Failure modes:
    - AccountNotFoundError for unknown ids or utorids.
    - InsufficientBalanceError when a guarded update matches no row.
"""

from collections.abc import Iterable

from sqlalchemy import select, update

from points_kernel.exceptions import AccountNotFoundError, InsufficientBalanceError
from points_kernel.logging_config import get_logger
from points_kernel.models.account import Account
from points_kernel.services.base import BaseService

logger = get_logger("services.account_store")

AccountRef = int | str


class AccountStore(BaseService[Account]):
    """
    Account persistence for the ledger engine.

    Contract:
        Every mutating method runs inside the caller's transaction and
        flushes only.
    """

    def _by_ref(self, ref: AccountRef):
        if isinstance(ref, str):
            return select(Account).where(Account.utorid == ref)
        return select(Account).where(Account.id == ref)

    def find(self, ref: AccountRef) -> Account | None:
        """Load an account without locking it.  None if absent."""
        return self.session.execute(self._by_ref(ref)).scalar_one_or_none()

    def get(self, ref: AccountRef) -> Account:
        """
        Load an account without locking it.

        Raises:
            AccountNotFoundError: If no account matches ``ref``.
        """
        account = self.find(ref)
        if account is None:
            raise AccountNotFoundError(ref)
        return account

    def resolve_id(self, ref: AccountRef) -> int:
        """Map an id or utorid to an account id."""
        if isinstance(ref, int):
            found = self.session.execute(
                select(Account.id).where(Account.id == ref)
            ).scalar_one_or_none()
        else:
            found = self.session.execute(
                select(Account.id).where(Account.utorid == ref)
            ).scalar_one_or_none()
        if found is None:
            raise AccountNotFoundError(ref)
        return found

    def lock(self, account_ids: Iterable[int]) -> dict[int, Account]:
        """
        Lock accounts for update in ascending id order.

        Postconditions:
            Returns {id: Account} with fresh values for every id.

        Raises:
            AccountNotFoundError: If any id is absent.
        """
        ordered = sorted(set(account_ids))
        locked: dict[int, Account] = {}
        for account_id in ordered:
            account = self.session.execute(
                select(Account)
                .where(Account.id == account_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if account is None:
                raise AccountNotFoundError(account_id)
            locked[account_id] = account
        return locked

    def lock_one(self, ref: AccountRef) -> Account:
        account_id = self.resolve_id(ref)
        return self.lock([account_id])[account_id]

    def _refresh(self, account_id: int) -> None:
        account = self.session.get(Account, account_id)
        if account is not None:
            self.session.refresh(account)

    def credit(self, account_id: int, amount: int) -> None:
        """
        Add a signed ``amount`` to points with no floor.

        Used for purchases, event awards, transfer credits, adjustments and
        suspicious reconciliation.
        """
        if amount == 0:
            return
        self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(points=Account.points + amount)
            .execution_options(synchronize_session=False)
        )
        self._refresh(account_id)

    def debit_available(self, account_id: int, amount: int) -> None:
        """
        Subtract ``amount`` from points if the available balance covers it.

        Raises:
            InsufficientBalanceError: If points - reserved_points < amount.
        """
        result = self.session.execute(
            update(Account)
            .where(
                Account.id == account_id,
                Account.points - Account.reserved_points >= amount,
            )
            .values(points=Account.points - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._raise_insufficient(account_id, amount)
        self._refresh(account_id)

    def reserve(self, account_id: int, amount: int) -> None:
        """
        Hold ``amount`` points for a pending redemption.

        Raises:
            InsufficientBalanceError: If points - reserved_points < amount.
        """
        result = self.session.execute(
            update(Account)
            .where(
                Account.id == account_id,
                Account.points - Account.reserved_points >= amount,
            )
            .values(reserved_points=Account.reserved_points + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._raise_insufficient(account_id, amount)
        self._refresh(account_id)

    def settle_reserved(self, account_id: int, amount: int) -> None:
        """
        Debit a previously reserved ``amount`` and release the reservation.

        Raises:
            InsufficientBalanceError: If points < amount (a later adjustment
                or reconciliation reduced the balance below the hold).
        """
        result = self.session.execute(
            update(Account)
            .where(
                Account.id == account_id,
                Account.reserved_points >= amount,
                Account.points >= amount,
            )
            .values(
                points=Account.points - amount,
                reserved_points=Account.reserved_points - amount,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._raise_insufficient(account_id, amount, available_column="points")
        self._refresh(account_id)

    def set_suspicious(self, account_id: int, suspicious: bool) -> None:
        self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(suspicious=suspicious)
            .execution_options(synchronize_session=False)
        )
        self._refresh(account_id)

    def _raise_insufficient(
        self,
        account_id: int,
        amount: int,
        available_column: str = "available",
    ) -> None:
        account = self.session.execute(
            select(Account)
            .where(Account.id == account_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        available = (
            account.points if available_column == "points" else account.available_points
        )
        logger.info(
            "balance_guard_rejected",
            extra={
                "account_id": account_id,
                "requested": amount,
                "available": available,
            },
        )
        raise InsufficientBalanceError(account_id, amount, available)
