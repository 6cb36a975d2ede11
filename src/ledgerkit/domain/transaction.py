"""Transaction domain service."""

import uuid
from typing import Optional
from datetime import date
from decimal import Decimal

from ledgerkit.config import ReconciliationSettings
from ledgerkit.database.base import Database
from ledgerkit.domain.entities import Account, EntryType, Transaction as TransactionEntity
from ledgerkit.domain.errors import (
    CreditAccountManualNotAllowedError,
    NotFoundError,
    ValidationError,
    account_not_found,
    category_not_found,
    credit_account_manual,
    transaction_not_found,
)
from ledgerkit.domain.ledger_sync import LedgerSyncService


class TransactionService:
    """Service for managing manually entered transactions.

    Every write is mirrored into the ledger through LedgerSyncService in the
    same database transaction.
    """

    def __init__(self, db: Database, settings: Optional[ReconciliationSettings] = None):
        """Initialize transaction service.

        Args:
            db: Database instance
            settings: Reconciliation settings for the ledger mirror
        """
        self.db = db
        self.sync = LedgerSyncService(db, settings)

    def _get_account(self, owner_id: int, account_id: int) -> Account:
        account = self.db.get_account(account_id)
        if account is None or account.owner_id != owner_id:
            raise NotFoundError(account_not_found(account_id))
        return account

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None and self.db.get_category(category_id) is None:
            raise NotFoundError(category_not_found(category_id))

    def create_transaction(
        self,
        owner_id: int,
        account_id: int,
        date: date,
        amount: Decimal,
        description: Optional[str] = None,
        category_id: Optional[int] = None,
        notes: Optional[str] = None,
        excluded: bool = False,
    ) -> int:
        """Create an income or expense transaction.

        Args:
            owner_id: Owner of the transaction
            account_id: Account ID
            date: Transaction date
            amount: Signed amount (negative for expenses)
            description: Optional description
            category_id: Optional category ID
            notes: Optional notes
            excluded: Keep the transaction out of income/expense totals

        Returns:
            Transaction ID

        Raises:
            NotFoundError: If the account or category doesn't exist
            CreditAccountManualNotAllowedError: If the account is a credit account
            ValidationError: If the amount is zero
        """
        account = self._get_account(owner_id, account_id)
        if account.is_credit:
            raise CreditAccountManualNotAllowedError(credit_account_manual(account_id))
        self._check_category(category_id)
        if amount == 0:
            raise ValidationError("Amount must not be zero")

        with self.db.atomic():
            transaction_id = self.db.create_transaction(
                owner_id=owner_id,
                account_id=account_id,
                date=date,
                amount=amount,
                entry_type=EntryType.INCOME if amount > 0 else EntryType.EXPENSE,
                description=description,
                category_id=category_id,
                excluded=excluded,
                notes=notes,
            )
            self.sync.sync_for_transactions(owner_id, [transaction_id])
        return transaction_id

    def create_transfer(
        self,
        owner_id: int,
        from_account_id: int,
        to_account_id: int,
        date: date,
        amount: Decimal,
        description: Optional[str] = None,
    ) -> tuple[int, int]:
        """Create both sides of a transfer between two accounts.

        Paying a credit card is a transfer into the card account.

        Args:
            owner_id: Owner of the accounts
            from_account_id: Account the money leaves
            to_account_id: Account the money enters
            date: Transfer date
            amount: Positive amount moved
            description: Optional description

        Returns:
            Tuple of (outgoing transaction ID, incoming transaction ID)

        Raises:
            NotFoundError: If either account doesn't exist
            ValidationError: If the amount is not positive or the accounts are the same
        """
        if amount <= 0:
            raise ValidationError("Transfer amount must be positive")
        if from_account_id == to_account_id:
            raise ValidationError("Cannot transfer to the same account")
        from_account = self._get_account(owner_id, from_account_id)
        to_account = self._get_account(owner_id, to_account_id)
        if from_account.is_credit:
            raise CreditAccountManualNotAllowedError(credit_account_manual(from_account_id))

        group = uuid.uuid4().hex
        label = description or f"Transfer {from_account.name} -> {to_account.name}"
        with self.db.atomic():
            out_id = self.db.create_transaction(
                owner_id=owner_id,
                account_id=from_account_id,
                date=date,
                amount=-amount,
                entry_type=EntryType.TRANSFER,
                description=label,
                transfer_group=group,
            )
            in_id = self.db.create_transaction(
                owner_id=owner_id,
                account_id=to_account_id,
                date=date,
                amount=amount,
                entry_type=EntryType.TRANSFER,
                description=label,
                transfer_group=group,
            )
            self.sync.sync_for_transactions(owner_id, [out_id, in_id])
        return out_id, in_id

    def get_transaction(self, owner_id: int, transaction_id: int) -> TransactionEntity:
        """Get transaction by ID.

        Raises:
            NotFoundError: If the transaction doesn't exist for the owner
        """
        txn = self.db.get_transaction(transaction_id)
        if txn is None or txn.owner_id != owner_id:
            raise NotFoundError(transaction_not_found(transaction_id))
        return txn

    def list_transactions(
        self,
        owner_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        account_id: Optional[int] = None,
    ) -> list[TransactionEntity]:
        """List transactions, newest first."""
        return self.db.list_transactions(
            owner_id, start_date=start_date, end_date=end_date, account_id=account_id
        )

    def update_transaction(
        self,
        owner_id: int,
        transaction_id: int,
        date: Optional[date] = None,
        amount: Optional[Decimal] = None,
        description: Optional[str] = None,
        category_id: Optional[int] = None,
        notes: Optional[str] = None,
        excluded: Optional[bool] = None,
        clear_category: bool = False,
    ) -> None:
        """Update a transaction and re-derive its ledger entry.

        For a transfer, date and amount changes apply to both sides.

        Args:
            owner_id: Owner of the transaction
            transaction_id: Transaction ID to update
            date: New date
            amount: New amount (for transfers, the positive amount moved)
            description: New description
            category_id: New category ID
            notes: New notes
            excluded: New excluded flag
            clear_category: Remove the category

        Raises:
            NotFoundError: If the transaction or category doesn't exist
            ValidationError: If the new amount is zero
        """
        txn = self.get_transaction(owner_id, transaction_id)
        self._check_category(category_id)
        if amount is not None and amount == 0:
            raise ValidationError("Amount must not be zero")

        changes: dict = {}
        if date is not None:
            changes["date"] = date
        if description is not None:
            changes["description"] = description
        if notes is not None:
            changes["notes"] = notes
        if excluded is not None:
            changes["excluded"] = excluded
        if clear_category:
            changes["category_id"] = None
        elif category_id is not None:
            changes["category_id"] = category_id

        members = [txn]
        if txn.transfer_group:
            members = self.db.list_transactions(owner_id, transfer_group=txn.transfer_group)

        with self.db.atomic():
            for member in members:
                member_changes = dict(changes) if member.id == txn.id else {}
                if txn.transfer_group:
                    if date is not None:
                        member_changes["date"] = date
                    if amount is not None:
                        member_changes["amount"] = abs(amount) if member.amount > 0 else -abs(amount)
                elif amount is not None:
                    member_changes["amount"] = amount
                    member_changes["type"] = EntryType.INCOME if amount > 0 else EntryType.EXPENSE
                if member_changes:
                    self.db.update_transaction(member.id, **member_changes)
            self.sync.sync_for_transactions(owner_id, [member.id for member in members])

    def delete_transaction(self, owner_id: int, transaction_id: int) -> int:
        """Delete a transaction, and the other side when it is a transfer.

        Returns:
            Number of transactions deleted

        Raises:
            NotFoundError: If the transaction doesn't exist for the owner
        """
        self.get_transaction(owner_id, transaction_id)
        cascade = self.sync.resolve_cascade(owner_id, [transaction_id])
        with self.db.atomic():
            self.sync.delete_for_transactions(owner_id, cascade)
            for member_id in cascade:
                self.db.delete_transaction(member_id)
        return len(cascade)
