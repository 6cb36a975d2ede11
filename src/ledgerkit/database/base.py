"""Abstract storage interfaces."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

# Import entities directly to avoid circular import through domain/__init__.py
from ledgerkit.domain.entities import (
    Account,
    AccountKind,
    Category,
    Direction,
    EntryType,
    ImportBatch,
    ImportKind,
    Institution,
    LedgerEntry,
    LinkKind,
    LinkStatus,
    Transaction,
    TransferLink,
)


class ImportStore(ABC):
    """Storage for institutions and import batches."""

    @abstractmethod
    def get_or_create_institution(self, name: str) -> Institution:
        """Find an institution by slug, creating it on first reference."""
        pass

    @abstractmethod
    def get_institution(self, institution_id: int) -> Optional[Institution]:
        """Get institution by ID."""
        pass

    @abstractmethod
    def find_import_batch(
        self, owner_id: int, institution_id: int, file_hash: str
    ) -> Optional[ImportBatch]:
        """Find a batch previously imported from the same file."""
        pass

    @abstractmethod
    def create_import_batch(
        self,
        owner_id: int,
        institution_id: int,
        kind: ImportKind,
        file_name: str,
        file_hash: str,
    ) -> int:
        """Record an import batch. Returns batch ID.

        Raises:
            ConflictError: If the same file was already recorded for the owner
                and institution.
        """
        pass

    @abstractmethod
    def update_import_batch_counts(
        self, batch_id: int, imported_count: int, duplicate_count: int
    ) -> None:
        """Store the final counts of a batch."""
        pass

    @abstractmethod
    def list_import_batches(self, owner_id: int) -> list[ImportBatch]:
        """List the owner's import batches, newest first."""
        pass


class LedgerStore(ABC):
    """Storage for accounts, categories, ledger entries and transfer links."""

    # Account operations
    @abstractmethod
    def create_account(
        self,
        owner_id: int,
        name: str,
        kind: AccountKind,
        currency: str = "BRL",
        institution_id: Optional[int] = None,
        parent_account_id: Optional[int] = None,
    ) -> int:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def list_accounts(self, owner_id: int) -> list[Account]:
        """List the owner's accounts."""
        pass

    @abstractmethod
    def delete_account(self, account_id: int) -> None:
        """Delete an account."""
        pass

    # Category operations
    @abstractmethod
    def create_category(self, owner_id: int, name: str) -> int:
        """Create a category. Returns category ID."""
        pass

    @abstractmethod
    def get_category(self, category_id: int) -> Optional[Category]:
        """Get category by ID."""
        pass

    @abstractmethod
    def list_categories(self, owner_id: int) -> list[Category]:
        """List the owner's categories."""
        pass

    # Ledger entry operations
    @abstractmethod
    def create_ledger_entry(
        self,
        owner_id: int,
        account_id: int,
        posted_at: date,
        amount_cents: int,
        entry_type: EntryType,
        direction: Direction,
        description: str,
        normalized_description: str,
        merchant_key: str,
        fingerprint: Optional[str] = None,
        category_id: Optional[int] = None,
        external_ref: Optional[str] = None,
        import_batch_id: Optional[int] = None,
        balance_after_cents: Optional[int] = None,
        excluded: bool = False,
    ) -> int:
        """Create a ledger entry. Returns entry ID.

        Raises:
            ConflictError: If the owner already has an entry with the fingerprint.
        """
        pass

    @abstractmethod
    def get_ledger_entry(self, entry_id: int) -> Optional[LedgerEntry]:
        """Get ledger entry by ID."""
        pass

    @abstractmethod
    def get_entry_by_external_ref(self, owner_id: int, external_ref: str) -> Optional[LedgerEntry]:
        """Get the entry mirroring an external record."""
        pass

    @abstractmethod
    def get_entry_by_fingerprint(self, owner_id: int, fingerprint: str) -> Optional[LedgerEntry]:
        """Get the owner's entry with the given fingerprint."""
        pass

    @abstractmethod
    def existing_fingerprints(self, owner_id: int, fingerprints: Iterable[str]) -> set[str]:
        """Return the subset of fingerprints already stored for the owner."""
        pass

    @abstractmethod
    def list_ledger_entries(
        self,
        owner_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        account_id: Optional[int] = None,
        entry_types: Optional[Iterable[EntryType]] = None,
        unlinked_only: bool = False,
        include_excluded: bool = True,
    ) -> list[LedgerEntry]:
        """List entries ordered by posted date, then ID."""
        pass

    @abstractmethod
    def update_ledger_entry(self, entry_id: int, **fields: Any) -> None:
        """Update fields of a ledger entry."""
        pass

    @abstractmethod
    def delete_ledger_entry(self, entry_id: int) -> None:
        """Delete a ledger entry."""
        pass

    @abstractmethod
    def count_account_entries(self, account_id: int) -> int:
        """Count entries posted to an account."""
        pass

    # Transfer link operations
    @abstractmethod
    def create_transfer_link(
        self,
        owner_id: int,
        out_entry_id: int,
        in_entry_id: int,
        kind: LinkKind,
        status: LinkStatus,
        confidence: Optional[float] = None,
        fee_delta_cents: int = 0,
    ) -> int:
        """Create a transfer link. Returns link ID.

        Raises:
            ConflictError: If the pair is already linked.
        """
        pass

    @abstractmethod
    def get_transfer_link(self, link_id: int) -> Optional[TransferLink]:
        """Get transfer link by ID."""
        pass

    @abstractmethod
    def list_transfer_links(
        self, owner_id: int, status: Optional[LinkStatus] = None
    ) -> list[TransferLink]:
        """List the owner's links, optionally by status."""
        pass

    @abstractmethod
    def links_for_entry(self, entry_id: int) -> list[TransferLink]:
        """List links touching an entry on either side."""
        pass

    @abstractmethod
    def update_transfer_link_status(self, link_id: int, status: LinkStatus) -> None:
        """Change the review status of a link."""
        pass

    @abstractmethod
    def delete_transfer_link(self, link_id: int) -> None:
        """Delete a transfer link."""
        pass


class TransactionStore(ABC):
    """Storage for manually entered transactions."""

    @abstractmethod
    def create_transaction(
        self,
        owner_id: int,
        account_id: int,
        date: date,
        amount: Decimal,
        entry_type: EntryType,
        description: Optional[str] = None,
        category_id: Optional[int] = None,
        transfer_group: Optional[str] = None,
        excluded: bool = False,
        notes: Optional[str] = None,
    ) -> int:
        """Create a transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def list_transactions(
        self,
        owner_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        account_id: Optional[int] = None,
        transfer_group: Optional[str] = None,
    ) -> list[Transaction]:
        """List transactions with optional filters."""
        pass

    @abstractmethod
    def update_transaction(self, transaction_id: int, **fields: Any) -> None:
        """Update fields of a transaction."""
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction."""
        pass

    @abstractmethod
    def count_account_transactions(self, account_id: int) -> int:
        """Count transactions posted to an account."""
        pass


class Database(LedgerStore, ImportStore, TransactionStore):
    """Abstract database interface for ledgerkit."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """Group writes into one transaction.

        Every write made inside the block is committed when the block exits
        normally and rolled back if it raises. Blocks may be nested; only the
        outermost one commits.
        """
        pass
