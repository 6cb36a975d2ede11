"""Account domain service."""

from typing import Optional

from ledgerkit.database.base import Database
from ledgerkit.domain.entities import Account as AccountEntity, AccountKind
from ledgerkit.domain.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
    account_delete_blocked,
    account_not_found,
    duplicate_account_name,
)


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_account(
        self,
        owner_id: int,
        name: str,
        kind: AccountKind = AccountKind.CHECKING,
        currency: str = "BRL",
        institution_name: Optional[str] = None,
        parent_account_id: Optional[int] = None,
    ) -> int:
        """Create a new account.

        A credit card account can name the checking account that pays its
        bill as its parent; card payments from that account are then linked
        without looking at the description.

        Args:
            owner_id: Owner of the account
            name: Account name
            kind: Account kind
            currency: Currency code
            institution_name: Optional institution, created on first reference
            parent_account_id: Optional paying account

        Returns:
            Account ID

        Raises:
            ValidationError: If the name is empty
            ConflictError: If the owner already has an account with this name
            NotFoundError: If the parent account doesn't exist
        """
        name = name.strip()
        if not name:
            raise ValidationError("Account name must not be empty")

        # Check if account with same name exists
        for acc in self.db.list_accounts(owner_id):
            if acc.name == name:
                raise ConflictError(duplicate_account_name(name))

        if parent_account_id is not None:
            self.get_account(owner_id, parent_account_id)

        institution_id = None
        if institution_name and institution_name.strip():
            institution_id = self.db.get_or_create_institution(institution_name).id

        return self.db.create_account(
            owner_id=owner_id,
            name=name,
            kind=AccountKind(kind),
            currency=currency.upper(),
            institution_id=institution_id,
            parent_account_id=parent_account_id,
        )

    def get_account(self, owner_id: int, account_id: int) -> AccountEntity:
        """Get an owner's account by ID.

        Raises:
            NotFoundError: If the account doesn't exist for the owner
        """
        account = self.db.get_account(account_id)
        if account is None or account.owner_id != owner_id:
            raise NotFoundError(account_not_found(account_id))
        return account

    def find_account(self, owner_id: int, name_or_id: str) -> AccountEntity:
        """Resolve an account from its name or its numeric ID.

        Raises:
            NotFoundError: If no account matches
        """
        value = name_or_id.strip()
        for acc in self.db.list_accounts(owner_id):
            if acc.name == value:
                return acc
        if value.isdigit():
            return self.get_account(owner_id, int(value))
        raise NotFoundError(f"Account '{value}' not found")

    def list_accounts(self, owner_id: int) -> list[AccountEntity]:
        """List all accounts of an owner.

        Returns:
            List of account entities
        """
        return self.db.list_accounts(owner_id)

    def delete_account(self, owner_id: int, account_id: int) -> None:
        """Delete an account.

        Args:
            owner_id: Owner of the account
            account_id: Account ID to delete

        Raises:
            NotFoundError: If the account doesn't exist
            DependencyError: If ledger entries or transactions still use it
        """
        self.get_account(owner_id, account_id)

        entry_count = self.db.count_account_entries(account_id)
        transaction_count = self.db.count_account_transactions(account_id)
        if entry_count > 0 or transaction_count > 0:
            raise DependencyError(account_delete_blocked(account_id, entry_count, transaction_count))

        self.db.delete_account(account_id)
