"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """

    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""

    code = "VALIDATION_ERROR"


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""

    code = "NOT_FOUND"


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""

    code = "CONFLICT"


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""

    code = "DEPENDENCY"


class CreditAccountManualNotAllowedError(ValidationError):
    """Manual entries cannot be written to credit accounts."""

    code = "CREDIT_ACCOUNT_MANUAL_NOT_ALLOWED"


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def category_not_found(category_id: int) -> str:
    """Return message for missing category by ID."""
    return f"Category {category_id} not found"


def entry_not_found(entry_id: int) -> str:
    """Return message for missing ledger entry."""
    return f"Ledger entry {entry_id} not found"


def transaction_not_found(transaction_id: int) -> str:
    """Return message for missing manual transaction."""
    return f"Transaction {transaction_id} not found"


def link_not_found(link_id: int) -> str:
    """Return message for missing transfer link."""
    return f"Transfer link {link_id} not found"


def institution_not_found(institution_id: int) -> str:
    """Return message for missing institution."""
    return f"Institution {institution_id} not found"


def credit_account_manual(account_id: int) -> str:
    """Return message when a manual entry targets a credit account."""
    return (
        f"Account {account_id} is a credit account: entries must come from an "
        "imported statement or a matched transfer"
    )


def duplicate_account_name(name: str) -> str:
    """Return message for duplicate account name."""
    return f"Account with name '{name}' already exists"


def account_delete_blocked(account_id: int, entry_count: int, transaction_count: int) -> str:
    """Return message when account has dependent entries or transactions."""
    parts = []
    if entry_count > 0:
        parts.append(f"{entry_count} ledger entr{'ies' if entry_count != 1 else 'y'}")
    if transaction_count > 0:
        parts.append(f"{transaction_count} transaction{'s' if transaction_count != 1 else ''}")
    return (
        f"Cannot delete account {account_id}: it has {', '.join(parts)}. "
        "Please delete them first."
    )


def not_a_credit_account(name: str) -> str:
    """Return message when a card statement targets a non-credit account."""
    return f"Account '{name}' is not a credit card account; card statements need one"
