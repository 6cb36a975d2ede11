"""Mapper functions to convert SQLAlchemy models into domain entities.

This layer isolates the conversion logic, so the domain never sees ORM
objects or the string encodings of enum columns.
"""

from decimal import Decimal

from ledgerkit.domain import entities as domain
from ledgerkit.database.models import (
    Account as ORMAccount,
    Category as ORMCategory,
    ImportBatch as ORMImportBatch,
    Institution as ORMInstitution,
    LedgerEntry as ORMLedgerEntry,
    Transaction as ORMTransaction,
    TransferLink as ORMTransferLink,
)


def institution_to_domain(orm_institution: ORMInstitution) -> domain.Institution:
    """Convert SQLAlchemy Institution model to domain Institution entity."""
    return domain.Institution(
        id=orm_institution.id,
        name=orm_institution.name,
        slug=orm_institution.slug,
        created_at=orm_institution.created_at,
    )


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        owner_id=orm_account.owner_id,
        name=orm_account.name,
        kind=domain.AccountKind(orm_account.kind),
        currency=orm_account.currency,
        institution_id=orm_account.institution_id,
        parent_account_id=orm_account.parent_account_id,
        created_at=orm_account.created_at,
    )


def category_to_domain(orm_category: ORMCategory) -> domain.Category:
    """Convert SQLAlchemy Category model to domain Category entity."""
    return domain.Category(
        id=orm_category.id,
        owner_id=orm_category.owner_id,
        name=orm_category.name,
        created_at=orm_category.created_at,
    )


def import_batch_to_domain(orm_batch: ORMImportBatch) -> domain.ImportBatch:
    """Convert SQLAlchemy ImportBatch model to domain ImportBatch entity."""
    return domain.ImportBatch(
        id=orm_batch.id,
        owner_id=orm_batch.owner_id,
        institution_id=orm_batch.institution_id,
        kind=domain.ImportKind(orm_batch.kind),
        file_name=orm_batch.file_name,
        file_hash=orm_batch.file_hash,
        imported_count=orm_batch.imported_count,
        duplicate_count=orm_batch.duplicate_count,
        created_at=orm_batch.created_at,
    )


def ledger_entry_to_domain(orm_entry: ORMLedgerEntry) -> domain.LedgerEntry:
    """Convert SQLAlchemy LedgerEntry model to domain LedgerEntry entity."""
    return domain.LedgerEntry(
        id=orm_entry.id,
        owner_id=orm_entry.owner_id,
        account_id=orm_entry.account_id,
        posted_at=orm_entry.posted_at,
        amount_cents=orm_entry.amount_cents,
        type=domain.EntryType(orm_entry.type),
        original_type=domain.EntryType(orm_entry.original_type),
        direction=domain.Direction(orm_entry.direction),
        description=orm_entry.description,
        normalized_description=orm_entry.normalized_description,
        merchant_key=orm_entry.merchant_key,
        category_id=orm_entry.category_id,
        external_ref=orm_entry.external_ref,
        fingerprint=orm_entry.fingerprint,
        transfer_link_id=orm_entry.transfer_link_id,
        import_batch_id=orm_entry.import_batch_id,
        balance_after_cents=orm_entry.balance_after_cents,
        fee_adjusted=bool(orm_entry.fee_adjusted),
        excluded=bool(orm_entry.excluded),
        created_at=orm_entry.created_at,
    )


def transfer_link_to_domain(orm_link: ORMTransferLink) -> domain.TransferLink:
    """Convert SQLAlchemy TransferLink model to domain TransferLink entity."""
    return domain.TransferLink(
        id=orm_link.id,
        owner_id=orm_link.owner_id,
        out_entry_id=orm_link.out_entry_id,
        in_entry_id=orm_link.in_entry_id,
        kind=domain.LinkKind(orm_link.kind),
        status=domain.LinkStatus(orm_link.status),
        confidence=orm_link.confidence,
        fee_delta_cents=orm_link.fee_delta_cents,
        created_at=orm_link.created_at,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        owner_id=orm_transaction.owner_id,
        account_id=orm_transaction.account_id,
        date=orm_transaction.date,
        amount=Decimal(orm_transaction.amount),
        description=orm_transaction.description,
        category_id=orm_transaction.category_id,
        type=domain.EntryType(orm_transaction.type),
        transfer_group=orm_transaction.transfer_group,
        excluded=bool(orm_transaction.excluded),
        notes=orm_transaction.notes,
        created_at=orm_transaction.created_at,
    )
