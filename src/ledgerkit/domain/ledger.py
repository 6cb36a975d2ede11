"""Ledger writer domain service."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from ledgerkit.config import DEFAULT_SETTINGS, ReconciliationSettings
from ledgerkit.database.base import Database
from ledgerkit.domain.entities import (
    Account,
    ColumnMapping,
    Direction,
    EntryType,
    ImportKind,
    ImportRequest,
    ImportResult,
    ImportRow,
    LedgerEntry,
    StatementImport,
)
from ledgerkit.domain.errors import (
    ConflictError,
    CreditAccountManualNotAllowedError,
    NotFoundError,
    ValidationError,
    account_not_found,
    category_not_found,
    credit_account_manual,
    entry_not_found,
    institution_not_found,
    not_a_credit_account,
)
from ledgerkit.domain.fingerprint import build_file_hash, build_fingerprint
from ledgerkit.domain.matcher import TransferMatcher
from ledgerkit.domain.normalizer import normalize_statement
from ledgerkit.utils.amount_parser import to_cents
from ledgerkit.utils.text import build_merchant_key, normalize_text

logger = logging.getLogger(__name__)


def signed_cents(amount_cents: int, direction: Optional[Direction]) -> int:
    """Apply an explicit direction to an amount; the direction wins over the sign."""
    if direction is None:
        return int(amount_cents)
    magnitude = abs(int(amount_cents))
    return magnitude if Direction(direction) == Direction.IN else -magnitude


def type_for_amount(amount_cents: int) -> EntryType:
    """Income for money in, expense for money out."""
    return EntryType.INCOME if amount_cents > 0 else EntryType.EXPENSE


def direction_for_amount(amount_cents: int) -> Direction:
    return Direction.IN if amount_cents > 0 else Direction.OUT


class LedgerService:
    """Service writing statement rows and manual entries to the ledger."""

    def __init__(self, db: Database, settings: Optional[ReconciliationSettings] = None):
        """Initialize ledger service.

        Args:
            db: Database instance
            settings: Reconciliation settings used by the normalizer
        """
        self.db = db
        self.settings = settings or DEFAULT_SETTINGS
        self.matcher = TransferMatcher(db, self.settings)

    def _resolve_institution_id(self, request: ImportRequest) -> int:
        if request.institution_id is not None:
            if self.db.get_institution(request.institution_id) is None:
                raise NotFoundError(institution_not_found(request.institution_id))
            return request.institution_id
        if request.institution_name and request.institution_name.strip():
            return self.db.get_or_create_institution(request.institution_name).id
        raise ValidationError("An import needs an institution id or name")

    def _owned_account(self, owner_id: int, account_id: int) -> Account:
        account = self.db.get_account(account_id)
        if account is None or account.owner_id != owner_id:
            raise NotFoundError(account_not_found(account_id))
        return account

    def _duplicate_result(self, batch_id: int, row_count: int) -> ImportResult:
        return ImportResult(
            batch_id=batch_id,
            imported=0,
            deduped=0,
            skipped=row_count,
            duplicate_import_source=True,
        )

    def import_rows(self, request: ImportRequest) -> ImportResult:
        """Write a batch of statement rows to the ledger exactly once.

        A file whose hash was already imported for the same owner and
        institution is rejected as a whole before any row is looked at. Rows
        whose fingerprint already exists (from an earlier file or earlier in
        this batch) are counted as deduped. Everything the batch writes is
        committed together or not at all.

        Args:
            request: Import request

        Returns:
            ImportResult with imported, deduped and skipped counts

        Raises:
            NotFoundError: If the institution or a default account does not exist
            ValidationError: If no institution is given, or a card statement
                targets an account that is not a credit account
            ConflictError: If a concurrent write collides with this batch
        """
        owner_id = request.owner_id
        institution_id = self._resolve_institution_id(request)

        existing = self.db.find_import_batch(owner_id, institution_id, request.file_hash)
        if existing is not None:
            logger.warning(
                "Skipping '%s': file already imported as batch %d", request.file_name, existing.id
            )
            return self._duplicate_result(existing.id, len(request.rows))

        card_statement = request.kind == ImportKind.CC_STATEMENT
        if card_statement:
            default_account_id = request.default_credit_card_account_id
        else:
            default_account_id = request.default_account_id
        if default_account_id is not None:
            default_account = self._owned_account(owner_id, default_account_id)
            if card_statement and not default_account.is_credit:
                raise ValidationError(not_a_credit_account(default_account.name))

        accounts = {account.id: account for account in self.db.list_accounts(owner_id)}
        prepared = []
        skipped = 0
        for row in request.rows:
            account_id = row.account_id or default_account_id
            if account_id is None or account_id not in accounts:
                skipped += 1
                continue
            if card_statement and not accounts[account_id].is_credit:
                raise ValidationError(not_a_credit_account(accounts[account_id].name))
            amount_cents = signed_cents(row.amount_cents, row.direction)
            normalized_description = normalize_text(row.description)
            if amount_cents == 0 or not normalized_description:
                skipped += 1
                continue
            entry_type = type_for_amount(amount_cents)
            fingerprint = build_fingerprint(
                owner_id,
                row.posted_at,
                normalized_description,
                amount_cents,
                entry_type,
                row.category_id,
            )
            prepared.append((row, account_id, amount_cents, entry_type, normalized_description, fingerprint))

        seen = self.db.existing_fingerprints(owner_id, [item[-1] for item in prepared])
        imported = 0
        deduped = 0
        try:
            with self.db.atomic():
                batch_id = self.db.create_import_batch(
                    owner_id=owner_id,
                    institution_id=institution_id,
                    kind=request.kind,
                    file_name=request.file_name,
                    file_hash=request.file_hash,
                )
                for row, account_id, amount_cents, entry_type, normalized, fingerprint in prepared:
                    if fingerprint in seen:
                        deduped += 1
                        continue
                    seen.add(fingerprint)
                    self.db.create_ledger_entry(
                        owner_id=owner_id,
                        account_id=account_id,
                        posted_at=row.posted_at,
                        amount_cents=amount_cents,
                        entry_type=entry_type,
                        direction=direction_for_amount(amount_cents),
                        description=row.description.strip(),
                        normalized_description=normalized,
                        merchant_key=build_merchant_key(row.description),
                        fingerprint=fingerprint,
                        category_id=row.category_id,
                        external_ref=row.external_id,
                        import_batch_id=batch_id,
                        balance_after_cents=row.balance_after_cents,
                    )
                    imported += 1
                self.db.update_import_batch_counts(batch_id, imported, deduped)
        except ConflictError:
            # Another import of the same source committed first
            existing = self.db.find_import_batch(owner_id, institution_id, request.file_hash)
            if existing is not None:
                logger.warning("Concurrent import of '%s' detected", request.file_name)
                return self._duplicate_result(existing.id, len(request.rows))
            raise

        logger.info(
            "Imported '%s' as batch %d: %d imported, %d deduped, %d skipped",
            request.file_name,
            batch_id,
            imported,
            deduped,
            skipped,
        )
        return ImportResult(
            batch_id=batch_id,
            imported=imported,
            deduped=deduped,
            skipped=skipped,
        )

    def _account_for_hint(self, accounts: list[Account], hint: Optional[str]) -> Optional[int]:
        if not hint:
            return None
        wanted = normalize_text(hint)
        for account in accounts:
            if normalize_text(account.name) == wanted:
                return account.id
        return None

    def import_statement(
        self,
        owner_id: int,
        content: bytes,
        file_name: str,
        kind: ImportKind = ImportKind.BANK_STATEMENT,
        institution_name: Optional[str] = None,
        institution_id: Optional[int] = None,
        default_account_id: Optional[int] = None,
        default_credit_card_account_id: Optional[int] = None,
        mapping: Optional[ColumnMapping] = None,
    ) -> StatementImport:
        """Normalize a raw statement file and import its valid rows.

        Args:
            owner_id: Owner of the entries
            content: Raw file bytes
            file_name: Original file name
            kind: Bank or credit card statement
            institution_name: Institution, created on first reference
            institution_id: Existing institution, instead of a name
            default_account_id: Account for rows without an account column match
            default_credit_card_account_id: Card account for credit card statements
            mapping: Column mapping; suggested from the header when None

        Returns:
            StatementImport with the import result and the normalization report
        """
        report = normalize_statement(content, mapping=mapping, settings=self.settings)
        accounts = self.db.list_accounts(owner_id)
        rows = tuple(
            ImportRow(
                posted_at=row.posted_at,
                amount_cents=row.amount_cents,
                description=row.description,
                account_id=self._account_for_hint(accounts, row.account_hint),
                external_id=row.external_id,
                balance_after_cents=row.balance_after_cents,
            )
            for row in report.rows
        )
        request = ImportRequest(
            owner_id=owner_id,
            kind=kind,
            file_name=file_name,
            file_hash=build_file_hash(content),
            rows=rows,
            institution_id=institution_id,
            institution_name=institution_name,
            default_account_id=default_account_id,
            default_credit_card_account_id=default_credit_card_account_id,
        )
        return StatementImport(result=self.import_rows(request), report=report)

    def create_manual_entry(
        self,
        owner_id: int,
        account_id: int,
        posted_at: date,
        amount: Decimal,
        description: str,
        category_id: Optional[int] = None,
        excluded: bool = False,
    ) -> int:
        """Create a ledger entry typed in by hand.

        Args:
            owner_id: Owner of the entry
            account_id: Target account
            posted_at: Posting date
            amount: Signed amount
            description: Description
            category_id: Optional category ID
            excluded: Keep the entry out of income/expense totals

        Returns:
            Ledger entry ID

        Raises:
            NotFoundError: If the account or category does not exist
            CreditAccountManualNotAllowedError: If the account is a credit account
            ValidationError: If the amount is zero or the description empty
            ConflictError: If the same occurrence is already in the ledger
        """
        account = self._owned_account(owner_id, account_id)
        if account.is_credit:
            raise CreditAccountManualNotAllowedError(credit_account_manual(account_id))
        if category_id is not None and self.db.get_category(category_id) is None:
            raise NotFoundError(category_not_found(category_id))

        amount_cents = to_cents(amount)
        normalized = normalize_text(description)
        if amount_cents == 0:
            raise ValidationError("Amount must not be zero")
        if not normalized:
            raise ValidationError("Description must not be empty")

        entry_type = type_for_amount(amount_cents)
        return self.db.create_ledger_entry(
            owner_id=owner_id,
            account_id=account_id,
            posted_at=posted_at,
            amount_cents=amount_cents,
            entry_type=entry_type,
            direction=direction_for_amount(amount_cents),
            description=description.strip(),
            normalized_description=normalized,
            merchant_key=build_merchant_key(description),
            fingerprint=build_fingerprint(
                owner_id, posted_at, normalized, amount_cents, entry_type, category_id
            ),
            category_id=category_id,
            excluded=excluded,
        )

    def get_entry(self, owner_id: int, entry_id: int) -> LedgerEntry:
        """Get an owner's ledger entry.

        Raises:
            NotFoundError: If the entry does not exist for the owner
        """
        entry = self.db.get_ledger_entry(entry_id)
        if entry is None or entry.owner_id != owner_id:
            raise NotFoundError(entry_not_found(entry_id))
        return entry

    def list_entries(
        self,
        owner_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        account_id: Optional[int] = None,
    ) -> list[LedgerEntry]:
        """List an owner's ledger entries by date."""
        return self.db.list_ledger_entries(
            owner_id, start_date=start_date, end_date=end_date, account_id=account_id
        )

    def set_excluded(self, owner_id: int, entry_id: int, excluded: bool) -> None:
        """Include or exclude an entry from income/expense totals."""
        self.get_entry(owner_id, entry_id)
        self.db.update_ledger_entry(entry_id, excluded=excluded)

    def delete_entry(self, owner_id: int, entry_id: int) -> None:
        """Delete an entry, unlinking its transfer counterpart first.

        Raises:
            NotFoundError: If the entry does not exist for the owner
        """
        self.get_entry(owner_id, entry_id)
        with self.db.atomic():
            self.matcher.remove_entry_links(entry_id)
            # Removing the link already deletes a written card-side payment
            if self.db.get_ledger_entry(entry_id) is not None:
                self.db.delete_ledger_entry(entry_id)
        logger.info("Deleted ledger entry %d", entry_id)
