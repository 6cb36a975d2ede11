"""Mirror manually entered transactions into the ledger."""

import logging
from typing import Iterable, Optional

from ledgerkit.config import ReconciliationSettings
from ledgerkit.database.base import Database
from ledgerkit.domain.entities import (
    Direction,
    EntryType,
    LedgerEntry,
    LinkKind,
    SyncResult,
    Transaction,
)
from ledgerkit.domain.fingerprint import build_fingerprint
from ledgerkit.domain.matcher import TransferMatcher
from ledgerkit.utils.amount_parser import to_cents
from ledgerkit.utils.text import build_merchant_key, normalize_text

logger = logging.getLogger(__name__)

EXTERNAL_REF_PREFIX = "legacy:"


def legacy_ref(transaction_id: int) -> str:
    """External reference of the entry mirroring a transaction."""
    return f"{EXTERNAL_REF_PREFIX}{transaction_id}"


class LedgerSyncService:
    """Keeps one ledger entry per manual transaction."""

    def __init__(self, db: Database, settings: Optional[ReconciliationSettings] = None):
        self.db = db
        self.matcher = TransferMatcher(db, settings)

    def _entry_fields(self, owner_id: int, txn: Transaction) -> dict:
        amount_cents = to_cents(txn.amount)
        if txn.type == EntryType.TRANSFER:
            # Transfer sides start as plain movements until linked
            entry_type = EntryType.INCOME if amount_cents > 0 else EntryType.EXPENSE
        else:
            entry_type = txn.type
        description = (txn.description or "").strip()
        normalized = normalize_text(description)
        return {
            "account_id": txn.account_id,
            "posted_at": txn.date,
            "amount_cents": amount_cents,
            "type": entry_type,
            "direction": Direction.IN if amount_cents > 0 else Direction.OUT,
            "description": description,
            "normalized_description": normalized,
            "merchant_key": build_merchant_key(description),
            "category_id": txn.category_id,
            "excluded": txn.excluded,
            "fingerprint": build_fingerprint(
                owner_id, txn.date, normalized, amount_cents, entry_type, txn.category_id
            ),
        }

    def _free_fingerprint(self, owner_id: int, fingerprint: str, entry_id: Optional[int]) -> Optional[str]:
        """Return the fingerprint unless another entry already holds it."""
        holder = self.db.get_entry_by_fingerprint(owner_id, fingerprint)
        if holder is None or holder.id == entry_id:
            return fingerprint
        return None

    def _sync_one(self, owner_id: int, txn: Transaction) -> str:
        ref = legacy_ref(txn.id)
        fields = self._entry_fields(owner_id, txn)
        entry = self.db.get_entry_by_external_ref(owner_id, ref)

        if entry is None:
            twin = self.db.get_entry_by_fingerprint(owner_id, fields["fingerprint"])
            if twin is not None and twin.external_ref is None:
                # Already imported from a statement: adopt it instead of duplicating
                self.db.update_ledger_entry(twin.id, external_ref=ref)
                return "attached"
            self.db.create_ledger_entry(
                owner_id=owner_id,
                account_id=fields["account_id"],
                posted_at=fields["posted_at"],
                amount_cents=fields["amount_cents"],
                entry_type=fields["type"],
                direction=fields["direction"],
                description=fields["description"],
                normalized_description=fields["normalized_description"],
                merchant_key=fields["merchant_key"],
                fingerprint=None if twin is not None else fields["fingerprint"],
                category_id=fields["category_id"],
                external_ref=ref,
                excluded=fields["excluded"],
            )
            return "created"

        self.matcher.remove_entry_links(entry.id)
        fields["fingerprint"] = self._free_fingerprint(owner_id, fields["fingerprint"], entry.id)
        self.db.update_ledger_entry(
            entry.id,
            original_type=fields["type"],
            transfer_link_id=None,
            fee_adjusted=False,
            **fields,
        )
        return "updated"

    def _link_group(self, owner_id: int, transfer_group: str) -> int:
        """Link the two mirrored sides of a manual transfer."""
        members = self.db.list_transactions(owner_id, transfer_group=transfer_group)
        if len(members) != 2:
            return 0
        entries: list[LedgerEntry] = []
        for txn in members:
            entry = self.db.get_entry_by_external_ref(owner_id, legacy_ref(txn.id))
            if entry is None or entry.transfer_link_id is not None:
                return 0
            entries.append(entry)

        out_entry = next((e for e in entries if e.direction == Direction.OUT), None)
        in_entry = next((e for e in entries if e.direction == Direction.IN), None)
        if out_entry is None or in_entry is None:
            return 0

        in_account = self.db.get_account(in_entry.account_id)
        kind = LinkKind.CARD_PAYMENT if in_account is not None and in_account.is_credit else LinkKind.AUTO
        self.matcher.link_entries(owner_id, out_entry.id, in_entry.id, kind)
        return 1

    def sync_for_transactions(self, owner_id: int, transaction_ids: Iterable[int]) -> SyncResult:
        """Create or re-derive the ledger entries of the given transactions.

        New transactions get an entry with external reference
        ``legacy:<id>``; when an imported entry with the same fingerprint
        already exists, the reference is attached to it instead. Existing
        entries are unlinked and re-derived. Both sides of a manual transfer
        are linked once mirrored.

        Args:
            owner_id: Owner of the transactions
            transaction_ids: Transaction IDs that were created or edited

        Returns:
            SyncResult with created, updated, attached and linked counts
        """
        counts = {"created": 0, "updated": 0, "attached": 0}
        linked = 0
        groups: list[str] = []
        with self.db.atomic():
            for transaction_id in dict.fromkeys(transaction_ids):
                txn = self.db.get_transaction(transaction_id)
                if txn is None or txn.owner_id != owner_id:
                    logger.debug("Transaction %s not found for owner %s, skipping", transaction_id, owner_id)
                    continue
                counts[self._sync_one(owner_id, txn)] += 1
                if txn.transfer_group and txn.transfer_group not in groups:
                    groups.append(txn.transfer_group)
            for group in groups:
                linked += self._link_group(owner_id, group)

        logger.debug("Ledger sync for owner %s: %s, %d linked", owner_id, counts, linked)
        return SyncResult(linked=linked, **counts)

    def resolve_cascade(self, owner_id: int, transaction_ids: Iterable[int]) -> list[int]:
        """Expand transaction IDs with the other side of their transfers."""
        resolved: dict[int, None] = {}
        for transaction_id in transaction_ids:
            resolved[transaction_id] = None
            txn = self.db.get_transaction(transaction_id)
            if txn is None or txn.owner_id != owner_id or not txn.transfer_group:
                continue
            for member in self.db.list_transactions(owner_id, transfer_group=txn.transfer_group):
                resolved[member.id] = None
        return list(resolved)

    def delete_for_transactions(self, owner_id: int, transaction_ids: Iterable[int]) -> int:
        """Remove the ledger entries of deleted transactions.

        The cascade includes the transfer counterpart of every transaction.
        Links touching the removed entries are dropped and the surviving
        sides revert to their original type.

        Args:
            owner_id: Owner of the transactions
            transaction_ids: Transaction IDs being deleted

        Returns:
            Number of ledger entries removed
        """
        removed = 0
        with self.db.atomic():
            for transaction_id in self.resolve_cascade(owner_id, transaction_ids):
                entry = self.db.get_entry_by_external_ref(owner_id, legacy_ref(transaction_id))
                if entry is None:
                    continue
                self.matcher.remove_entry_links(entry.id)
                self.db.delete_ledger_entry(entry.id)
                removed += 1
        logger.debug("Removed %d mirrored entries for owner %s", removed, owner_id)
        return removed
