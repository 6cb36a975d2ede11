"""Tests for mirroring manual transactions into the ledger."""

from datetime import date
from decimal import Decimal

import pytest

from ledgerkit.domain.entities import EntryType, LinkKind, LinkStatus
from ledgerkit.domain.ledger_sync import LedgerSyncService, legacy_ref

OWNER = 1


@pytest.fixture
def sync_service(temp_db, settings):
    """Create a LedgerSyncService with a temporary database."""
    return LedgerSyncService(temp_db, settings)


def _raw_transaction(db, account_id, amount, description="Padaria", day=date(2024, 3, 1), **kwargs):
    return db.create_transaction(
        owner_id=OWNER,
        account_id=account_id,
        date=day,
        amount=Decimal(amount),
        entry_type=EntryType.INCOME if Decimal(amount) > 0 else EntryType.EXPENSE,
        description=description,
        **kwargs,
    )


def test_sync_creates_entry_with_legacy_ref(sync_service, temp_db, accounts):
    txn_id = _raw_transaction(temp_db, accounts["checking"].id, "-15.50")

    result = sync_service.sync_for_transactions(OWNER, [txn_id])

    assert (result.created, result.updated, result.attached, result.linked) == (1, 0, 0, 0)
    entry = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(txn_id))
    assert entry.external_ref == f"legacy:{txn_id}"
    assert entry.amount_cents == -1550
    assert entry.type == EntryType.EXPENSE
    assert entry.merchant_key == "padaria"
    assert entry.fingerprint is not None


def test_sync_twice_updates_instead_of_duplicating(sync_service, temp_db, accounts):
    txn_id = _raw_transaction(temp_db, accounts["checking"].id, "-15.50")
    sync_service.sync_for_transactions(OWNER, [txn_id])

    result = sync_service.sync_for_transactions(OWNER, [txn_id, txn_id])

    assert (result.created, result.updated) == (0, 1)
    assert len(temp_db.list_ledger_entries(OWNER)) == 1


def test_sync_attaches_to_imported_twin(sync_service, temp_db, accounts, import_entries):
    import_entries(accounts["checking"].id, [(date(2024, 3, 1), -1550, "PADARIA")])
    txn_id = _raw_transaction(temp_db, accounts["checking"].id, "-15.50", description="Padaria")

    result = sync_service.sync_for_transactions(OWNER, [txn_id])

    assert result.attached == 1
    entries = temp_db.list_ledger_entries(OWNER)
    assert len(entries) == 1
    assert entries[0].external_ref == legacy_ref(txn_id)
    assert entries[0].import_batch_id is not None


def test_sync_skips_unknown_and_foreign_transactions(sync_service, temp_db, accounts):
    txn_id = _raw_transaction(temp_db, accounts["checking"].id, "-15.50")

    result = sync_service.sync_for_transactions(2, [txn_id, 9999])

    assert (result.created, result.updated, result.attached) == (0, 0, 0)
    assert temp_db.list_ledger_entries(OWNER) == []


def test_update_rederives_entry(transaction_service, temp_db, accounts):
    txn_id = transaction_service.create_transaction(
        OWNER, accounts["checking"].id, date(2024, 3, 1), Decimal("-15.50"), "Padaria"
    )
    before = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(txn_id))

    transaction_service.update_transaction(
        OWNER, txn_id, date=date(2024, 3, 2), amount=Decimal("20.00"), description="Reembolso"
    )

    after = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(txn_id))
    assert after.id == before.id
    assert after.posted_at == date(2024, 3, 2)
    assert after.amount_cents == 2000
    assert after.type == EntryType.INCOME
    assert after.normalized_description == "REEMBOLSO"
    assert after.fingerprint != before.fingerprint


def test_update_onto_an_imported_occurrence_drops_fingerprint(transaction_service, temp_db, accounts, import_entries):
    import_entries(accounts["checking"].id, [(date(2024, 3, 2), -900, "CAFE")])
    txn_id = transaction_service.create_transaction(
        OWNER, accounts["checking"].id, date(2024, 3, 1), Decimal("-15.50"), "Padaria"
    )

    transaction_service.update_transaction(
        OWNER, txn_id, date=date(2024, 3, 2), amount=Decimal("-9.00"), description="Cafe"
    )

    entry = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(txn_id))
    assert entry.fingerprint is None
    assert len(temp_db.list_ledger_entries(OWNER)) == 2


def test_manual_transfer_is_linked(transaction_service, temp_db, accounts):
    out_id, in_id = transaction_service.create_transfer(
        OWNER, accounts["checking"].id, accounts["savings"].id, date(2024, 3, 5), Decimal("500.00")
    )

    out_entry = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(out_id))
    in_entry = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(in_id))
    assert out_entry.type == EntryType.TRANSFER
    assert in_entry.type == EntryType.TRANSFER
    assert out_entry.original_type == EntryType.EXPENSE
    assert in_entry.original_type == EntryType.INCOME
    assert out_entry.transfer_link_id == in_entry.transfer_link_id

    link = temp_db.get_transfer_link(out_entry.transfer_link_id)
    assert link.kind == LinkKind.AUTO
    assert link.status == LinkStatus.CONFIRMED
    assert out_entry.description == "Transfer Checking -> Savings"


def test_paying_the_card_is_a_card_payment(transaction_service, temp_db, accounts):
    out_id, _ = transaction_service.create_transfer(
        OWNER, accounts["checking"].id, accounts["card"].id, date(2024, 3, 10), Decimal("1234.56"), "Fatura"
    )
    entry = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(out_id))
    assert temp_db.get_transfer_link(entry.transfer_link_id).kind == LinkKind.CARD_PAYMENT


def test_updating_transfer_relinks_both_sides(transaction_service, temp_db, accounts):
    out_id, in_id = transaction_service.create_transfer(
        OWNER, accounts["checking"].id, accounts["savings"].id, date(2024, 3, 5), Decimal("500.00")
    )

    transaction_service.update_transaction(OWNER, in_id, amount=Decimal("300.00"), date=date(2024, 3, 6))

    out_entry = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(out_id))
    in_entry = temp_db.get_entry_by_external_ref(OWNER, legacy_ref(in_id))
    assert (out_entry.amount_cents, in_entry.amount_cents) == (-30000, 30000)
    assert out_entry.posted_at == in_entry.posted_at == date(2024, 3, 6)
    assert out_entry.transfer_link_id is not None
    assert out_entry.transfer_link_id == in_entry.transfer_link_id
    assert len(temp_db.list_transfer_links(OWNER)) == 1


def test_deleting_one_side_removes_the_transfer(transaction_service, temp_db, accounts):
    out_id, in_id = transaction_service.create_transfer(
        OWNER, accounts["checking"].id, accounts["savings"].id, date(2024, 3, 5), Decimal("500.00")
    )

    assert transaction_service.delete_transaction(OWNER, in_id) == 2

    assert temp_db.get_transaction(out_id) is None
    assert temp_db.list_ledger_entries(OWNER) == []
    assert temp_db.list_transfer_links(OWNER) == []


def test_deleting_a_matched_transaction_reverts_the_imported_side(
    transaction_service, matcher, temp_db, accounts, import_entries
):
    txn_id = transaction_service.create_transaction(
        OWNER, accounts["checking"].id, date(2024, 3, 5), Decimal("-500.00"), "PIX ENVIADO: EU MESMO"
    )
    import_entries(accounts["savings"].id, [(date(2024, 3, 5), 50000, "PIX RECEBIDO: EU MESMO")], institution="Nubank")
    assert matcher.run(OWNER).matched == 1

    transaction_service.delete_transaction(OWNER, txn_id)

    remaining = temp_db.list_ledger_entries(OWNER)
    assert len(remaining) == 1
    assert remaining[0].type == EntryType.INCOME
    assert remaining[0].transfer_link_id is None
    assert temp_db.list_transfer_links(OWNER) == []


def test_resolve_cascade_includes_counterpart(sync_service, transaction_service, accounts):
    out_id, in_id = transaction_service.create_transfer(
        OWNER, accounts["checking"].id, accounts["savings"].id, date(2024, 3, 5), Decimal("500.00")
    )
    assert sorted(sync_service.resolve_cascade(OWNER, [out_id])) == sorted([out_id, in_id])
    assert sync_service.resolve_cascade(OWNER, [9999]) == [9999]
