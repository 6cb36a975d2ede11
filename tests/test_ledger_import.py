"""Tests for the fingerprint deduper and ledger writer."""

from datetime import date
from decimal import Decimal

import pytest

from ledgerkit.domain.entities import Direction, EntryType, ImportKind, ImportRequest, ImportRow
from ledgerkit.domain.errors import (
    ConflictError,
    CreditAccountManualNotAllowedError,
    NotFoundError,
    ValidationError,
)
from ledgerkit.domain.fingerprint import build_file_hash

OWNER = 1


def _request(rows, account_id, file_hash="hash-1", kind=ImportKind.BANK_STATEMENT, **kwargs):
    return ImportRequest(
        owner_id=OWNER,
        kind=kind,
        file_name="extrato.csv",
        file_hash=file_hash,
        rows=tuple(rows),
        institution_name="Itau",
        default_account_id=account_id,
        **kwargs,
    )


def test_import_rows_writes_entries(ledger_service, accounts):
    checking = accounts["checking"]
    result = ledger_service.import_rows(
        _request(
            [
                ImportRow(date(2024, 3, 1), -1500, "Padaria"),
                ImportRow(date(2024, 3, 2), 500000, "Salario"),
            ],
            checking.id,
        )
    )

    assert result.imported == 2
    assert result.deduped == 0
    assert result.skipped == 0
    assert not result.duplicate_import_source

    entries = ledger_service.list_entries(OWNER)
    assert [e.amount_cents for e in entries] == [-1500, 500000]
    assert [e.type for e in entries] == [EntryType.EXPENSE, EntryType.INCOME]
    assert all(e.import_batch_id == result.batch_id for e in entries)
    assert entries[0].normalized_description == "PADARIA"


def test_reimporting_same_file_is_a_duplicate_source(ledger_service, accounts):
    rows = [ImportRow(date(2024, 3, 1), -1500, "Padaria")]
    first = ledger_service.import_rows(_request(rows, accounts["checking"].id))
    second = ledger_service.import_rows(_request(rows, accounts["checking"].id))

    assert second.duplicate_import_source
    assert second.imported == 0
    assert second.batch_id == first.batch_id
    assert len(ledger_service.list_entries(OWNER)) == 1


def test_overlapping_files_are_deduped_by_fingerprint(ledger_service, accounts):
    account_id = accounts["checking"].id
    ledger_service.import_rows(
        _request(
            [ImportRow(date(2024, 3, 1), -1500, "Padaria"), ImportRow(date(2024, 3, 2), -900, "Cafe")],
            account_id,
            file_hash="march-1",
        )
    )
    result = ledger_service.import_rows(
        _request(
            [ImportRow(date(2024, 3, 2), -900, "CAFÉ"), ImportRow(date(2024, 3, 3), -2000, "Mercado")],
            account_id,
            file_hash="march-2",
        )
    )

    assert result.imported == 1
    assert result.deduped == 1
    assert len(ledger_service.list_entries(OWNER)) == 3


def test_repeated_row_within_a_file_is_deduped(ledger_service, accounts):
    row = ImportRow(date(2024, 3, 1), -1500, "Padaria")
    result = ledger_service.import_rows(_request([row, row], accounts["checking"].id))
    assert result.imported == 1
    assert result.deduped == 1


def test_invalid_rows_are_skipped(ledger_service, accounts):
    result = ledger_service.import_rows(
        _request(
            [
                ImportRow(date(2024, 3, 1), 0, "Zero"),
                ImportRow(date(2024, 3, 1), -100, "  "),
                ImportRow(date(2024, 3, 1), -100, "Unknown account", account_id=9999),
                ImportRow(date(2024, 3, 1), -100, "Ok"),
            ],
            accounts["checking"].id,
        )
    )
    assert result.imported == 1
    assert result.skipped == 3


def test_direction_overrides_amount_sign(ledger_service, accounts):
    ledger_service.import_rows(
        _request([ImportRow(date(2024, 3, 1), 1500, "Tarifa", direction=Direction.OUT)], accounts["checking"].id)
    )
    entry = ledger_service.list_entries(OWNER)[0]
    assert entry.amount_cents == -1500
    assert entry.type == EntryType.EXPENSE


def test_card_statement_uses_card_account(ledger_service, accounts):
    result = ledger_service.import_rows(
        _request(
            [ImportRow(date(2024, 3, 5), -25000, "Supermercado"), ImportRow(date(2024, 3, 10), 123456, "Pagamento recebido")],
            accounts["checking"].id,
            kind=ImportKind.CC_STATEMENT,
            default_credit_card_account_id=accounts["card"].id,
        )
    )
    assert result.imported == 2
    entries = ledger_service.list_entries(OWNER, account_id=accounts["card"].id)
    assert [e.amount_cents for e in entries] == [-25000, 123456]


def test_card_statement_needs_a_credit_account(ledger_service, accounts, temp_db):
    rows = [ImportRow(date(2024, 3, 5), -30000, "Loja")]

    with pytest.raises(ValidationError):
        ledger_service.import_rows(
            _request(rows, None, kind=ImportKind.CC_STATEMENT, default_credit_card_account_id=accounts["checking"].id)
        )

    assert ledger_service.list_entries(OWNER) == []
    assert temp_db.list_import_batches(OWNER) == []


def test_card_statement_does_not_fall_back_to_the_bank_account(ledger_service, accounts):
    result = ledger_service.import_rows(
        _request([ImportRow(date(2024, 3, 5), -30000, "Loja")], accounts["checking"].id, kind=ImportKind.CC_STATEMENT)
    )

    assert result.imported == 0
    assert result.skipped == 1
    assert ledger_service.list_entries(OWNER) == []


def test_card_statement_row_on_a_bank_account_is_rejected(ledger_service, accounts):
    rows = [
        ImportRow(date(2024, 3, 5), -30000, "Loja"),
        ImportRow(date(2024, 3, 6), -1000, "Cafe", account_id=accounts["checking"].id),
    ]

    with pytest.raises(ValidationError):
        ledger_service.import_rows(
            _request(rows, None, kind=ImportKind.CC_STATEMENT, default_credit_card_account_id=accounts["card"].id)
        )
    assert ledger_service.list_entries(OWNER) == []


def test_failed_batch_leaves_nothing_behind(ledger_service, accounts, temp_db, monkeypatch):
    """A failure halfway through a batch rolls back the batch and every entry."""
    original = temp_db.create_ledger_entry
    calls = {"count": 0}

    def failing_create(**kwargs):
        calls["count"] += 1
        if calls["count"] == 2:
            raise RuntimeError("disk full")
        return original(**kwargs)

    monkeypatch.setattr(temp_db, "create_ledger_entry", failing_create)
    rows = [ImportRow(date(2024, 3, 1), -1500, "Padaria"), ImportRow(date(2024, 3, 2), -900, "Cafe")]

    with pytest.raises(RuntimeError):
        ledger_service.import_rows(_request(rows, accounts["checking"].id))

    assert ledger_service.list_entries(OWNER) == []
    assert temp_db.list_import_batches(OWNER) == []

    # The same file can be imported once the problem is gone
    monkeypatch.setattr(temp_db, "create_ledger_entry", original)
    result = ledger_service.import_rows(_request(rows, accounts["checking"].id))
    assert result.imported == 2


def test_import_needs_an_institution(ledger_service, accounts):
    request = ImportRequest(
        owner_id=OWNER,
        kind=ImportKind.BANK_STATEMENT,
        file_name="x.csv",
        file_hash="x",
        rows=(),
        default_account_id=accounts["checking"].id,
    )
    with pytest.raises(ValidationError):
        ledger_service.import_rows(request)


def test_import_rejects_unknown_default_account(ledger_service, accounts):
    with pytest.raises(NotFoundError):
        ledger_service.import_rows(_request([], 9999))


def test_import_statement_from_file(ledger_service, accounts, fixtures_dir):
    content = (fixtures_dir / "itau_extrato.csv").read_bytes()
    outcome = ledger_service.import_statement(
        owner_id=OWNER,
        content=content,
        file_name="itau_extrato.csv",
        institution_name="Itau",
        default_account_id=accounts["checking"].id,
    )

    assert outcome.result.imported == 4
    assert outcome.report.summary.total_rows == 8
    entries = ledger_service.list_entries(OWNER)
    assert entries[0].balance_after_cents == 85000
    assert entries[0].merchant_key == "joao silva"

    again = ledger_service.import_statement(
        owner_id=OWNER,
        content=content,
        file_name="copy.csv",
        institution_name="ITAÚ",
        default_account_id=accounts["checking"].id,
    )
    assert again.result.duplicate_import_source


def test_import_ofx_statement(ledger_service, accounts, fixtures_dir):
    content = (fixtures_dir / "extrato.ofx").read_bytes()
    outcome = ledger_service.import_statement(
        owner_id=OWNER,
        content=content,
        file_name="extrato.ofx",
        institution_name="Itau",
        default_account_id=accounts["checking"].id,
    )

    assert outcome.result.imported == 3
    assert outcome.report.summary.error_rows == 1
    entries = ledger_service.list_entries(OWNER)
    assert [e.external_ref for e in entries] == ["202403020001", "202403050001", "202403080001"]
    # The bank account number matches no account name, so rows land on the default
    assert all(e.account_id == accounts["checking"].id for e in entries)


def test_same_file_for_another_institution_is_deduped_by_rows(ledger_service, accounts, fixtures_dir):
    content = (fixtures_dir / "card_fatura.csv").read_bytes()
    kwargs = dict(
        owner_id=OWNER,
        content=content,
        file_name="fatura.csv",
        kind=ImportKind.CC_STATEMENT,
        default_credit_card_account_id=accounts["card"].id,
    )
    ledger_service.import_statement(institution_name="Itau", **kwargs)
    outcome = ledger_service.import_statement(institution_name="Nubank", **kwargs)

    assert not outcome.result.duplicate_import_source
    assert outcome.result.imported == 0
    assert outcome.result.deduped == 4


def test_manual_entry_on_credit_account_is_rejected(ledger_service, accounts):
    with pytest.raises(CreditAccountManualNotAllowedError) as excinfo:
        ledger_service.create_manual_entry(
            OWNER, accounts["card"].id, date(2024, 3, 1), Decimal("-10.00"), "Lanche"
        )
    assert excinfo.value.code == "CREDIT_ACCOUNT_MANUAL_NOT_ALLOWED"
    assert isinstance(excinfo.value, ValidationError)
    assert ledger_service.list_entries(OWNER) == []


def test_manual_entry_duplicate_conflicts(ledger_service, accounts):
    args = (OWNER, accounts["checking"].id, date(2024, 3, 1), Decimal("-10.00"), "Lanche")
    entry_id = ledger_service.create_manual_entry(*args)
    assert ledger_service.get_entry(OWNER, entry_id).amount_cents == -1000

    with pytest.raises(ConflictError):
        ledger_service.create_manual_entry(*args)
    assert len(ledger_service.list_entries(OWNER)) == 1


def test_manual_entry_validation(ledger_service, accounts):
    with pytest.raises(ValidationError):
        ledger_service.create_manual_entry(OWNER, accounts["checking"].id, date(2024, 3, 1), Decimal("0"), "X")
    with pytest.raises(ValidationError):
        ledger_service.create_manual_entry(OWNER, accounts["checking"].id, date(2024, 3, 1), Decimal("1"), " ")
    with pytest.raises(NotFoundError):
        ledger_service.create_manual_entry(2, accounts["checking"].id, date(2024, 3, 1), Decimal("1"), "X")


def test_get_entry_of_other_owner_is_not_found(ledger_service, accounts):
    entry_id = ledger_service.create_manual_entry(
        OWNER, accounts["checking"].id, date(2024, 3, 1), Decimal("10"), "Pix"
    )
    with pytest.raises(NotFoundError):
        ledger_service.get_entry(2, entry_id)


def test_set_excluded_and_delete(ledger_service, accounts):
    entry_id = ledger_service.create_manual_entry(
        OWNER, accounts["checking"].id, date(2024, 3, 1), Decimal("-10"), "Reembolso empresa"
    )
    ledger_service.set_excluded(OWNER, entry_id, True)
    assert ledger_service.get_entry(OWNER, entry_id).excluded

    ledger_service.delete_entry(OWNER, entry_id)
    with pytest.raises(NotFoundError):
        ledger_service.get_entry(OWNER, entry_id)


def test_file_hash_is_content_based():
    assert build_file_hash(b"a;b\n1;2\n") != build_file_hash(b"a;b\n1;3\n")
