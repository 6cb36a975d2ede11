"""Shared pytest fixtures for ledgerkit tests."""

import os
import tempfile
from datetime import date
from pathlib import Path

import pytest

from ledgerkit.config import ReconciliationSettings
from ledgerkit.database.factories import create_sqlite_database
from ledgerkit.domain.account import AccountService
from ledgerkit.domain.entities import AccountKind, ImportKind, ImportRequest, ImportRow
from ledgerkit.domain.fingerprint import build_file_hash
from ledgerkit.domain.ledger import LedgerService
from ledgerkit.domain.matcher import TransferMatcher
from ledgerkit.domain.metrics import MetricsService
from ledgerkit.domain.recurring import RecurringService
from ledgerkit.domain.transaction import TransactionService

OWNER = 1


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def settings():
    """Default reconciliation settings."""
    return ReconciliationSettings()


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def ledger_service(temp_db, settings):
    """Create a LedgerService with a temporary database."""
    return LedgerService(temp_db, settings)


@pytest.fixture
def matcher(temp_db, settings):
    """Create a TransferMatcher with a temporary database."""
    return TransferMatcher(temp_db, settings)


@pytest.fixture
def metrics_service(temp_db):
    """Create a MetricsService with a temporary database."""
    return MetricsService(temp_db)


@pytest.fixture
def recurring_service(temp_db, settings):
    """Create a RecurringService with a temporary database."""
    return RecurringService(temp_db, settings)


@pytest.fixture
def transaction_service(temp_db, settings):
    """Create a TransactionService with a temporary database."""
    return TransactionService(temp_db, settings)


@pytest.fixture
def accounts(account_service):
    """Create a checking account, a savings account and a credit card paid by checking."""
    checking = account_service.create_account(OWNER, "Checking", AccountKind.CHECKING, institution_name="Itau")
    savings = account_service.create_account(OWNER, "Savings", AccountKind.CHECKING, institution_name="Nubank")
    card = account_service.create_account(
        OWNER, "Visa", AccountKind.CREDIT, institution_name="Itau", parent_account_id=checking
    )
    return {
        "checking": account_service.get_account(OWNER, checking),
        "savings": account_service.get_account(OWNER, savings),
        "card": account_service.get_account(OWNER, card),
    }


@pytest.fixture
def import_entries(ledger_service):
    """Import rows for one account and return the ImportResult.

    Rows are (date, amount_cents, description) tuples.
    """
    counter = {"files": 0}

    def _import(account_id, rows, kind=ImportKind.BANK_STATEMENT, file_name=None, institution="Itau"):
        counter["files"] += 1
        file_name = file_name or f"statement-{counter['files']}.csv"
        import_rows = tuple(
            ImportRow(posted_at=posted_at, amount_cents=amount, description=description)
            for posted_at, amount, description in rows
        )
        request = ImportRequest(
            owner_id=OWNER,
            kind=kind,
            file_name=file_name,
            file_hash=build_file_hash(f"{file_name}:{account_id}:{rows!r}".encode("utf-8")),
            rows=import_rows,
            institution_name=institution,
            default_account_id=account_id,
            default_credit_card_account_id=account_id if kind == ImportKind.CC_STATEMENT else None,
        )
        return ledger_service.import_rows(request)

    return _import


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def today():
    """Fixed reference date for metrics tests."""
    return date(2024, 3, 20)
