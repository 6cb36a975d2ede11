"""Smoke tests for the import, reconciliation and reporting commands."""

from datetime import date

import pytest

from ledgerkit.cli.main import cli

OWNER = 1


@pytest.fixture
def invoke(cli_runner, temp_db):
    """Invoke the CLI against the temporary database."""

    def _invoke(*args):
        return cli_runner.invoke(cli, ["--db-path", temp_db.database_path, *args])

    return _invoke


@pytest.fixture
def imported(invoke, accounts, fixtures_dir):
    """Import the checking statement and the card bill through the CLI."""
    bank = invoke("import", str(fixtures_dir / "itau_extrato.csv"), "--account", "Checking", "--institution", "Itau")
    card = invoke(
        "import",
        str(fixtures_dir / "card_fatura.csv"),
        "--account",
        "Checking",
        "--card-account",
        "Visa",
        "--kind",
        "card",
        "--institution",
        "Itau",
    )
    return bank, card


def test_help_does_not_need_a_database(cli_runner):
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "import" in result.output
    assert "recurring" in result.output


def test_import_reports_counts(imported):
    bank, card = imported

    assert bank.exit_code == 0
    assert "Import complete:" in bank.output
    assert "Rows read: 8" in bank.output
    assert "Imported: 4 entries" in bank.output
    assert "Ignored: 3, Errors: 1" in bank.output
    assert "invalid_date: 1" in bank.output

    assert card.exit_code == 0
    assert "Imported: 4 entries" in card.output
    # The bill payment on 10/03 lands on the card paid by Checking
    assert "Transfers linked: 1, suggested: 0" in card.output


def test_import_same_file_twice(invoke, imported, fixtures_dir):
    result = invoke("import", str(fixtures_dir / "itau_extrato.csv"), "--account", "Checking", "--institution", "ITAÚ")

    assert result.exit_code == 0
    assert "File already imported" in result.output


def test_import_unknown_account(invoke, accounts, fixtures_dir):
    result = invoke("import", str(fixtures_dir / "itau_extrato.csv"), "--account", "Nope", "--institution", "Itau")

    assert result.exit_code == 1
    assert "Error: Account 'Nope' not found" in result.output


def test_card_import_needs_a_card_account(invoke, accounts, fixtures_dir):
    fatura = str(fixtures_dir / "card_fatura.csv")
    result = invoke("import", fatura, "--account", "Checking", "--kind", "card", "--institution", "Itau")

    assert result.exit_code == 1
    assert "Error: Account 'Checking' is not a credit card account" in result.output

    result = invoke("import", fatura, "--account", "Visa", "--kind", "card", "--institution", "Itau")
    assert result.exit_code == 0
    assert "Imported: 4 entries" in result.output


def test_summary_for_march(invoke, imported):
    result = invoke("summary", "--start-date", "01/03/2024", "--end-date", "31/03/2024")

    assert result.exit_code == 0
    assert "Summary 2024-03-01 .. 2024-03-31" in result.output
    assert "5,000.00" in result.output
    assert "620.40" in result.output
    assert "4,379.60" in result.output
    assert "Previous period 2024-02-01 .. 2024-02-29" in result.output


def test_summary_for_one_account(invoke, imported):
    result = invoke("summary", "--start-date", "2024-03-01", "--end-date", "2024-03-31", "--account", "Visa")

    assert result.exit_code == 0
    assert "430.50" in result.output
    assert "5,000.00" not in result.output


def test_summary_rejects_inverted_range(invoke, accounts):
    result = invoke("summary", "--start-date", "2024-03-31", "--end-date", "2024-03-01")

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_trends_has_one_row_per_day(invoke, imported):
    result = invoke("trends", "--start-date", "2024-03-01", "--end-date", "2024-03-07")

    assert result.exit_code == 0
    rows = [line for line in result.output.splitlines() if line.startswith("2024-")]
    assert len(rows) == 7


def test_trends_by_month(invoke, imported):
    result = invoke("trends", "--start-date", "2024-01-01", "--end-date", "2024-03-31", "--granularity", "month")

    assert result.exit_code == 0
    rows = [line for line in result.output.splitlines() if line.startswith("2024-")]
    assert [row.split(" ")[0] for row in rows] == ["2024-01-01", "2024-02-01", "2024-03-01"]


def test_balances(invoke, imported):
    result = invoke("balances")

    assert result.exit_code == 0
    assert "Checking" in result.output
    assert "3,575.54" in result.output
    assert "Card debt" in result.output
    assert "-804.06" in result.output


def test_suggestion_review_flow(invoke, temp_db, accounts, import_entries):
    import_entries(accounts["checking"].id, [(date(2024, 3, 1), -100000, "TED ENVIADA")])
    import_entries(accounts["savings"].id, [(date(2024, 3, 1), 99850, "TED RECEBIDA")], institution="Nubank")

    result = invoke("match")
    assert result.exit_code == 0
    assert "Linked 0 transfers, 1 waiting for review." in result.output

    result = invoke("inbox")
    assert result.exit_code == 0
    assert "TRANSFER: Checking -> Savings" in result.output
    assert "1.50" in result.output

    link_id = temp_db.list_transfer_links(OWNER)[0].id
    result = invoke("confirm", str(link_id))
    assert result.exit_code == 0
    assert f"Confirmed transfer {link_id}" in result.output

    assert "Inbox is empty." in invoke("inbox").output

    result = invoke("confirm", str(link_id))
    assert result.exit_code == 1
    assert "Error:" in result.output

    result = invoke("unlink", str(link_id))
    assert result.exit_code == 0
    assert f"Removed transfer link {link_id}" in result.output


def test_reject_suggestion(invoke, temp_db, accounts, import_entries):
    import_entries(accounts["checking"].id, [(date(2024, 3, 1), -100000, "TED ENVIADA")])
    import_entries(accounts["savings"].id, [(date(2024, 3, 1), 99850, "TED RECEBIDA")], institution="Nubank")
    invoke("match")
    link_id = temp_db.list_transfer_links(OWNER)[0].id

    result = invoke("reject", str(link_id))
    assert result.exit_code == 0
    assert f"Rejected transfer suggestion {link_id}" in result.output

    result = invoke("match")
    assert "Linked 0 transfers, 0 waiting for review." in result.output


def test_unknown_link_shows_error_code_when_verbose(invoke, accounts):
    result = invoke("confirm", "999")
    assert result.exit_code == 1
    assert "Error: Transfer link 999 not found" in result.output

    result = invoke("--verbose", "reject", "999")
    assert result.exit_code == 1
    assert "Error [NOT_FOUND]:" in result.output


def test_recurring(invoke, accounts, import_entries):
    import_entries(
        accounts["checking"].id,
        [(date(2024, month, 15), -3990, "NETFLIX.COM") for month in (1, 2, 3)],
    )

    result = invoke("recurring", "--as-of", "2024-03-20")

    assert result.exit_code == 0
    assert "NETFLIX.COM" in result.output
    assert "2024-04-15" in result.output
    assert "Estimated monthly total: 39.90" in result.output


def test_recurring_empty(invoke, accounts):
    result = invoke("recurring", "--as-of", "2024-03-20")

    assert result.exit_code == 0
    assert "No recurring charges found." in result.output


def test_owner_option_scopes_data(cli_runner, temp_db, accounts):
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "--owner", "2", "account", "list"])

    assert result.exit_code == 0
    assert "No accounts found" in result.output


def test_transfer_window_option(cli_runner, temp_db, accounts, import_entries):
    import_entries(accounts["checking"].id, [(date(2024, 3, 1), -50000, "TED")])
    import_entries(accounts["savings"].id, [(date(2024, 3, 5), 50000, "TED")], institution="Nubank")

    narrow = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "match"])
    wide = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "--transfer-window-days", "5", "match"])

    assert "Linked 0 transfers" in narrow.output
    assert "Linked 1 transfers" in wide.output
