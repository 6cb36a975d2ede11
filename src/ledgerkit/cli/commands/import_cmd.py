"""Statement import command."""

from pathlib import Path

import click

from ledgerkit.cli.error_handling import handle_domain_error
from ledgerkit.domain.account import AccountService
from ledgerkit.domain.entities import ImportKind, RowStatus
from ledgerkit.domain.ledger import LedgerService
from ledgerkit.domain.matcher import TransferMatcher


@click.command("import")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--account", "account", required=True, help="Account the rows belong to (name or ID)")
@click.option("--institution", required=True, help="Institution that issued the statement")
@click.option(
    "--kind",
    type=click.Choice(["bank", "card"]),
    default="bank",
    show_default=True,
    help="Bank account or credit card statement",
)
@click.option("--card-account", help="Card account for credit card statements (defaults to --account)")
@click.option("--match/--no-match", default=True, show_default=True, help="Run the transfer matcher afterwards")
@click.option("--show-errors", is_flag=True, help="List every row that was ignored or rejected")
@click.pass_context
def import_statement(
    ctx,
    statement_file: str,
    account: str,
    institution: str,
    kind: str,
    card_account: str | None,
    match: bool,
    show_errors: bool,
):
    """Import a CSV or TXT statement.

    Examples:
        ledgerkit import extrato.csv --account Checking --institution Itau
        ledgerkit import fatura.csv --account Checking --card-account Visa --kind card --institution Itau
    """
    db = ctx.obj["db"]
    owner_id = ctx.obj["owner_id"]
    settings = ctx.obj["settings"]
    accounts = AccountService(db)
    service = LedgerService(db, settings)

    try:
        default_account = accounts.find_account(owner_id, account)
        if card_account:
            card = accounts.find_account(owner_id, card_account)
        else:
            card = default_account if kind == "card" else None
        outcome = service.import_statement(
            owner_id=owner_id,
            content=Path(statement_file).read_bytes(),
            file_name=Path(statement_file).name,
            kind=ImportKind.CC_STATEMENT if kind == "card" else ImportKind.BANK_STATEMENT,
            institution_name=institution,
            default_account_id=default_account.id,
            default_credit_card_account_id=card.id if card else None,
        )
    except (ValueError, OSError) as e:
        handle_domain_error(ctx, e)
        return

    result = outcome.result
    summary = outcome.report.summary
    if result.duplicate_import_source:
        click.echo(f"File already imported (batch {result.batch_id}); nothing written.")
        return

    click.echo("\nImport complete:")
    click.echo(f"  Rows read: {summary.total_rows}")
    click.echo(f"  Imported: {result.imported} entries")
    click.echo(f"  Skipped: {result.deduped} duplicates")
    if summary.ignored_rows or summary.error_rows:
        click.echo(f"  Ignored: {summary.ignored_rows}, Errors: {summary.error_rows}")
        for reason, count in sorted(summary.reasons.items()):
            click.echo(f"    {reason}: {count}")
    if show_errors:
        for diagnostic in outcome.report.diagnostics:
            if diagnostic.status != RowStatus.OK:
                click.echo(f"    line {diagnostic.line}: {diagnostic.reason.value}", err=True)

    if match:
        matched = TransferMatcher(db, settings).run(owner_id)
        click.echo(f"  Transfers linked: {matched.matched}, suggested: {matched.suggested}")


def register_commands(cli):
    """Register import command with main CLI."""
    cli.add_command(import_statement)
