"""Account management commands."""

import click

from ledgerkit.cli.error_handling import handle_domain_error
from ledgerkit.domain.account import AccountService
from ledgerkit.domain.entities import AccountKind


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("add")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option(
    "--kind",
    type=click.Choice([kind.value for kind in AccountKind]),
    default=AccountKind.CHECKING.value,
    show_default=True,
    help="Account kind",
)
@click.option("--institution", help="Institution holding the account")
@click.option("--currency", default="BRL", show_default=True, help="Currency code")
@click.option("--parent", help="Account that pays this card's bill (name or ID)")
@click.pass_context
def add_account(ctx, name: str, kind: str, institution: str | None, currency: str, parent: str | None):
    """Create a new account.

    Examples:
        ledgerkit account add "Checking" --institution "Nubank"
        ledgerkit account add "Visa" --kind credit --parent "Checking"
    """
    db = ctx.obj["db"]
    owner_id = ctx.obj["owner_id"]
    service = AccountService(db)

    try:
        parent_id = service.find_account(owner_id, parent).id if parent else None
        account_id = service.create_account(
            owner_id=owner_id,
            name=name,
            kind=AccountKind(kind),
            currency=currency,
            institution_name=institution,
            parent_account_id=parent_id,
        )
        click.echo(f"Created account '{name}' (ID: {account_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all accounts."""
    db = ctx.obj["db"]
    service = AccountService(db)

    accounts = service.list_accounts(ctx.obj["owner_id"])
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 60)
    for acc in accounts:
        parent = f" | Paid by: {acc.parent_account_id}" if acc.parent_account_id else ""
        click.echo(f"ID: {acc.id:3d} | {acc.name:20s} | {acc.kind.value:10s} | {acc.currency}{parent}")


@account_group.command("delete")
@click.argument("account", metavar="ACCOUNT")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_account(ctx, account: str, yes: bool) -> None:
    """Delete an account that has no ledger entries or transactions.

    ACCOUNT can be an account name or ID.
    """
    db = ctx.obj["db"]
    owner_id = ctx.obj["owner_id"]
    service = AccountService(db)

    try:
        account_obj = service.find_account(owner_id, account)
    except ValueError as e:
        handle_domain_error(ctx, e)
        return

    # Confirm deletion
    if not yes and not click.confirm(
        f"Are you sure you want to delete account '{account_obj.name}' (ID: {account_obj.id})?"
    ):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_account(owner_id, account_obj.id)
        click.echo(f"Deleted account '{account_obj.name}'")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
