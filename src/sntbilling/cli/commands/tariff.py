"""Tariff management commands."""

import click
from sntbilling.cli.error_handling import handle_domain_error
from sntbilling.cli.resolution import resolve_tariff_or_exit
from sntbilling.domain.entities import AppliesTo, Recurrence, TariffStatus
from sntbilling.domain.tariff import TariffService
from sntbilling.utils.amount_parser import parse_amount
from sntbilling.utils.date_parser import parse_date


@click.group()
def tariff_group():
    """Manage fee tariffs."""
    pass


@tariff_group.command("create")
@click.argument("code", metavar="CODE")
@click.argument("title", metavar="TITLE")
@click.argument("amount", metavar="AMOUNT")
@click.option("--type", "fee_type", help="Fee category (defaults to the code)")
@click.option(
    "--applies-to",
    type=click.Choice([a.value for a in AppliesTo]),
    default=AppliesTo.PLOT.value,
    show_default=True,
    help="Charge per plot or per unit of plot area",
)
@click.option(
    "--recurrence",
    type=click.Choice([r.value for r in Recurrence]),
    default=Recurrence.MONTHLY.value,
    show_default=True,
    help="How often the tariff is charged",
)
@click.option("--from", "active_from", help="First active day (defaults to today)")
@click.option("--to", "active_to", help="Last active day")
@click.pass_context
def create_tariff(
    ctx,
    code: str,
    title: str,
    amount: str,
    fee_type: str | None,
    applies_to: str,
    recurrence: str,
    active_from: str | None,
    active_to: str | None,
):
    """Create a tariff.

    Examples:
        sntbilling tariff create membership "Membership fee" 1500
        sntbilling tariff create water "Water" "12,50" --applies-to area --from 2025-01-01
    """
    service = TariffService(ctx.obj["db"])

    try:
        tariff_id = service.create_tariff(
            code=code,
            title=title,
            amount=parse_amount(amount),
            type=fee_type,
            applies_to=applies_to,
            recurrence=recurrence,
            active_from=parse_date(active_from) if active_from else None,
            active_to=parse_date(active_to) if active_to else None,
        )
        click.echo(f"Created tariff '{code}' (ID: {tariff_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@tariff_group.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in TariffStatus]),
    help="Only tariffs with this status",
)
@click.option("--type", "fee_type", help="Only tariffs of this fee category")
@click.option("--active-on", help="Only tariffs active on this date")
@click.pass_context
def list_tariffs(ctx, status: str | None, fee_type: str | None, active_on: str | None):
    """List tariffs, active first."""
    service = TariffService(ctx.obj["db"])

    try:
        day = parse_date(active_on) if active_on else None
    except ValueError as e:
        handle_domain_error(ctx, e)

    tariffs = service.list_tariffs(status=status, type=fee_type, active_on=day)
    if not tariffs:
        click.echo("No tariffs found.")
        return

    click.echo("\nTariffs:")
    click.echo("-" * 80)
    for t in tariffs:
        window = f"{t.active_from} .. {t.active_to or ''}"
        click.echo(
            f"ID: {t.id:3d} | {t.code:15s} | {t.amount:>10,.2f} | {t.applies_to.value:4s} | "
            f"{t.recurrence.value:9s} | {t.status.value:8s} | {window}"
        )


@tariff_group.command("deactivate")
@click.argument("tariff", metavar="TARIFF")
@click.option("--to", "active_to", help="Last active day")
@click.pass_context
def deactivate_tariff(ctx, tariff: str, active_to: str | None):
    """Deactivate a tariff.

    TARIFF can be a tariff code or ID. Existing accruals are kept.
    """
    service = TariffService(ctx.obj["db"])
    tariff_id = resolve_tariff_or_exit(ctx, service, tariff)

    try:
        updated = service.deactivate_tariff(
            tariff_id, active_to=parse_date(active_to) if active_to else None
        )
        click.echo(f"Deactivated tariff '{updated.code}'")
    except ValueError as e:
        handle_domain_error(ctx, e)


@tariff_group.command("delete")
@click.argument("tariff", metavar="TARIFF")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_tariff(ctx, tariff: str, yes: bool):
    """Delete a tariff that was never charged.

    TARIFF can be a tariff code or ID.
    """
    service = TariffService(ctx.obj["db"])
    tariff_id = resolve_tariff_or_exit(ctx, service, tariff)
    code = service.get_tariff(tariff_id).code

    # Confirm deletion
    if not yes and not click.confirm(f"Are you sure you want to delete tariff '{code}' (ID: {tariff_id})?"):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_tariff(tariff_id)
        click.echo(f"Deleted tariff '{code}'")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register tariff commands with main CLI."""
    cli.add_command(tariff_group, name="tariff")
