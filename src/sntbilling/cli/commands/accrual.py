"""Accrual commands."""

import click
from sntbilling.cli.error_handling import handle_domain_error
from sntbilling.cli.resolution import resolve_period_or_exit, resolve_tariff_or_exit
from sntbilling.domain.accrual import AccrualService
from sntbilling.domain.entities import AccrualStatus
from sntbilling.domain.period import PeriodService
from sntbilling.domain.tariff import TariffService
from sntbilling.utils.amount_parser import parse_amount


@click.group()
def accrual_group():
    """Manage accruals (charges against plots)."""
    pass


@accrual_group.command("create")
@click.argument("period", metavar="PERIOD")
@click.argument("plot", metavar="PLOT")
@click.argument("tariff", metavar="TARIFF")
@click.option("--amount", help="Charge amount (defaults to the tariff amount)")
@click.option("--area", help="Plot area, for tariffs charged per area")
@click.pass_context
def create_accrual(ctx, period: str, plot: str, tariff: str, amount: str | None, area: str | None):
    """Charge a tariff against a plot.

    PERIOD can be a period ID or a month such as 2025-01. TARIFF can be a
    tariff code or ID.

    Examples:
        sntbilling accrual create 2025-01 A-12 membership
        sntbilling accrual create 2025-01 A-12 water --area 6.5
        sntbilling accrual create 2025-01 A-12 target --amount 3000
    """
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period)
    tariff_id = resolve_tariff_or_exit(ctx, TariffService(db), tariff)
    service = AccrualService(db)

    try:
        accrual_id = service.create_accrual(
            period_id=period_id,
            plot_id=plot,
            tariff_id=tariff_id,
            amount=parse_amount(amount) if amount is not None else None,
            area=parse_amount(area) if area is not None else None,
        )
        accrual = service.get_accrual(accrual_id)
        click.echo(f"Created accrual {accrual_id} for plot '{accrual.plot_id}': {accrual.amount:,.2f}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@accrual_group.command("list")
@click.option("--period", help="Period ID or month such as 2025-01")
@click.option("--plot", help="Plot identifier")
@click.option(
    "--status",
    type=click.Choice([s.value for s in AccrualStatus]),
    help="Only accruals with this status",
)
@click.pass_context
def list_accruals(ctx, period: str | None, plot: str | None, status: str | None):
    """List accruals, newest first."""
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period) if period else None

    accruals = AccrualService(db).list_accruals(period_id=period_id, plot_id=plot, status=status)
    if not accruals:
        click.echo("No accruals found.")
        return

    click.echo("\nAccruals:")
    click.echo("-" * 70)
    for a in accruals:
        click.echo(
            f"ID: {a.id:4d} | Period: {a.period_id:3d} | Plot: {a.plot_id:10s} | "
            f"Tariff: {a.tariff_id:3d} | {a.amount:>10,.2f} | {a.status.value}"
        )


@accrual_group.command("delete")
@click.argument("accrual_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_accrual(ctx, accrual_id: int, yes: bool):
    """Delete an accrual with no payments allocated to it."""
    service = AccrualService(ctx.obj["db"])

    accrual = service.get_accrual(accrual_id)
    if accrual is None:
        click.echo(f"Error: Accrual not found: {accrual_id}", err=True)
        ctx.exit(1)

    # Confirm deletion
    if not yes and not click.confirm(
        f"Are you sure you want to delete accrual {accrual_id} of plot '{accrual.plot_id}'?"
    ):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_accrual(accrual_id)
        click.echo(f"Deleted accrual {accrual_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register accrual commands with main CLI."""
    cli.add_command(accrual_group, name="accrual")
