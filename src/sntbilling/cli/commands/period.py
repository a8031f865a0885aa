"""Billing period commands."""

import click
from sntbilling.cli.error_handling import handle_domain_error
from sntbilling.cli.resolution import resolve_period_or_exit
from sntbilling.domain.debt import DebtService
from sntbilling.domain.entities import PeriodStatus
from sntbilling.domain.period import PeriodService
from sntbilling.utils.date_parser import parse_billing_month


@click.group()
def period_group():
    """Manage billing periods."""
    pass


@period_group.command("create")
@click.argument("month", metavar="MONTH")
@click.pass_context
def create_period(ctx, month: str):
    """Create a billing period.

    MONTH is a billing month such as 2025-01 or 01.2025.

    Examples:
        sntbilling period create 2025-01
        sntbilling period create 03.2025
    """
    service = PeriodService(ctx.obj["db"])

    try:
        year, month_number = parse_billing_month(month)
        period_id = service.create_period(year=year, month=month_number)
        click.echo(f"Created period {year:04d}-{month_number:02d} (ID: {period_id})")
    except ValueError as e:
        handle_domain_error(ctx, e)


@period_group.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in PeriodStatus]),
    help="Only periods with this status",
)
@click.option("--year", type=int, help="Only periods of this year")
@click.pass_context
def list_periods(ctx, status: str | None, year: int | None):
    """List billing periods, newest first."""
    service = PeriodService(ctx.obj["db"])

    periods = service.list_periods(status=status, year=year)
    if not periods:
        click.echo("No periods found.")
        return

    click.echo("\nPeriods:")
    click.echo("-" * 40)
    for p in periods:
        click.echo(f"ID: {p.id:3d} | {p.label} | {p.status.value}")


@period_group.command("close")
@click.argument("period", metavar="PERIOD")
@click.pass_context
def close_period(ctx, period: str):
    """Close a billing period.

    PERIOD can be a period ID or a month such as 2025-01. Accruals of a
    closed period can no longer be created, changed or deleted, but they
    can still be paid.
    """
    service = PeriodService(ctx.obj["db"])
    period_id = resolve_period_or_exit(ctx, service, period)

    try:
        closed = service.close_period(period_id)
        click.echo(f"Closed period {closed.label}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@period_group.command("delete")
@click.argument("period", metavar="PERIOD")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_period(ctx, period: str, yes: bool):
    """Delete an open billing period without accruals.

    PERIOD can be a period ID or a month such as 2025-01.
    """
    service = PeriodService(ctx.obj["db"])
    period_id = resolve_period_or_exit(ctx, service, period)
    label = service.get_period(period_id).label

    # Confirm deletion
    if not yes and not click.confirm(f"Are you sure you want to delete period {label} (ID: {period_id})?"):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_period(period_id)
        click.echo(f"Deleted period {label}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@period_group.command("summary")
@click.argument("period", metavar="PERIOD")
@click.pass_context
def period_summary(ctx, period: str):
    """Show accrued, paid and outstanding totals of a period.

    PERIOD can be a period ID or a month such as 2025-01.
    """
    db = ctx.obj["db"]
    period_service = PeriodService(db)
    period_id = resolve_period_or_exit(ctx, period_service, period)

    summary = DebtService(db).get_period_summary(period_id)
    label = period_service.get_period(period_id).label
    click.echo(f"\nPeriod {label}:")
    click.echo("-" * 40)
    click.echo(f"{'Accrued':<20} {summary.total_accrued:>15,.2f}")
    click.echo(f"{'Paid':<20} {summary.total_paid:>15,.2f}")
    click.echo(f"{'Debt':<20} {summary.total_debt:>15,.2f}")


def register_commands(cli):
    """Register period commands with main CLI."""
    cli.add_command(period_group, name="period")
