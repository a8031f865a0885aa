"""Debt and balance reports."""

import click
from sntbilling.cli.error_handling import handle_domain_error
from sntbilling.cli.resolution import resolve_period_or_exit
from sntbilling.domain.debt import DebtService
from sntbilling.domain.entities import DebtFilter
from sntbilling.domain.period import PeriodService
from sntbilling.utils.amount_parser import parse_amount


@click.command("debts")
@click.option("--period", help="Only accruals of this period (ID or month)")
@click.option("--plot", help="Only this plot")
@click.option("--min-debt", help="Only plots owing at least this much")
@click.pass_context
def debts(ctx, period: str | None, plot: str | None, min_debt: str | None):
    """Show debtors, largest debt first.

    Examples:
        sntbilling debts
        sntbilling debts --period 2025-01 --min-debt 1000
    """
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period) if period else None

    try:
        threshold = parse_amount(min_debt) if min_debt is not None else None
    except ValueError as e:
        handle_domain_error(ctx, e)

    rows = DebtService(db).compute_debts_by_plot(
        DebtFilter(period_id=period_id, plot_id=plot, min_debt=threshold)
    )
    if not rows:
        click.echo("No debtors found.")
        return

    click.echo(f"\n{'Plot':<12} {'Accrued':>12} {'Paid':>12} {'Debt':>12}")
    click.echo("-" * 51)
    for row in rows:
        click.echo(
            f"{row.plot_id:<12} {row.total_accrued:>12,.2f} {row.total_paid:>12,.2f} {row.total_debt:>12,.2f}"
        )
        for p in row.periods:
            click.echo(f"    {p.year:04d}-{p.month:02d}{p.debt:>40,.2f}")


@click.command("balance")
@click.argument("plot", metavar="PLOT")
@click.option("--period", help="Only accruals of this period (ID or month)")
@click.pass_context
def balance(ctx, plot: str, period: str | None):
    """Show the charges, payments and credit of a plot."""
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period) if period else None

    result = DebtService(db).get_plot_balance(plot, period_id=period_id)

    click.echo(f"\nPlot {result.plot_id}:")
    click.echo("-" * 60)
    for line in result.breakdown:
        click.echo(
            f"Accrual {line.accrual_id:4d} | Period: {line.period_id:3d} | {line.amount:>10,.2f} | "
            f"paid {line.allocated:>10,.2f} | {line.status.value}"
        )
    click.echo(f"{'Accrued':<20} {result.total_accrued:>15,.2f}")
    click.echo(f"{'Paid':<20} {result.total_paid:>15,.2f}")
    click.echo(f"{'Debt':<20} {result.total_debt:>15,.2f}")
    click.echo(f"{'Credit':<20} {result.credit:>15,.2f}")


def register_commands(cli):
    """Register report commands with main CLI."""
    cli.add_command(debts)
    cli.add_command(balance)
