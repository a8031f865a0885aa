"""Late-payment penalty commands."""

import click
from sntbilling.cli.error_handling import handle_domain_error
from sntbilling.cli.resolution import resolve_period_or_exit
from sntbilling.domain.entities import PenaltyStatus
from sntbilling.domain.penalty import PenaltyService
from sntbilling.domain.period import PeriodService
from sntbilling.utils.amount_parser import parse_amount, parse_rate
from sntbilling.utils.date_parser import parse_date


@click.group()
def penalty_group():
    """Preview and record late-payment penalties."""
    pass


@penalty_group.command("preview")
@click.option("--rate", required=True, help="Annual rate, as a fraction (0.1) or percent (10%)")
@click.option("--as-of", default="today", help="Count overdue days up to this date")
@click.option("--period", help="Only accruals of this period (ID or month)")
@click.option("--plot", help="Only this plot")
@click.option("--min-penalty", help="Hide penalties below this amount")
@click.pass_context
def preview_penalty(
    ctx, rate: str, as_of: str, period: str | None, plot: str | None, min_penalty: str | None
):
    """Show the penalty owed on every overdue accrual.

    Examples:
        sntbilling penalty preview --rate 10%
        sntbilling penalty preview --rate 0.1 --as-of 2025-06-30 --period 2025-01
    """
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period) if period else None

    try:
        preview = PenaltyService(db).preview_penalty(
            as_of=parse_date(as_of),
            rate=parse_rate(rate),
            period_id=period_id,
            plot_id=plot,
            min_penalty=parse_amount(min_penalty) if min_penalty is not None else None,
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    if not preview.rows:
        click.echo("No overdue accruals found.")
        return

    click.echo(f"\nPenalties as of {preview.as_of} at {preview.rate:%} a year:")
    click.echo(f"{'Plot':<12} {'Accrual':>7} {'Since':>10} {'Remaining':>12} {'Days':>5} {'Penalty':>10}")
    click.echo("-" * 61)
    for row in preview.rows:
        click.echo(
            f"{row.plot_id:<12} {row.accrual_id:>7} {row.accrued_on.isoformat():>10} "
            f"{row.remaining:>12,.2f} {row.days_overdue:>5} {row.penalty:>10,.2f}"
        )
    click.echo(f"Total penalty: {preview.total_penalty:,.2f}")


@penalty_group.command("recalc")
@click.argument("period", metavar="PERIOD")
@click.option("--rate", required=True, help="Annual rate, as a fraction (0.1) or percent (10%)")
@click.option("--as-of", default="today", help="Count overdue days up to this date")
@click.option("--plot", "plots", multiple=True, help="Plot (repeatable)")
@click.option("--include-voided", is_flag=True, help="Re-create penalties that were voided")
@click.pass_context
def recalc_penalties(
    ctx, period: str, rate: str, as_of: str, plots: tuple[str, ...], include_voided: bool
):
    """Store one penalty per plot for the overdue accruals of PERIOD."""
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period)

    try:
        result = PenaltyService(db).recalculate_period(
            period_id,
            as_of=parse_date(as_of),
            rate=parse_rate(rate),
            plot_ids=plots or None,
            include_voided=include_voided,
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Created {result.created}, updated {result.updated} penalty(ies)")
    skipped = result.skipped_frozen + result.skipped_voided + result.skipped_zero
    if skipped:
        click.echo(
            f"Skipped {skipped}: {result.skipped_frozen} frozen, "
            f"{result.skipped_voided} voided, {result.skipped_zero} with nothing overdue"
        )


@penalty_group.command("list")
@click.option("--period", help="Filter by period (ID or month)")
@click.option("--plot", help="Filter by plot")
@click.option("--status", type=click.Choice([s.value for s in PenaltyStatus]), help="Filter by status")
@click.pass_context
def list_penalties(ctx, period: str | None, plot: str | None, status: str | None):
    """List penalty accruals."""
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period) if period else None

    penalties = PenaltyService(db).list_penalties(period_id=period_id, plot_id=plot, status=status)
    if not penalties:
        click.echo("No penalties found.")
        return

    click.echo(f"\n{'ID':<5} {'Period':>6} {'Plot':<12} {'Amount':>10} {'Status':<7} {'As of':<10} {'Days':>5}")
    click.echo("-" * 62)
    for p in penalties:
        click.echo(
            f"{p.id:<5} {p.period_id:>6} {p.plot_id:<12} {p.amount:>10,.2f} "
            f"{p.status.value:<7} {p.as_of.isoformat():<10} {p.days_overdue:>5}"
        )
        reason = p.void_reason if p.status is PenaltyStatus.VOIDED else p.freeze_reason
        if reason and p.status is not PenaltyStatus.ACTIVE:
            click.echo(f"      {reason}")


@penalty_group.command("void")
@click.argument("penalty_id", type=int)
@click.option("--reason", required=True, help="Why the penalty is cancelled")
@click.pass_context
def void_penalty(ctx, penalty_id: int, reason: str):
    """Cancel a penalty."""
    try:
        PenaltyService(ctx.obj["db"]).void_penalty(penalty_id, reason)
        click.echo(f"Voided penalty {penalty_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@penalty_group.command("unvoid")
@click.argument("penalty_id", type=int)
@click.pass_context
def unvoid_penalty(ctx, penalty_id: int):
    """Make a voided penalty active again."""
    try:
        PenaltyService(ctx.obj["db"]).unvoid_penalty(penalty_id)
        click.echo(f"Restored penalty {penalty_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@penalty_group.command("freeze")
@click.argument("penalty_id", type=int)
@click.option("--reason", required=True, help="Why the amount is fixed")
@click.pass_context
def freeze_penalty(ctx, penalty_id: int, reason: str):
    """Keep a penalty's amount through recalculation."""
    try:
        PenaltyService(ctx.obj["db"]).freeze_penalty(penalty_id, reason)
        click.echo(f"Froze penalty {penalty_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@penalty_group.command("unfreeze")
@click.argument("penalty_id", type=int)
@click.pass_context
def unfreeze_penalty(ctx, penalty_id: int):
    """Let recalculation update a frozen penalty again."""
    try:
        PenaltyService(ctx.obj["db"]).unfreeze_penalty(penalty_id)
        click.echo(f"Unfroze penalty {penalty_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@penalty_group.command("summary")
@click.option("--period", help="Only penalties of this period (ID or month)")
@click.pass_context
def penalty_summary(ctx, period: str | None):
    """Count penalties by status."""
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period) if period else None

    summary = PenaltyService(db).get_penalty_summary(period_id)

    click.echo(f"{'Penalties':<20} {summary.total:>15}")
    click.echo(f"{'Active':<20} {summary.active:>15}")
    click.echo(f"{'Frozen':<20} {summary.frozen:>15}")
    click.echo(f"{'Voided':<20} {summary.voided:>15}")
    click.echo(f"{'Total amount':<20} {summary.total_amount:>15,.2f}")
    click.echo(f"{'Active amount':<20} {summary.active_amount:>15,.2f}")


def register_commands(cli):
    """Register penalty commands with main CLI."""
    cli.add_command(penalty_group, name="penalty")
