"""Payment allocation commands."""

import click
from sntbilling.cli.error_handling import handle_domain_error
from sntbilling.cli.resolution import resolve_period_or_exit
from sntbilling.domain.allocation import AllocationService
from sntbilling.domain.period import PeriodService
from sntbilling.utils.amount_parser import parse_amount


@click.group()
def allocate_group():
    """Distribute payments onto accruals."""
    pass


@allocate_group.command("payment")
@click.argument("payment_id", type=int)
@click.pass_context
def allocate_payment(ctx, payment_id: int):
    """Allocate a payment to its plot's oldest outstanding accruals."""
    service = AllocationService(ctx.obj["db"])

    try:
        allocations = service.allocate_payment(payment_id)
        summary = service.get_payment_allocation_summary(payment_id)
    except ValueError as e:
        handle_domain_error(ctx, e)

    for a in allocations:
        click.echo(f"Accrual {a.accrual_id:4d}: {a.amount:>10,.2f}")
    click.echo(f"Allocated {summary.allocated:,.2f} of {summary.amount:,.2f}")
    if summary.unallocated > 0:
        click.echo(f"Unallocated (credit): {summary.unallocated:,.2f}")


@allocate_group.command("auto")
@click.option("--period", help="Only payments paid within this period (ID or month)")
@click.option("--payment", "payment_ids", type=int, multiple=True, help="Payment ID (repeatable)")
@click.pass_context
def auto_allocate(ctx, period: str | None, payment_ids: tuple[int, ...]):
    """Allocate every payment that still has money left, oldest first.

    Examples:
        sntbilling allocate auto
        sntbilling allocate auto --period 2025-01
        sntbilling allocate auto --payment 3 --payment 4
    """
    db = ctx.obj["db"]
    period_id = resolve_period_or_exit(ctx, PeriodService(db), period) if period else None

    try:
        result = AllocationService(db).auto_allocate(
            payment_ids=payment_ids or None, period_id=period_id
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Created {result.created_count} allocation(s)")
    if result.period_ids:
        click.echo(f"Periods affected: {', '.join(str(p) for p in result.period_ids)}")


@allocate_group.command("manual")
@click.argument("payment_id", type=int)
@click.argument("accrual_id", type=int)
@click.argument("amount", metavar="AMOUNT")
@click.pass_context
def allocate_manual(ctx, payment_id: int, accrual_id: int, amount: str):
    """Allocate an explicit amount of a payment onto one accrual."""
    service = AllocationService(ctx.obj["db"])

    try:
        allocation = service.allocate_manual(payment_id, accrual_id, parse_amount(amount))
        click.echo(
            f"Allocated {allocation.amount:,.2f} of payment {payment_id} to accrual {accrual_id} "
            f"(ID: {allocation.id})"
        )
    except ValueError as e:
        handle_domain_error(ctx, e)


@allocate_group.command("unapply")
@click.option("--allocation", "allocation_id", type=int, help="Allocation ID")
@click.option("--payment", "payment_id", type=int, help="Remove all allocations of this payment")
@click.pass_context
def unapply(ctx, allocation_id: int | None, payment_id: int | None):
    """Remove allocations.

    Examples:
        sntbilling allocate unapply --allocation 12
        sntbilling allocate unapply --payment 7
    """
    if (allocation_id is None) == (payment_id is None):
        click.echo("Error: Give exactly one of --allocation or --payment.", err=True)
        ctx.exit(1)

    service = AllocationService(ctx.obj["db"])
    if allocation_id is not None:
        if not service.unapply_allocation(allocation_id):
            click.echo(f"Error: Allocation not found: {allocation_id}", err=True)
            ctx.exit(1)
        click.echo(f"Removed allocation {allocation_id}")
        return

    try:
        removed = service.unapply_payment(payment_id)
        click.echo(f"Removed {removed} allocation(s) of payment {payment_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register allocation commands with main CLI."""
    cli.add_command(allocate_group, name="allocate")
