"""Payment commands."""

import click
from sntbilling.cli.error_handling import handle_domain_error
from sntbilling.domain.entities import PaymentSource
from sntbilling.domain.payment import PaymentService
from sntbilling.utils.amount_parser import parse_amount
from sntbilling.utils.date_parser import parse_date


@click.group()
def payment_group():
    """Record and manage payments."""
    pass


@payment_group.command("add")
@click.argument("amount", metavar="AMOUNT")
@click.option("--plot", help="Plot the payment is for")
@click.option("--date", "paid_at", default="today", help="Payment date (YYYY-MM-DD, DD.MM.YYYY or 'today')")
@click.option("--external-id", help="Bank document number")
@click.option("--comment", help="Free text comment")
@click.pass_context
def add_payment(
    ctx,
    amount: str,
    plot: str | None,
    paid_at: str,
    external_id: str | None,
    comment: str | None,
):
    """Record a manual payment.

    Examples:
        sntbilling payment add 5000 --plot A-12
        sntbilling payment add "3 000,50" --plot A-12 --date 15.01.2025
    """
    service = PaymentService(ctx.obj["db"])

    try:
        payment_id = service.create_payment(
            paid_at=parse_date(paid_at),
            amount=parse_amount(amount),
            source=PaymentSource.MANUAL,
            plot_id=plot,
            external_id=external_id,
            comment=comment,
        )
        click.echo(f"Recorded payment {payment_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


@payment_group.command("list")
@click.option("--plot", help="Only payments of this plot")
@click.option("--unassigned", is_flag=True, help="Only payments without a plot")
@click.option(
    "--source",
    type=click.Choice([s.value for s in PaymentSource]),
    help="Only payments from this source",
)
@click.option("--from", "paid_from", help="Paid on or after this date")
@click.option("--to", "paid_to", help="Paid on or before this date")
@click.pass_context
def list_payments(
    ctx,
    plot: str | None,
    unassigned: bool,
    source: str | None,
    paid_from: str | None,
    paid_to: str | None,
):
    """List payments, newest first."""
    service = PaymentService(ctx.obj["db"])

    try:
        payments = service.list_payments(
            plot_id=plot,
            source=source,
            unassigned=unassigned,
            paid_from=parse_date(paid_from) if paid_from else None,
            paid_to=parse_date(paid_to) if paid_to else None,
        )
    except ValueError as e:
        handle_domain_error(ctx, e)

    if not payments:
        click.echo("No payments found.")
        return

    click.echo("\nPayments:")
    click.echo("-" * 70)
    for p in payments:
        click.echo(
            f"ID: {p.id:4d} | {p.paid_at} | {p.amount:>10,.2f} | Plot: {p.plot_id or '-':10s} | "
            f"{p.source.value:6s} | {p.comment or ''}"
        )


@payment_group.command("assign")
@click.argument("payment_id", type=int)
@click.argument("plot", metavar="PLOT", required=False)
@click.option("--clear", is_flag=True, help="Unlink the payment from its plot")
@click.pass_context
def assign_payment(ctx, payment_id: int, plot: str | None, clear: bool):
    """Link a payment to a plot.

    Examples:
        sntbilling payment assign 7 A-12
        sntbilling payment assign 7 --clear
    """
    if clear == (plot is not None):
        click.echo("Error: Give either PLOT or --clear.", err=True)
        ctx.exit(1)

    service = PaymentService(ctx.obj["db"])
    try:
        payment = service.assign_plot(payment_id, None if clear else plot)
        if payment.plot_id:
            click.echo(f"Payment {payment_id} assigned to plot '{payment.plot_id}'")
        else:
            click.echo(f"Payment {payment_id} unassigned")
    except ValueError as e:
        handle_domain_error(ctx, e)


@payment_group.command("delete")
@click.argument("payment_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_payment(ctx, payment_id: int, yes: bool):
    """Delete a payment together with its allocations."""
    service = PaymentService(ctx.obj["db"])

    payment = service.get_payment(payment_id)
    if payment is None:
        click.echo(f"Error: Payment not found: {payment_id}", err=True)
        ctx.exit(1)

    # Confirm deletion
    if not yes and not click.confirm(
        f"Are you sure you want to delete payment {payment_id} ({payment.amount:,.2f})?"
    ):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_payment(payment_id)
        click.echo(f"Deleted payment {payment_id}")
    except ValueError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register payment commands with main CLI."""
    cli.add_command(payment_group, name="payment")
