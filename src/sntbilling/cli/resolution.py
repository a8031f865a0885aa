"""CLI helpers for resolving periods and tariffs from user input."""

from __future__ import annotations

import click

from sntbilling.cli.error_handling import handle_domain_error
from sntbilling.domain.period import PeriodService
from sntbilling.domain.tariff import TariffService
from sntbilling.utils.period_resolver import resolve_period


def resolve_period_or_exit(ctx: click.Context, period_service: PeriodService, period: str | int) -> int:
    """Resolve period ID or month label, or exit with a CLI error."""
    try:
        return resolve_period(period_service, period)
    except ValueError as exc:
        handle_domain_error(ctx, exc)


def resolve_tariff_or_exit(ctx: click.Context, tariff_service: TariffService, tariff: str) -> int:
    """Resolve tariff ID or code, or exit with a CLI error.

    A code is tried first, so numeric codes keep working.
    """
    found = tariff_service.get_tariff_by_code(tariff)
    if found is not None:
        return found.id
    if tariff.isdigit() and tariff_service.get_tariff(int(tariff)) is not None:
        return int(tariff)
    click.echo(f"Error: Tariff '{tariff}' not found", err=True)
    ctx.exit(1)
