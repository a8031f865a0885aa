"""Utility for resolving period labels to IDs."""

from sntbilling.domain.period import PeriodService
from sntbilling.utils.date_parser import parse_billing_month


def resolve_period(period_service: PeriodService, period: str | int) -> int:
    """Resolve a period ID or billing month label to a period ID.

    Args:
        period_service: PeriodService instance
        period: Period ID (int or string representation of int) or a month
            such as "2025-01" or "01.2025"

    Returns:
        Period ID

    Raises:
        ValueError: If period is not found or the label cannot be parsed
    """
    if isinstance(period, int):
        if period_service.get_period(period) is None:
            raise ValueError(f"Period ID {period} not found")
        return period

    # Plain digits are an ID, anything else a month label
    if period.strip().isdigit():
        period_id = int(period)
        if period_service.get_period(period_id) is None:
            raise ValueError(f"Period ID {period_id} not found")
        return period_id

    year, month = parse_billing_month(period)
    found = period_service.get_period_by_month(year, month)
    if found is None:
        raise ValueError(f"Period {year:04d}-{month:02d} not found")
    return found.id
