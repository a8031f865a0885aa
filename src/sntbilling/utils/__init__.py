"""Utility functions for sntbilling."""

from sntbilling.utils.date_parser import parse_date, parse_billing_month
from sntbilling.utils.amount_parser import parse_amount, to_money

__all__ = ["parse_date", "parse_billing_month", "parse_amount", "to_money"]
