"""Domain layer for sntbilling application."""

import importlib

_SERVICES = {
    "PeriodService": "sntbilling.domain.period",
    "TariffService": "sntbilling.domain.tariff",
    "AccrualService": "sntbilling.domain.accrual",
    "PaymentService": "sntbilling.domain.payment",
    "AllocationService": "sntbilling.domain.allocation",
    "DebtService": "sntbilling.domain.debt",
    "PenaltyService": "sntbilling.domain.penalty",
}

__all__ = list(_SERVICES)


# Services import the store, and the store imports domain entities, so
# services are resolved lazily to keep that cycle out of package import
def __getattr__(name):
    if name in _SERVICES:
        return getattr(importlib.import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
