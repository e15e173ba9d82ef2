"""Routers package."""

from . import (
    health,
    auth,
    catalog,
    accounts,
    invoices,
    snapshot,
    dashboard,
    support,
)
