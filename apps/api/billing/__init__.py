"""Billing core: catalog, account/invoice stores and the billing engine."""

from .catalog import Catalog, PACKAGES
from .engine import BillingEngine, MONTHLY_DESCRIPTION, RENEWAL_DAYS
from .errors import PortalError, SnapshotFormatError
from .models import Account, Invoice, Package
from .snapshot import export_snapshot, import_snapshot, parse_snapshot
from .stores import AccountStore, InvoiceStore, Ledger, PortalSession

__all__ = [
    "Account",
    "AccountStore",
    "BillingEngine",
    "Catalog",
    "Invoice",
    "InvoiceStore",
    "Ledger",
    "MONTHLY_DESCRIPTION",
    "PACKAGES",
    "Package",
    "PortalError",
    "PortalSession",
    "RENEWAL_DAYS",
    "SnapshotFormatError",
    "export_snapshot",
    "import_snapshot",
    "parse_snapshot",
]
