"""
Billing engine: monthly invoice generation and subscription renewal.
"""

import logging
import re
import uuid
from collections import OrderedDict
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .catalog import Catalog
from .models import Account, Invoice
from .stores import AccountStore, InvoiceStore

logger = logging.getLogger(__name__)

# Renewal window is fixed and does not follow Package.validity_days.
RENEWAL_DAYS = 30
MONTHLY_DESCRIPTION = "Monthly Internet Subscription"

MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)
MONTH_NAMES_BN = (
    "জানুয়ারি", "ফেব্রুয়ারি", "মার্চ", "এপ্রিল", "মে", "জুন",
    "জুলাই", "আগস্ট", "সেপ্টেম্বর", "অক্টোবর", "নভেম্বর", "ডিসেম্বর",
)


def _new_invoice_id() -> str:
    return str(uuid.uuid4())


def period_sort_key(label: str) -> Tuple[int, int]:
    """
    Best-effort (year, month) for ordering period labels in reports.

    Only used for display order; periods are matched by exact text elsewhere.
    Unrecognized parts sort as 0.
    """
    text = str(label or "").strip()
    numeric = re.match(r"^(\d{4})-(\d{1,2})$", text)
    if numeric:
        return int(numeric.group(1)), int(numeric.group(2))

    year = 0
    month = 0
    for token in text.split():
        if re.fullmatch(r"\d{4}", token):
            year = int(token)
            continue
        lowered = token.lower()
        for index, name in enumerate(MONTH_NAMES):
            if lowered == name or (len(lowered) >= 3 and name.startswith(lowered)):
                month = index + 1
                break
        if token in MONTH_NAMES_BN:
            month = MONTH_NAMES_BN.index(token) + 1
    return year, month


class BillingEngine:
    """Decides which accounts are billed for a period and how payments renew service."""

    def __init__(
        self,
        catalog: Catalog,
        accounts: AccountStore,
        invoices: InvoiceStore,
        *,
        id_factory: Callable[[], str] = _new_invoice_id,
        today: Callable[[], date] = date.today,
    ):
        self.catalog = catalog
        self.accounts = accounts
        self.invoices = invoices
        self._id_factory = id_factory
        self._today = today

    def _already_billed(self, account_id: str, period: str) -> bool:
        return any(
            invoice.billing_month == period and invoice.type == "package"
            for invoice in self.invoices.list_for_account(account_id)
        )

    def plan_monthly_invoices(
        self,
        period: str,
        target_account_ids: Optional[Iterable[str]] = None,
    ) -> List[Invoice]:
        """Build (without storing) the invoices a generation run would create."""
        targets = set(target_account_ids) if target_account_ids is not None else None
        planned: List[Invoice] = []
        for account in self.accounts.customers():
            if targets is not None and account.id not in targets:
                continue
            if self._already_billed(account.id, period):
                continue

            package = self.catalog.find_package(account.package_id)
            if package is None:
                logger.warning(
                    "Account %s references unknown package %r; billing %s at 0",
                    account.id,
                    account.package_id,
                    period,
                )
            planned.append(
                Invoice(
                    id=self._id_factory(),
                    user_id=account.id,
                    amount=package.price if package else 0,
                    date="",
                    billing_month=period,
                    status="pending",
                    method="None",
                    type="package",
                    description=MONTHLY_DESCRIPTION,
                )
            )
        return planned

    def generate_monthly_invoices(
        self,
        period: str,
        target_account_ids: Optional[Iterable[str]] = None,
    ) -> int:
        """Create one pending package invoice per unbilled customer; returns the count."""
        planned = self.plan_monthly_invoices(period, target_account_ids)
        created = self.invoices.prepend_batch(planned)
        logger.info("Generated %d invoice(s) for period %r", created, period)
        return created

    def _renewal_base(self, account: Account) -> date:
        try:
            return date.fromisoformat(str(account.expiry_date)[:10])
        except ValueError:
            logger.warning(
                "Account %s has unparseable expiry date %r; renewing from today",
                account.id,
                account.expiry_date,
            )
            return self._today()

    def renew(self, account: Account, days: int = RENEWAL_DAYS) -> Account:
        """Push expiry forward from the current expiry date and mark the account active."""
        next_expiry = self._renewal_base(account) + timedelta(days=days)
        renewed = account.model_copy(update={"expiry_date": next_expiry.isoformat(), "status": "active"})
        return self.accounts.upsert(renewed)

    def record_payment(self, invoice: Invoice) -> Optional[Account]:
        """
        Store the invoice and renew its owner when it is a paid, non-miscellaneous invoice.

        Returns the renewed account, or None when no renewal applied.
        """
        self.invoices.upsert(invoice)
        if invoice.status != "paid" or invoice.type == "miscellaneous":
            return None

        account = self.accounts.get(invoice.user_id)
        if account is None:
            logger.warning("Invoice %s references unknown account %s; renewal skipped", invoice.id, invoice.user_id)
            return None
        return self.renew(account)

    def add_charge(self, account_id: str, amount: float, description: str, period: str) -> Invoice:
        """Record a pending miscellaneous charge (equipment, connection fee)."""
        charge = Invoice(
            id=self._id_factory(),
            user_id=account_id,
            amount=amount,
            date="",
            billing_month=period,
            status="pending",
            method="None",
            type="miscellaneous",
            description=description,
        )
        self.invoices.upsert(charge)
        return charge

    def delete_account(self, account_id: str) -> int:
        """Remove the account and every invoice it owns."""
        return self.accounts.delete(account_id)

    def delete_accounts(self, account_ids: Iterable[str]) -> Tuple[List[str], int]:
        """Cascade-delete every existing account in ``account_ids``; returns (deleted ids, invoices removed)."""
        deleted: List[str] = []
        removed = 0
        for account_id in account_ids:
            if account_id not in self.accounts:
                continue
            removed += self.delete_account(account_id)
            deleted.append(account_id)
        return deleted, removed

    def extend_accounts(self, account_ids: Iterable[str], days: int = RENEWAL_DAYS) -> List[Account]:
        """Quick extend: renew each existing account by ``days`` regardless of invoices."""
        extended = []
        for account_id in account_ids:
            account = self.accounts.get(account_id)
            if account is None:
                continue
            extended.append(self.renew(account, days))
        return extended

    def summary(self, period: str) -> Dict[str, Any]:
        invoices = self.invoices.list()
        return {
            "period": period,
            "total_customers": len(self.accounts.customers()),
            "revenue": sum(
                invoice.amount for invoice in invoices
                if invoice.status == "paid" and invoice.billing_month == period
            ),
            "pending_invoices": sum(1 for invoice in invoices if invoice.status == "pending"),
        }

    def collections_by_period(self) -> List[Tuple[str, float]]:
        """Paid totals grouped by billing period, most recent period first."""
        totals: "OrderedDict[str, float]" = OrderedDict()
        for invoice in self.invoices.list():
            if invoice.status != "paid" or not invoice.billing_month:
                continue
            totals[invoice.billing_month] = totals.get(invoice.billing_month, 0) + invoice.amount
        return sorted(totals.items(), key=lambda item: period_sort_key(item[0]), reverse=True)
