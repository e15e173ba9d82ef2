"""Portal operations: load the ledger, apply the billing engine, persist."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from billing.catalog import Catalog
from billing.engine import MONTH_NAMES_BN, RENEWAL_DAYS, BillingEngine, period_sort_key
from billing.errors import SnapshotFormatError
from billing.models import Account, Invoice
from billing.snapshot import export_snapshot, import_snapshot
from billing.stores import Ledger, PortalSession
from services.crypto import hash_credential
from services.customer_import import import_customers_csv
from services.snapshot_store import load_ledger, save_ledger

logger = logging.getLogger(__name__)

catalog = Catalog()


def current_period_label(today: Optional[date] = None) -> str:
    """Default billing period label, Bengali month name plus year (``"জুলাই 2024"``)."""
    today = today or date.today()
    return f"{MONTH_NAMES_BN[today.month - 1]} {today.year}"


def public_account(account: Account) -> Dict[str, Any]:
    return account.to_record(exclude={"password_hash"})


def _engine(ledger: Ledger) -> BillingEngine:
    return BillingEngine(catalog, ledger.accounts, ledger.invoices)


def _bind_session(ledger: Ledger, session_account_id: Optional[str]) -> PortalSession:
    account = ledger.accounts.get(session_account_id) if session_account_id else None
    return PortalSession(account=account).bind(ledger.accounts)


def _session_payload(session: PortalSession) -> Optional[Dict[str, Any]]:
    if session.refreshed and session.account is not None:
        return public_account(session.account)
    return None


def _invoice_recency(invoice: Invoice) -> date:
    if invoice.date:
        try:
            return date.fromisoformat(invoice.date[:10])
        except ValueError:
            pass
    year, month = period_sort_key(invoice.billing_month)
    if year and month:
        return date(year, month, 1)
    return date.min


def newest_first(invoices: Iterable[Invoice]) -> List[Invoice]:
    return sorted(invoices, key=_invoice_recency, reverse=True)


def _require_account(ledger: Ledger, account_id: str) -> Account:
    account = ledger.accounts.get(account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


# Accounts


async def list_accounts_service(db: AsyncSession, query: Optional[str] = None) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    needle = (query or "").strip().lower()
    accounts = [
        account for account in ledger.accounts.list()
        if not needle or needle in account.full_name.lower() or needle in account.username.lower()
    ]
    return {"items": [public_account(account) for account in accounts], "count": len(accounts)}


async def get_account_service(account_id: str, db: AsyncSession) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    return public_account(_require_account(ledger, account_id))


async def create_account_service(
    account: Account,
    db: AsyncSession,
    *,
    credential: Optional[str] = None,
) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    if account.id in ledger.accounts:
        raise HTTPException(status_code=409, detail=f"Account {account.id} already exists")
    if account.username and ledger.accounts.find_by_username(account.username):
        raise HTTPException(status_code=409, detail=f"Username {account.username} is already taken")
    if account.role == "customer" and catalog.find_package(account.package_id) is None:
        raise HTTPException(status_code=422, detail=f"Unknown package {account.package_id!r}")

    password_hash = await asyncio.to_thread(hash_credential, credential) if credential else None
    created = ledger.accounts.add(account.model_copy(update={"password_hash": password_hash}))
    await save_ledger(db, ledger)
    return public_account(created)


async def update_account_service(
    account_id: str,
    account: Account,
    db: AsyncSession,
    *,
    credential: Optional[str] = None,
    session_account_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Full replacement of an account; the stored credential is kept unless a new one is given."""
    if account.id != account_id:
        raise HTTPException(status_code=422, detail="Account id in body does not match the URL")

    ledger = await load_ledger(db)
    existing = ledger.accounts.get(account_id)
    clash = next(
        (
            other for other in ledger.accounts.list()
            if account.username and other.username == account.username and other.id != account_id
        ),
        None,
    )
    if clash is not None:
        raise HTTPException(status_code=409, detail=f"Username {account.username} is already taken")
    if account.role == "customer" and catalog.find_package(account.package_id) is None:
        raise HTTPException(status_code=422, detail=f"Unknown package {account.package_id!r}")
    session = _bind_session(ledger, session_account_id)

    if credential:
        password_hash = await asyncio.to_thread(hash_credential, credential)
    else:
        password_hash = existing.password_hash if existing else None
    updated = ledger.accounts.upsert(account.model_copy(update={"password_hash": password_hash}))
    await save_ledger(db, ledger)
    return {"account": public_account(updated), "session": _session_payload(session)}


async def delete_account_service(account_id: str, db: AsyncSession) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    _require_account(ledger, account_id)
    removed = _engine(ledger).delete_account(account_id)
    await save_ledger(db, ledger)
    logger.info("Deleted account %s and %d invoice(s)", account_id, removed)
    return {"deleted": account_id, "invoices_removed": removed}


async def delete_accounts_service(account_ids: List[str], db: AsyncSession) -> Dict[str, Any]:
    """Bulk delete; unknown ids are ignored."""
    ledger = await load_ledger(db)
    deleted, removed = _engine(ledger).delete_accounts(account_ids)
    if deleted:
        await save_ledger(db, ledger)
        logger.info("Deleted %d account(s) and %d invoice(s)", len(deleted), removed)
    return {"deleted": deleted, "invoices_removed": removed}


async def extend_accounts_service(
    account_ids: List[str],
    db: AsyncSession,
    *,
    days: int = RENEWAL_DAYS,
    session_account_id: Optional[str] = None,
) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    session = _bind_session(ledger, session_account_id)
    extended = _engine(ledger).extend_accounts(account_ids, days)
    if extended:
        await save_ledger(db, ledger)
    return {
        "extended": len(extended),
        "accounts": [public_account(account) for account in extended],
        "session": _session_payload(session),
    }


async def import_customers_service(csv_text: str, db: AsyncSession) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    try:
        imported = await asyncio.to_thread(import_customers_csv, csv_text, ledger.accounts, catalog)
    except SnapshotFormatError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if imported:
        await save_ledger(db, ledger)
    return {"imported": imported}


# Invoices


async def list_invoices_service(
    db: AsyncSession,
    *,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    sort_newest_first: bool = False,
) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    invoices = ledger.invoices.list_for_account(user_id) if user_id else ledger.invoices.list()
    if status:
        invoices = [invoice for invoice in invoices if invoice.status == status]
    if sort_newest_first:
        invoices = newest_first(invoices)
    return {"items": [invoice.to_record() for invoice in invoices], "count": len(invoices)}


async def record_payment_service(
    invoice: Invoice,
    db: AsyncSession,
    *,
    session_account_id: Optional[str] = None,
) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    session = _bind_session(ledger, session_account_id)
    renewed = _engine(ledger).record_payment(invoice)
    await save_ledger(db, ledger)
    return {
        "invoice": invoice.to_record(),
        "renewed_account": public_account(renewed) if renewed else None,
        "session": _session_payload(session),
    }


async def delete_invoice_service(invoice_id: str, db: AsyncSession) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    if not ledger.invoices.delete(invoice_id):
        raise HTTPException(status_code=404, detail="Invoice not found")
    await save_ledger(db, ledger)
    return {"deleted": invoice_id}


async def generate_invoices_service(
    period: str,
    db: AsyncSession,
    *,
    account_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    created = _engine(ledger).generate_monthly_invoices(period, account_ids)
    if created:
        await save_ledger(db, ledger)
    return {"period": period, "created": created}


async def add_charge_service(
    user_id: str,
    amount: float,
    description: str,
    db: AsyncSession,
    *,
    period: Optional[str] = None,
) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    _require_account(ledger, user_id)
    charge = _engine(ledger).add_charge(user_id, amount, description, period or current_period_label())
    await save_ledger(db, ledger)
    return charge.to_record()


# Snapshot


async def export_snapshot_service(db: AsyncSession) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    return export_snapshot(ledger)


async def import_snapshot_service(payload: Any, db: AsyncSession) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    try:
        accounts, invoices = import_snapshot(ledger, payload)
    except SnapshotFormatError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid snapshot: {exc}") from exc
    await save_ledger(db, ledger)
    logger.info("Imported snapshot with %d account(s) and %d invoice(s)", accounts, invoices)
    return {"accounts": accounts, "invoices": invoices}


# Dashboards


async def customer_dashboard_service(account_id: str, db: AsyncSession) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    account = _require_account(ledger, account_id)
    package = catalog.find_package(account.package_id)
    invoices = newest_first(ledger.invoices.list_for_account(account.id))
    return {
        "account": public_account(account),
        "package": package.to_record() if package else None,
        "pending_invoices": [invoice.to_record() for invoice in invoices if invoice.status != "paid"],
        "paid_invoices": [invoice.to_record() for invoice in invoices if invoice.status == "paid"],
    }


async def admin_dashboard_service(db: AsyncSession, *, period: Optional[str] = None) -> Dict[str, Any]:
    ledger = await load_ledger(db)
    engine = _engine(ledger)
    summary = engine.summary(period or current_period_label())
    summary["collections"] = [
        {"period": label, "total": total} for label, total in engine.collections_by_period()
    ]
    return summary
