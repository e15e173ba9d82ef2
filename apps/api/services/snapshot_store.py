"""Load and persist the account/invoice snapshot documents."""

from __future__ import annotations

import logging
from typing import Dict

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from billing.errors import SnapshotFormatError
from billing.models import Account, Invoice, parse_accounts, parse_invoices
from billing.snapshot import dump_accounts, dump_invoices
from billing.stores import Ledger
from config import settings
from models.portal_snapshot import PortalSnapshot
from services.crypto import hash_credential

logger = logging.getLogger(__name__)

ACCOUNTS_KEY = "accounts"
INVOICES_KEY = "invoices"


async def _load_documents(db: AsyncSession) -> Dict[str, PortalSnapshot]:
    result = await db.execute(
        select(PortalSnapshot).where(PortalSnapshot.key.in_([ACCOUNTS_KEY, INVOICES_KEY]))
    )
    return {row.key: row for row in result.scalars().all()}


async def load_ledger(db: AsyncSession) -> Ledger:
    """Read both documents into in-memory stores; missing documents load empty."""
    documents = await _load_documents(db)
    accounts_row = documents.get(ACCOUNTS_KEY)
    invoices_row = documents.get(INVOICES_KEY)
    try:
        accounts = parse_accounts(accounts_row.payload if accounts_row else [])
        invoices = parse_invoices(invoices_row.payload if invoices_row else [])
    except SnapshotFormatError as exc:
        logger.error("Persisted snapshot is corrupt: %s", exc)
        raise HTTPException(status_code=500, detail="Stored portal data is corrupt. Restore from an export.") from exc
    return Ledger.from_records(accounts=accounts, invoices=invoices)


async def save_ledger(db: AsyncSession, ledger: Ledger) -> None:
    """Write both documents back in a single commit."""
    documents = await _load_documents(db)
    payloads = {
        ACCOUNTS_KEY: dump_accounts(ledger.accounts.list()),
        INVOICES_KEY: dump_invoices(ledger.invoices.list()),
    }
    for key, payload in payloads.items():
        row = documents.get(key)
        if row is None:
            db.add(PortalSnapshot(key=key, payload=payload))
        else:
            row.payload = payload
    await db.commit()


def demo_ledger(password: str) -> Ledger:
    """Demo admin, demo customer and their two invoices."""
    credential_hash = hash_credential(password)
    return Ledger.from_records(
        accounts=[
            Account(
                id="u1",
                username="admin",
                full_name="System Administrator",
                email="admin@nexusconnect.net",
                phone="+8801700000000",
                address="Main Office",
                role="admin",
                package_id="p13",
                status="active",
                expiry_date="2099-12-31",
                password_hash=credential_hash,
            ),
            Account(
                id="u2",
                username="demo_user",
                full_name="Test Customer",
                email="test@example.com",
                phone="+8801800000000",
                address="Dhaka, Bangladesh",
                role="customer",
                package_id="p4",
                status="active",
                expiry_date="2025-12-31",
                balance=650,
                data_used_gb=45.4,
                upstream_provider="Amber IT",
                password_hash=credential_hash,
            ),
        ],
        invoices=[
            Invoice(id="b1", user_id="u2", amount=650, date="2024-07-25", billing_month="July 2024", status="paid", method="bKash"),
            Invoice(id="b2", user_id="u2", amount=650, date="", billing_month="August 2024", status="pending", method="None"),
        ],
    )


async def seed_demo_data(db: AsyncSession) -> bool:
    """Seed demo records into an empty database. Returns True when seeded."""
    documents = await _load_documents(db)
    if documents:
        return False
    await save_ledger(db, demo_ledger(settings.DEMO_ACCOUNT_PASSWORD))
    return True
