"""CSV customer import."""

from __future__ import annotations

import csv
import io
import uuid
from datetime import date, timedelta
from typing import Dict, Optional

from billing.catalog import Catalog
from billing.engine import RENEWAL_DAYS
from billing.errors import SnapshotFormatError
from billing.models import Account
from billing.stores import AccountStore
from services.crypto import hash_credential

DEFAULT_IMPORT_PASSWORD = "123456"
NAME_COLUMNS = ("name", "fullname", "full name")
USERNAME_COLUMNS = ("username", "user id")


def _first(row: Dict[str, str], columns) -> str:
    for column in columns:
        value = (row.get(column) or "").strip()
        if value:
            return value
    return ""


def import_customers_csv(
    text: str,
    accounts: AccountStore,
    catalog: Catalog,
    *,
    today: Optional[date] = None,
) -> int:
    """
    Add customers from CSV text with a header row.

    Rows without a name or username, or reusing an existing username, are skipped.
    Returns the number of accounts added.
    """
    rows = [line for line in (text or "").splitlines() if line.strip()]
    if len(rows) < 2:
        raise SnapshotFormatError("CSV file is empty.")

    reader = csv.reader(io.StringIO("\n".join(rows)))
    header = [column.strip().strip("'\"").lower() for column in next(reader)]
    default_package = catalog.default_package()
    default_expiry = ((today or date.today()) + timedelta(days=RENEWAL_DAYS)).isoformat()

    imported = 0
    for values in reader:
        row = {column: (values[index].strip().strip("'\"") if index < len(values) else "") for index, column in enumerate(header)}
        full_name = _first(row, NAME_COLUMNS)
        username = _first(row, USERNAME_COLUMNS)
        if not full_name or not username or accounts.find_by_username(username):
            continue

        accounts.add(
            Account(
                id=f"u{uuid.uuid4().hex[:12]}",
                username=username,
                full_name=full_name,
                role="customer",
                package_id=default_package.id if default_package else "",
                status="active",
                expiry_date=row.get("expiry") or default_expiry,
                password_hash=hash_credential(row.get("password") or DEFAULT_IMPORT_PASSWORD),
            )
        )
        imported += 1
    return imported
