"""Snapshot export/import envelope for the account and invoice stores."""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import SnapshotFormatError
from .models import Account, Invoice, parse_accounts, parse_invoices
from .stores import Ledger


def dump_accounts(accounts: Iterable[Account]) -> List[Dict[str, Any]]:
    return [account.to_record() for account in accounts]


def dump_invoices(invoices: Iterable[Invoice]) -> List[Dict[str, Any]]:
    return [invoice.to_record() for invoice in invoices]


def export_snapshot(ledger: Ledger, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Both stores verbatim under a timestamped envelope.

    Account records keep their ``passwordHash`` so that a restore keeps every
    login working. Treat the export as a credential-bearing backup.
    """
    exported_at = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "accounts": dump_accounts(ledger.accounts.list()),
        "invoices": dump_invoices(ledger.invoices.list()),
        "exportedAt": exported_at,
    }


def parse_snapshot(payload: Any) -> Tuple[List[Account], List[Invoice]]:
    """Validate an import payload; both ``accounts`` and ``invoices`` must be lists."""
    if not isinstance(payload, dict):
        raise SnapshotFormatError("snapshot must be an object with accounts and invoices")
    missing = [key for key in ("accounts", "invoices") if not isinstance(payload.get(key), list)]
    if missing:
        raise SnapshotFormatError(f"snapshot is missing list field(s): {', '.join(missing)}")
    return parse_accounts(payload["accounts"]), parse_invoices(payload["invoices"])


def import_snapshot(ledger: Ledger, payload: Any) -> Tuple[int, int]:
    """Replace both stores from the payload; nothing changes when it is rejected."""
    accounts, invoices = parse_snapshot(payload)
    ledger.replace_all(accounts, invoices)
    return len(accounts), len(invoices)
