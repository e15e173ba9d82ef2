"""
Portal records: packages, accounts and invoices.

Records serialize with camelCase field names (``userId``, ``billingMonth``,
``expiryDate``), which is also the snapshot format.
"""

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from .errors import SnapshotFormatError


AccountRole = Literal["admin", "customer"]
AccountStatus = Literal["active", "expired", "suspended", "left", "free"]
InvoiceStatus = Literal["pending", "paid", "partial"]
PaymentMethod = Literal["Cash", "bKash", "Nagad", "Rocket", "None"]
InvoiceType = Literal["package", "miscellaneous"]


class PortalRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self, **kwargs: Any) -> dict:
        """Dump as a snapshot record (camelCase keys, JSON primitives)."""
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class Package(PortalRecord):
    """Subscription tier offered in the catalog."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    speed: int = Field(ge=0)  # Mbps
    price: float = Field(ge=0)
    validity_days: int = 30
    data_limit_gb: float = 0  # 0 = unlimited


class Account(PortalRecord):
    """Customer or admin account with its subscription state."""

    id: str
    username: str
    full_name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    role: AccountRole = "customer"
    package_id: str = ""
    status: AccountStatus = "active"
    expiry_date: str  # ISO 8601 calendar date
    balance: float = 0
    data_used_gb: float = 0
    data_limit_gb: float = 0
    upstream_provider: Optional[str] = None
    zone: Optional[str] = None
    password_hash: Optional[str] = None


class Invoice(PortalRecord):
    """Billing record tied to an account and a period label."""

    id: str
    user_id: str
    amount: float
    date: str = ""  # payment date, empty until settled
    billing_month: str
    status: InvoiceStatus = "pending"
    method: PaymentMethod = "None"
    type: InvoiceType = "package"
    description: str = ""


_accounts_adapter = TypeAdapter(List[Account])
_invoices_adapter = TypeAdapter(List[Invoice])


def _ensure_unique_ids(records: List[Any], label: str) -> None:
    seen = set()
    for record in records:
        if record.id in seen:
            raise SnapshotFormatError(f"{label} contains duplicate id {record.id!r}")
        seen.add(record.id)


def parse_accounts(raw: Any) -> List[Account]:
    """Validate a sequence of account records or raise SnapshotFormatError."""
    if not isinstance(raw, list):
        raise SnapshotFormatError("accounts must be a list of account records")
    try:
        accounts = _accounts_adapter.validate_python(raw)
    except ValidationError as exc:
        raise SnapshotFormatError(f"accounts are malformed: {exc.error_count()} invalid field(s)") from exc
    _ensure_unique_ids(accounts, "accounts")
    return accounts


def parse_invoices(raw: Any) -> List[Invoice]:
    """Validate a sequence of invoice records or raise SnapshotFormatError."""
    if not isinstance(raw, list):
        raise SnapshotFormatError("invoices must be a list of invoice records")
    try:
        invoices = _invoices_adapter.validate_python(raw)
    except ValidationError as exc:
        raise SnapshotFormatError(f"invoices are malformed: {exc.error_count()} invalid field(s)") from exc
    _ensure_unique_ids(invoices, "invoices")
    return invoices
