"""In-memory account and invoice stores backed by the persisted snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .models import Account, Invoice, parse_accounts, parse_invoices


AccountListener = Callable[[Account], None]


class InvoiceStore:
    """Ordered invoice list, newest first for inserts."""

    def __init__(self, invoices: Iterable[Invoice] = ()):
        self._invoices: List[Invoice] = list(invoices)

    def __len__(self) -> int:
        return len(self._invoices)

    def list(self) -> List[Invoice]:
        return list(self._invoices)

    def list_for_account(self, user_id: str) -> List[Invoice]:
        return [invoice for invoice in self._invoices if invoice.user_id == user_id]

    def get(self, invoice_id: str) -> Optional[Invoice]:
        for invoice in self._invoices:
            if invoice.id == invoice_id:
                return invoice
        return None

    def upsert(self, invoice: Invoice) -> Invoice:
        """Replace in place when the id exists, otherwise prepend."""
        for index, existing in enumerate(self._invoices):
            if existing.id == invoice.id:
                self._invoices[index] = invoice
                return invoice
        self._invoices.insert(0, invoice)
        return invoice

    def prepend_batch(self, invoices: Iterable[Invoice]) -> int:
        batch = list(invoices)
        self._invoices[:0] = batch
        return len(batch)

    def delete(self, invoice_id: str) -> bool:
        before = len(self._invoices)
        self._invoices = [invoice for invoice in self._invoices if invoice.id != invoice_id]
        return len(self._invoices) != before

    def delete_for_account(self, user_id: str) -> int:
        before = len(self._invoices)
        self._invoices = [invoice for invoice in self._invoices if invoice.user_id != user_id]
        return before - len(self._invoices)

    def replace_all(self, invoices: Any) -> None:
        """Bulk import; raises SnapshotFormatError and keeps prior state on bad input."""
        self._invoices = parse_invoices(invoices)


class AccountStore:
    """
    Accounts keyed by id in insertion order.

    Deleting an account cascades to its invoices in the linked InvoiceStore.
    Listeners registered with ``subscribe`` receive every upserted account.
    """

    def __init__(self, accounts: Iterable[Account] = (), *, invoices: InvoiceStore):
        self._accounts: Dict[str, Account] = {account.id: account for account in accounts}
        self._invoices = invoices
        self._listeners: List[AccountListener] = []

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts

    def subscribe(self, listener: AccountListener) -> None:
        self._listeners.append(listener)

    def list(self) -> List[Account]:
        return list(self._accounts.values())

    def customers(self) -> List[Account]:
        return [account for account in self._accounts.values() if account.role == "customer"]

    def get(self, account_id: str) -> Optional[Account]:
        return self._accounts.get(account_id)

    def find_by_username(self, username: str) -> Optional[Account]:
        for account in self._accounts.values():
            if account.username == username:
                return account
        return None

    def upsert(self, account: Account) -> Account:
        """Insert or fully replace the account with the same id."""
        self._accounts[account.id] = account
        for listener in self._listeners:
            listener(account)
        return account

    def add(self, account: Account) -> Account:
        """Insert a new account. Precondition: ``account.id`` is not already stored."""
        return self.upsert(account)

    def delete(self, account_id: str) -> int:
        """Remove the account and its invoices; returns the number of invoices removed."""
        self._accounts.pop(account_id, None)
        return self._invoices.delete_for_account(account_id)

    def replace_all(self, accounts: Any) -> None:
        """Bulk import; raises SnapshotFormatError and keeps prior state on bad input."""
        parsed = parse_accounts(accounts)
        self._accounts = {account.id: account for account in parsed}


@dataclass
class Ledger:
    """Both stores loaded from one snapshot."""

    accounts: AccountStore
    invoices: InvoiceStore

    @classmethod
    def from_records(cls, accounts: Iterable[Account] = (), invoices: Iterable[Invoice] = ()) -> "Ledger":
        invoice_store = InvoiceStore(invoices)
        return cls(accounts=AccountStore(accounts, invoices=invoice_store), invoices=invoice_store)

    def replace_all(self, accounts: Any, invoices: Any) -> None:
        """Replace both stores, or neither when either payload is malformed."""
        parsed_accounts = parse_accounts(accounts)
        parsed_invoices = parse_invoices(invoices)
        self.accounts.replace_all(parsed_accounts)
        self.invoices.replace_all(parsed_invoices)


@dataclass
class PortalSession:
    """The authenticated account, kept in step with AccountStore updates."""

    account: Optional[Account] = None
    refreshed: bool = field(default=False, compare=False)

    @property
    def is_authenticated(self) -> bool:
        return self.account is not None

    def bind(self, store: AccountStore) -> "PortalSession":
        store.subscribe(self.sync)
        return self

    def sync(self, account: Account) -> None:
        if self.account is not None and self.account.id == account.id:
            self.account = account
            self.refreshed = True
