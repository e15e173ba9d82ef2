"""Identity collaborator: resolves sign-in credentials to an account."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Set

from billing.errors import PortalError
from billing.models import Account
from billing.stores import AccountStore
from services.crypto import verify_credential

logger = logging.getLogger(__name__)


class AuthenticationError(PortalError):
    """Raised when an identifier/credential pair does not resolve to an account."""


def normalize_identifier(value: Any) -> str:
    """Normalize usernames/emails for matching: trimmed, lower-case, no leading @."""
    text = str(value or "").strip().lower()
    if text.startswith("@"):
        text = text[1:]
    return re.sub(r"\s+", "", text)


class IdentityProvider(ABC):
    @abstractmethod
    def sign_in(self, identifier: str, credential: str) -> Account:
        """Return the account for a valid pair or raise AuthenticationError."""
        raise NotImplementedError


class LocalIdentityProvider(IdentityProvider):
    """Matches the identifier against account usernames and emails in the Account Store."""

    def __init__(self, accounts: AccountStore, *, admin_emails: Iterable[str] = ()) -> None:
        self.accounts = accounts
        self.admin_emails: Set[str] = {normalize_identifier(email) for email in admin_emails if email}

    def _find(self, identifier: str) -> Optional[Account]:
        token = normalize_identifier(identifier)
        if not token:
            return None
        for account in self.accounts.list():
            if token in {normalize_identifier(account.username), normalize_identifier(account.email)}:
                return account
        return None

    def sign_in(self, identifier: str, credential: str) -> Account:
        account = self._find(identifier)
        if account is None or not account.password_hash:
            raise AuthenticationError("Invalid username or password.")
        if not verify_credential(credential or "", account.password_hash):
            logger.info("Rejected sign-in for account %s", account.id)
            raise AuthenticationError("Invalid username or password.")
        if account.status == "left":
            raise AuthenticationError("This account has been closed.")

        if account.role != "admin" and normalize_identifier(account.email) in self.admin_emails:
            account = account.model_copy(update={"role": "admin"})
        return account
