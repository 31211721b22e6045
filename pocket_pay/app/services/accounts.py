from __future__ import annotations

import logging
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlmodel import Session

from ..core.config import Settings, get_settings
from ..core.errors import AccountNotFoundError
from ..models import AccountModel
from .repository import WalletRepository


logger = logging.getLogger(__name__)


class SystemAccount(str, Enum):
    EXTERNAL_BANK = "external_bank"
    FEES = "fees"


def normalize_handle(handle: str) -> str:
    return handle.strip().lstrip("@").lower()


class AccountStore:
    """Wallet records and their cached, ledger-consistent balances."""

    def __init__(
        self,
        session: Session,
        repository: Optional[WalletRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.repository = repository or WalletRepository(session)
        self.settings = settings or get_settings()

    def get_or_create_account(
        self,
        owner_id: str,
        handle: Optional[str] = None,
        currency: Optional[str] = None,
        *,
        is_system: bool = False,
    ) -> AccountModel:
        """Return the owner's wallet, creating it on first use.

        Must run inside ``atomic``: a racing creator makes the insert raise
        ``IntegrityError`` and the retried unit then finds the winner's row.
        """
        existing = self.repository.get_account_by_owner(owner_id)
        if existing is not None:
            return existing

        normalized = normalize_handle(handle) if handle else None
        if normalized and self.repository.get_account_by_handle(normalized) is not None:
            raise ValueError(f"Handle {normalized!r} is already taken")

        account = self.repository.add_account(
            AccountModel(
                owner_id=owner_id,
                handle=normalized,
                currency=(currency or self.settings.default_currency).upper(),
                is_system=is_system,
            )
        )
        logger.info(
            "account.created",
            extra={"account_id": str(account.id), "owner_id": owner_id},
        )
        return account

    def get_account(self, account_id: UUID) -> AccountModel:
        account = self.repository.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    def get_account_for_owner(self, owner_id: str) -> AccountModel:
        account = self.repository.get_account_by_owner(owner_id)
        if account is None:
            raise AccountNotFoundError(f"No wallet found for owner {owner_id}")
        return account

    def resolve(self, ref: str) -> AccountModel:
        """Resolve an account id or a user handle to a user wallet."""
        ref = ref.strip()
        try:
            account_id = UUID(ref)
        except ValueError:
            account = self.repository.get_account_by_handle(normalize_handle(ref))
        else:
            account = self.repository.get_account(account_id)
        if account is None or account.is_system:
            raise AccountNotFoundError(f"Recipient {ref} not found")
        return account

    def system_account(self, kind: SystemAccount) -> AccountModel:
        owner_id = {
            SystemAccount.EXTERNAL_BANK: self.settings.external_bank_owner_id,
            SystemAccount.FEES: self.settings.fee_owner_id,
        }[kind]
        return self.get_or_create_account(owner_id, is_system=True)

    def get_balance(self, account_id: UUID) -> int:
        account = self.repository.reload_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account.balance

    def ledger_balance(self, account_id: UUID) -> int:
        self.get_account(account_id)
        return self.repository.sum_entries(account_id)
