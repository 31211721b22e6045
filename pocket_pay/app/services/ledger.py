from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlmodel import Session

from ..core.errors import (
    AccountNotFoundError,
    IdempotencyConflictError,
    InsufficientFundsError,
    InvalidAmountError,
    SameAccountError,
)
from ..models import LedgerEntryModel, LedgerEntryResponse, StatementResponse
from .accounts import AccountStore, SystemAccount
from .repository import WalletRepository


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostingLeg:
    account_id: UUID
    amount: int
    description: Optional[str] = None


@dataclass(frozen=True)
class TransferBalances:
    sender_balance: int
    recipient_balance: int


class Ledger:
    """Append-only double-entry ledger.

    Every posting is written inside the caller's database transaction and
    is keyed by the transaction id it settles, so a repeated posting for the
    same id replays the recorded balances instead of moving money twice.
    Nothing here commits; callers wrap their unit of work in ``atomic``.
    """

    def __init__(
        self,
        session: Session,
        repository: Optional[WalletRepository] = None,
        accounts: Optional[AccountStore] = None,
    ) -> None:
        self.session = session
        self.repository = repository or WalletRepository(session)
        self.accounts = accounts or AccountStore(session, self.repository)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def append_transfer(
        self,
        transaction_id: str,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: int,
        description: Optional[str] = None,
    ) -> TransferBalances:
        self._ensure_positive(amount)
        if from_account_id == to_account_id:
            raise SameAccountError("Cannot transfer to the same account")

        label = description or "Transfer"
        balances = self._post(
            transaction_id,
            [
                PostingLeg(from_account_id, -amount, f"Sent: {label}"),
                PostingLeg(to_account_id, amount, f"Received: {label}"),
            ],
            guarded=from_account_id,
        )
        return TransferBalances(
            sender_balance=balances[from_account_id],
            recipient_balance=balances[to_account_id],
        )

    def append_credit(
        self,
        transaction_id: str,
        account_id: UUID,
        amount: int,
        description: Optional[str] = None,
    ) -> int:
        self._ensure_positive(amount)
        bank = self.accounts.system_account(SystemAccount.EXTERNAL_BANK)
        label = description or "Bank deposit"
        balances = self._post(
            transaction_id,
            [
                PostingLeg(bank.id, -amount, label),
                PostingLeg(account_id, amount, label),
            ],
            guarded=None,
        )
        return balances[account_id]

    def append_debit(
        self,
        transaction_id: str,
        account_id: UUID,
        amount: int,
        description: Optional[str] = None,
        fee: int = 0,
        fee_description: Optional[str] = None,
    ) -> int:
        """Debit ``amount + fee`` from the account as one guarded posting.

        ``amount`` leaves for the external bank and ``fee`` is credited to the
        fee revenue account.
        """
        self._ensure_positive(amount)
        if fee < 0:
            raise InvalidAmountError("Fee cannot be negative")

        bank = self.accounts.system_account(SystemAccount.EXTERNAL_BANK)
        label = description or "Withdrawal to bank"
        legs = [
            PostingLeg(account_id, -amount, label),
            PostingLeg(bank.id, amount, label),
        ]
        if fee:
            fees = self.accounts.system_account(SystemAccount.FEES)
            fee_label = fee_description or "Withdrawal fee"
            legs += [
                PostingLeg(account_id, -fee, fee_label),
                PostingLeg(fees.id, fee, fee_label),
            ]
        balances = self._post(transaction_id, legs, guarded=account_id)
        return balances[account_id]

    def entries_for(self, transaction_id: str) -> list[LedgerEntryModel]:
        return self.repository.entries_for_transaction(transaction_id)

    def statement(
        self,
        account_id: UUID,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> StatementResponse:
        self.accounts.get_account(account_id)

        before_id = None
        if cursor:
            try:
                before_id = int(cursor)
            except ValueError as exc:
                raise ValueError("Invalid cursor") from exc

        entries = self.repository.list_entries(account_id, limit + 1, before_id)
        page = entries[:limit]
        next_cursor = str(page[-1].id) if len(entries) > limit else None

        return StatementResponse(
            items=[LedgerEntryResponse.model_validate(entry) for entry in page],
            next_cursor=next_cursor,
        )

    # ------------------------------------------------------------------
    # Posting primitive
    # ------------------------------------------------------------------
    def _ensure_positive(self, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmountError("Amount must be positive")

    def _post(
        self,
        transaction_id: str,
        legs: list[PostingLeg],
        guarded: Optional[UUID],
    ) -> dict[UUID, int]:
        if sum(leg.amount for leg in legs) != 0:
            raise ValueError("Posting legs must sum to zero")

        existing = self.repository.entries_for_transaction(transaction_id)
        if existing:
            return self._replay(transaction_id, existing, legs)

        net: dict[UUID, int] = defaultdict(int)
        for leg in legs:
            net[leg.account_id] += leg.amount

        locked = self.repository.lock_accounts(net)
        missing = set(net) - {account.id for account in locked}
        if missing:
            raise AccountNotFoundError(
                f"Account {sorted(map(str, missing))[0]} not found"
            )

        # The guarded debit is the first write: its balance check and the
        # decrement are one statement, and a shortfall leaves nothing to undo.
        if guarded is not None and net[guarded] < 0:
            if not self.repository.debit_if_sufficient(guarded, -net[guarded]):
                raise InsufficientFundsError("Insufficient funds for this transaction")

        for account_id, delta in net.items():
            if account_id == guarded and delta < 0:
                continue
            if delta:
                self.repository.adjust_balance(account_id, delta)

        balances = {
            account_id: self.repository.reload_account(account_id).balance
            for account_id in net
        }
        running = {account_id: balances[account_id] - net[account_id] for account_id in net}
        entries = []
        for index, leg in enumerate(legs):
            running[leg.account_id] += leg.amount
            entries.append(
                LedgerEntryModel(
                    account_id=leg.account_id,
                    amount=leg.amount,
                    balance_after=running[leg.account_id],
                    reference_transaction_id=transaction_id,
                    leg=index,
                    description=leg.description,
                )
            )
        self.repository.add_entries(entries)

        logger.info(
            "ledger.posted",
            extra={
                "transaction_id": transaction_id,
                "legs": len(entries),
                "accounts": [str(account_id) for account_id in net],
            },
        )
        return balances

    def _replay(
        self,
        transaction_id: str,
        existing: list[LedgerEntryModel],
        legs: list[PostingLeg],
    ) -> dict[UUID, int]:
        recorded = [(entry.account_id, entry.amount) for entry in existing]
        requested = [(leg.account_id, leg.amount) for leg in legs]
        if recorded != requested:
            raise IdempotencyConflictError(
                "Transaction id was previously posted with different parameters"
            )

        logger.info("idempotent.ledger.hit", extra={"transaction_id": transaction_id})
        balances: dict[UUID, int] = {}
        for entry in existing:
            balances[entry.account_id] = entry.balance_after
        return balances
