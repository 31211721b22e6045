from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlmodel import Session

from ..core.db import atomic
from ..core.errors import (
    InvalidAmountError,
    InvalidStateTransitionError,
    RequestNotFoundError,
    RiskBlockedError,
    SameAccountError,
    recorded_failure,
)
from ..models import (
    MoneyRequestModel,
    RequestStatus,
    TransactionModel,
    TransactionStatus,
)
from ..models.states import ensure_request_transition
from .transfers import TransferEngine


logger = logging.getLogger(__name__)

DEFAULT_REQUEST_DESCRIPTION = "Payment for request"

RETRYABLE_PAYMENT_STATUSES = frozenset(
    {TransactionStatus.FAILED, TransactionStatus.CANCELLED}
)


@dataclass
class AcceptedRequest:
    request: MoneyRequestModel
    transaction: TransactionModel


class RequestWorkflow:
    """Money requests: one user asks another to send them funds.

    Accepting a request is a send from the payer to the requester and goes
    through the same risk gate and ledger primitive as any other send.
    """

    def __init__(self, session: Session, transfers: TransferEngine) -> None:
        self.session = session
        self.transfers = transfers
        self.repository = transfers.repository
        self.accounts = transfers.accounts

    def create_request(
        self,
        requester_owner_id: str,
        requested_from_owner_id: str,
        amount: int,
        note: Optional[str] = None,
    ) -> MoneyRequestModel:
        def unit() -> MoneyRequestModel:
            requester = self.accounts.get_account_for_owner(requester_owner_id)
            payer = self.accounts.get_account_for_owner(requested_from_owner_id)
            if amount <= 0:
                raise InvalidAmountError("Amount must be positive")
            if requester.id == payer.id:
                raise SameAccountError("Cannot request money from yourself")
            return self.repository.add_request(
                MoneyRequestModel(
                    requester_account_id=requester.id,
                    requested_from_account_id=payer.id,
                    amount=amount,
                    note=note,
                )
            )

        request = atomic(self.session, unit, self.transfers.settings)
        logger.info(
            "request.created",
            extra={"request_id": str(request.id), "amount": amount},
        )
        return request

    def accept_request(
        self,
        request_id: UUID,
        owner_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> AcceptedRequest:
        def unit():
            request = self._get_for_payer(request_id, owner_id)
            ensure_request_transition(request.status, RequestStatus.ACCEPTED)
            attempt_id = transaction_id or self._next_attempt_id(request)
            payer = self.accounts.get_account(request.requested_from_account_id)
            requester = self.accounts.get_account(request.requester_account_id)

            outcome = self.transfers.prepare_send(
                attempt_id,
                payer.owner_id,
                requester.owner_id,
                request.amount,
                request.note or DEFAULT_REQUEST_DESCRIPTION,
            )
            status = outcome.transaction.status
            if status in (TransactionStatus.COMPLETED, TransactionStatus.PENDING_CONFIRMATION):
                self.repository.transition_request(
                    request,
                    RequestStatus.ACCEPTED,
                    linked_transaction_id=outcome.transaction.id,
                )
            return request, outcome

        request, outcome = atomic(self.session, unit, self.transfers.settings)
        transaction = outcome.transaction

        if outcome.error is not None:
            raise outcome.error
        if transaction.status is TransactionStatus.BLOCKED:
            logger.info(
                "request.accept.blocked",
                extra={"request_id": str(request_id), "transaction_id": transaction.id},
            )
            raise RiskBlockedError(
                f"Payment blocked: {transaction.risk_reason}",
                risk_reason=transaction.risk_reason,
            )
        if request.status is not RequestStatus.ACCEPTED:
            # Only reachable when the caller replays its own transaction id.
            if outcome.replayed and transaction.status is TransactionStatus.FAILED:
                raise recorded_failure(transaction.failure_code, transaction.failure_reason)
            raise InvalidStateTransitionError(
                f"Transaction {transaction.id} is {transaction.status.value}; "
                "retry with a new transaction id"
            )

        logger.info(
            "request.accepted",
            extra={
                "request_id": str(request_id),
                "transaction_id": transaction.id,
                "status": transaction.status.value,
            },
        )
        return AcceptedRequest(request=request, transaction=transaction)

    def decline_request(
        self, request_id: UUID, owner_id: Optional[str] = None
    ) -> MoneyRequestModel:
        def unit() -> MoneyRequestModel:
            request = self._get_for_payer(request_id, owner_id)
            self.repository.transition_request(request, RequestStatus.DECLINED)
            return request

        request = atomic(self.session, unit, self.transfers.settings)
        logger.info("request.declined", extra={"request_id": str(request_id)})
        return request

    def cancel_request(
        self, request_id: UUID, owner_id: Optional[str] = None
    ) -> MoneyRequestModel:
        def unit() -> MoneyRequestModel:
            request = self._get_request(request_id)
            if owner_id is not None:
                requester = self.accounts.get_account_for_owner(owner_id)
                if request.requester_account_id != requester.id:
                    raise RequestNotFoundError(f"Request {request_id} not found")
            self.repository.transition_request(request, RequestStatus.CANCELLED)
            return request

        request = atomic(self.session, unit, self.transfers.settings)
        logger.info("request.cancelled", extra={"request_id": str(request_id)})
        return request

    def list_requests(
        self, account_id: UUID
    ) -> tuple[list[MoneyRequestModel], list[MoneyRequestModel]]:
        self.accounts.get_account(account_id)
        incoming = self.repository.list_requests(requested_from_id=account_id)
        outgoing = self.repository.list_requests(requester_id=account_id)
        return incoming, outgoing

    def _next_attempt_id(self, request: MoneyRequestModel) -> str:
        """Default payment id, skipping earlier attempts that moved no money."""
        base = f"request-{request.id}"
        candidate, attempt = base, 1
        while True:
            previous = self.repository.get_transaction(candidate)
            if previous is None or previous.status not in RETRYABLE_PAYMENT_STATUSES:
                return candidate
            attempt += 1
            candidate = f"{base}-{attempt}"

    def _get_request(self, request_id: UUID) -> MoneyRequestModel:
        request = self.repository.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(f"Request {request_id} not found")
        return request

    def _get_for_payer(
        self, request_id: UUID, owner_id: Optional[str]
    ) -> MoneyRequestModel:
        request = self._get_request(request_id)
        if owner_id is not None:
            payer = self.accounts.get_account_for_owner(owner_id)
            if request.requested_from_account_id != payer.id:
                raise RequestNotFoundError(f"Request {request_id} not found")
        return request

