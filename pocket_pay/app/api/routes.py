from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status
from sqlmodel import Session

from ..core.db import atomic, get_session
from ..core.dependencies import (
    get_account_store,
    get_banking_workflow,
    get_history_service,
    get_ledger,
    get_owner_id,
    get_request_workflow,
    get_risk_settings_reader,
    get_transfer_engine,
)
from ..models import (
    AcceptedRequestResponse,
    AcceptRequestBody,
    AccountCreate,
    AccountResponse,
    BalanceResponse,
    DepositRequest,
    InsightsPeriod,
    InsightsResponse,
    MoneyRequestCreate,
    MoneyRequestEnvelope,
    MoneyRequestListResponse,
    RiskSettingResponse,
    RiskSettingsResponse,
    RiskSettingUpdate,
    SendRequest,
    StatementResponse,
    TransactionEnvelope,
    TransactionListResponse,
    TransactionRef,
    TransactionStatus,
    TransactionType,
    WithdrawalResponse,
    WithdrawRequest,
)
from ..services import (
    AccountStore,
    BankingWorkflow,
    HistoryService,
    Ledger,
    RequestWorkflow,
    RiskSettingsReader,
    TransferEngine,
)


router = APIRouter(prefix="/accounts", tags=["accounts"])

@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: AccountCreate,
    session: Session = Depends(get_session),
    accounts: AccountStore = Depends(get_account_store),
) -> AccountResponse:
    return atomic(
        session,
        lambda: accounts.get_or_create_account(
            payload.owner_id, payload.handle, payload.currency
        ),
    )

@router.get("/lookup", response_model=AccountResponse)
def lookup_account(
    handle: str = Query(..., min_length=1),
    accounts: AccountStore = Depends(get_account_store),
) -> AccountResponse:
    return accounts.resolve(handle)

@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: UUID,
    accounts: AccountStore = Depends(get_account_store),
) -> AccountResponse:
    return accounts.get_account(account_id)

@router.get("/{account_id}/balance", response_model=BalanceResponse)
def get_balance(
    account_id: UUID,
    history: HistoryService = Depends(get_history_service),
) -> BalanceResponse:
    return history.balance(account_id)

@router.get("/{account_id}/transactions", response_model=TransactionListResponse)
def list_transactions(
    account_id: UUID,
    limit: int = 50,
    offset: int = 0,
    type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    history: HistoryService = Depends(get_history_service),
) -> TransactionListResponse:
    items = history.list_transactions(
        account_id, limit=limit, offset=offset, type=type, status=status
    )
    return TransactionListResponse(items=items)

@router.get("/{account_id}/statement", response_model=StatementResponse)
def get_statement(
    account_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    cursor: Optional[str] = None,
    ledger: Ledger = Depends(get_ledger),
) -> StatementResponse:
    return ledger.statement(account_id, limit=limit, cursor=cursor)

@router.get("/{account_id}/insights", response_model=InsightsResponse)
def get_insights(
    account_id: UUID,
    period: InsightsPeriod = InsightsPeriod.MONTH,
    history: HistoryService = Depends(get_history_service),
) -> InsightsResponse:
    return history.insights(account_id, period)


transfer_router = APIRouter(prefix="/transfers", tags=["transfers"])

@transfer_router.post("/send", response_model=TransactionEnvelope)
def send_money(
    payload: SendRequest,
    owner_id: str = Depends(get_owner_id),
    accounts: AccountStore = Depends(get_account_store),
    engine: TransferEngine = Depends(get_transfer_engine),
) -> TransactionEnvelope:
    recipient = accounts.resolve(payload.recipient_account_ref)
    transaction = engine.send(
        payload.transaction_id,
        owner_id,
        recipient.owner_id,
        payload.amount,
        payload.description,
    )
    return TransactionEnvelope(transaction=transaction)

@transfer_router.post("/confirm", response_model=TransactionEnvelope)
def confirm_transfer(
    payload: TransactionRef,
    owner_id: str = Depends(get_owner_id),
    engine: TransferEngine = Depends(get_transfer_engine),
) -> TransactionEnvelope:
    transaction = engine.confirm_transfer(payload.transaction_id, owner_id)
    return TransactionEnvelope(transaction=transaction)

@transfer_router.post("/cancel", response_model=TransactionEnvelope)
def cancel_transfer(
    payload: TransactionRef,
    owner_id: str = Depends(get_owner_id),
    engine: TransferEngine = Depends(get_transfer_engine),
) -> TransactionEnvelope:
    transaction = engine.cancel_transfer(payload.transaction_id, owner_id)
    return TransactionEnvelope(transaction=transaction)

@transfer_router.get("/{transaction_id}", response_model=TransactionEnvelope)
def get_transfer(
    transaction_id: str,
    owner_id: str = Depends(get_owner_id),
    engine: TransferEngine = Depends(get_transfer_engine),
) -> TransactionEnvelope:
    transaction = engine.get_transaction(transaction_id, owner_id)
    return TransactionEnvelope(transaction=transaction)


request_router = APIRouter(prefix="/requests", tags=["requests"])

@request_router.post(
    "", response_model=MoneyRequestEnvelope, status_code=status.HTTP_201_CREATED
)
def create_request(
    payload: MoneyRequestCreate,
    owner_id: str = Depends(get_owner_id),
    accounts: AccountStore = Depends(get_account_store),
    workflow: RequestWorkflow = Depends(get_request_workflow),
) -> MoneyRequestEnvelope:
    payer = accounts.resolve(payload.requested_from_account_ref)
    request = workflow.create_request(
        owner_id, payer.owner_id, payload.amount, payload.note
    )
    return MoneyRequestEnvelope(request=request)

@request_router.get("", response_model=MoneyRequestListResponse)
def list_requests(
    owner_id: str = Depends(get_owner_id),
    accounts: AccountStore = Depends(get_account_store),
    workflow: RequestWorkflow = Depends(get_request_workflow),
) -> MoneyRequestListResponse:
    account = accounts.get_account_for_owner(owner_id)
    incoming, outgoing = workflow.list_requests(account.id)
    return MoneyRequestListResponse(incoming=incoming, outgoing=outgoing)

@request_router.post("/{request_id}/accept", response_model=AcceptedRequestResponse)
def accept_request(
    request_id: UUID,
    payload: Optional[AcceptRequestBody] = None,
    owner_id: str = Depends(get_owner_id),
    workflow: RequestWorkflow = Depends(get_request_workflow),
) -> AcceptedRequestResponse:
    transaction_id = payload.transaction_id if payload else None
    accepted = workflow.accept_request(request_id, owner_id, transaction_id)
    return AcceptedRequestResponse(
        transaction=accepted.transaction, request=accepted.request
    )

@request_router.post("/{request_id}/decline", response_model=MoneyRequestEnvelope)
def decline_request(
    request_id: UUID,
    owner_id: str = Depends(get_owner_id),
    workflow: RequestWorkflow = Depends(get_request_workflow),
) -> MoneyRequestEnvelope:
    return MoneyRequestEnvelope(request=workflow.decline_request(request_id, owner_id))

@request_router.post("/{request_id}/cancel", response_model=MoneyRequestEnvelope)
def cancel_request(
    request_id: UUID,
    owner_id: str = Depends(get_owner_id),
    workflow: RequestWorkflow = Depends(get_request_workflow),
) -> MoneyRequestEnvelope:
    return MoneyRequestEnvelope(request=workflow.cancel_request(request_id, owner_id))


banking_router = APIRouter(prefix="/banking", tags=["banking"])

@banking_router.post("/deposit", response_model=TransactionEnvelope)
def deposit(
    payload: DepositRequest,
    owner_id: str = Depends(get_owner_id),
    banking: BankingWorkflow = Depends(get_banking_workflow),
    idempotency_key: str = Header(..., convert_underscores=False, alias="Idempotency-Key"),
) -> TransactionEnvelope:
    transaction = banking.deposit(
        idempotency_key, owner_id, payload.amount, payload.bank_ref
    )
    return TransactionEnvelope(transaction=transaction)

@banking_router.post("/withdraw", response_model=WithdrawalResponse)
def withdraw(
    payload: WithdrawRequest,
    owner_id: str = Depends(get_owner_id),
    banking: BankingWorkflow = Depends(get_banking_workflow),
    idempotency_key: str = Header(..., convert_underscores=False, alias="Idempotency-Key"),
) -> WithdrawalResponse:
    result = banking.withdraw(
        idempotency_key, owner_id, payload.amount, payload.speed, payload.bank_ref
    )
    return WithdrawalResponse(
        transaction=result.transaction,
        fee=result.fee,
        total_debited=result.total_debited,
        estimated_arrival=result.estimated_arrival,
    )


risk_router = APIRouter(prefix="/risk-settings", tags=["risk"])

@risk_router.get("", response_model=RiskSettingsResponse)
def list_risk_settings(
    session: Session = Depends(get_session),
    reader: RiskSettingsReader = Depends(get_risk_settings_reader),
) -> RiskSettingsResponse:
    return RiskSettingsResponse(settings=reader.list_settings(session))

@risk_router.put("/{key}", response_model=RiskSettingResponse)
def update_risk_setting(
    key: str,
    payload: RiskSettingUpdate,
    session: Session = Depends(get_session),
    reader: RiskSettingsReader = Depends(get_risk_settings_reader),
) -> RiskSettingResponse:
    return reader.update(session, key, payload.value)

__all__ = ["router", "transfer_router", "request_router", "banking_router", "risk_router"]
