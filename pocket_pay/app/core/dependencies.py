from functools import lru_cache

from fastapi import Depends, Header
from sqlmodel import Session

from ..services import (
    AccountStore,
    BankingWorkflow,
    BankNetwork,
    HistoryService,
    Ledger,
    RequestWorkflow,
    RiskSettingsReader,
    SimulatedBankNetwork,
    TransferEngine,
    WalletRepository,
)
from .config import get_settings
from .db import get_session


@lru_cache()
def get_risk_settings_reader() -> RiskSettingsReader:
    return RiskSettingsReader(ttl_seconds=get_settings().risk_settings_ttl_seconds)


@lru_cache()
def get_bank_network() -> BankNetwork:
    return SimulatedBankNetwork()


def get_owner_id(owner_id: str = Header(..., alias="X-Owner-Id", min_length=1)) -> str:
    return owner_id


def get_repository(session: Session = Depends(get_session)) -> WalletRepository:
    return WalletRepository(session)


def get_account_store(
    session: Session = Depends(get_session),
    repository: WalletRepository = Depends(get_repository),
) -> AccountStore:
    return AccountStore(session, repository)


def get_ledger(
    session: Session = Depends(get_session),
    repository: WalletRepository = Depends(get_repository),
    accounts: AccountStore = Depends(get_account_store),
) -> Ledger:
    return Ledger(session, repository, accounts)


def get_transfer_engine(
    session: Session = Depends(get_session),
    repository: WalletRepository = Depends(get_repository),
    accounts: AccountStore = Depends(get_account_store),
    ledger: Ledger = Depends(get_ledger),
    risk_settings: RiskSettingsReader = Depends(get_risk_settings_reader),
) -> TransferEngine:
    return TransferEngine(session, risk_settings, repository, accounts, ledger)


def get_request_workflow(
    session: Session = Depends(get_session),
    transfers: TransferEngine = Depends(get_transfer_engine),
) -> RequestWorkflow:
    return RequestWorkflow(session, transfers)


def get_banking_workflow(
    session: Session = Depends(get_session),
    repository: WalletRepository = Depends(get_repository),
    accounts: AccountStore = Depends(get_account_store),
    ledger: Ledger = Depends(get_ledger),
    bank: BankNetwork = Depends(get_bank_network),
) -> BankingWorkflow:
    return BankingWorkflow(session, bank, repository, accounts, ledger)


def get_history_service(
    session: Session = Depends(get_session),
    repository: WalletRepository = Depends(get_repository),
    accounts: AccountStore = Depends(get_account_store),
) -> HistoryService:
    return HistoryService(session, repository, accounts)
