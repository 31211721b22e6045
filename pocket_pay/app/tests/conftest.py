from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from ..core import db as db_module
from ..core.config import Settings
from ..core.db import atomic, create_engine_for_url, get_session, init_db, set_engine
from ..core.dependencies import get_bank_network, get_risk_settings_reader
from ..main import app
from ..models import AccountModel
from ..services import (
    AccountStore,
    BankingWorkflow,
    HistoryService,
    Ledger,
    RequestWorkflow,
    RiskSettingsReader,
    SimulatedBankNetwork,
    TransferEngine,
    WalletRepository,
)


class WalletStack:
    """The service graph one request would build, bound to a single session."""

    def __init__(
        self,
        session: Session,
        risk_reader: RiskSettingsReader,
        bank: SimulatedBankNetwork,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.settings = settings
        self.repository = WalletRepository(session)
        self.accounts = AccountStore(session, self.repository, settings)
        self.ledger = Ledger(session, self.repository, self.accounts)
        self.transfers = TransferEngine(
            session, risk_reader, self.repository, self.accounts, self.ledger, settings
        )
        self.requests = RequestWorkflow(session, self.transfers)
        self.banking = BankingWorkflow(
            session, bank, self.repository, self.accounts, self.ledger, settings
        )
        self.history = HistoryService(session, self.repository, self.accounts)

    def open(
        self, owner_id: str, balance: int = 0, handle: Optional[str] = None
    ) -> AccountModel:
        account = atomic(
            self.session,
            lambda: self.accounts.get_or_create_account(owner_id, handle),
            self.settings,
        )
        if balance:
            self.banking.deposit(f"seed-{owner_id}", owner_id, balance, "bank-seed")
        return account

    def balance(self, owner_id: str) -> int:
        account = self.accounts.get_account_for_owner(owner_id)
        return self.accounts.get_balance(account.id)


@pytest.fixture
def engine(tmp_path):
    test_engine = create_engine_for_url(f"sqlite:///{tmp_path / 'test.db'}")
    original_engine = db_module.engine
    set_engine(test_engine)
    init_db()

    yield test_engine

    set_engine(original_engine)
    test_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def risk_reader() -> RiskSettingsReader:
    return RiskSettingsReader(ttl_seconds=0)


@pytest.fixture
def bank() -> SimulatedBankNetwork:
    return SimulatedBankNetwork()


@pytest.fixture
def wallet_factory(risk_reader, bank):
    def factory(session: Session, settings: Optional[Settings] = None) -> WalletStack:
        return WalletStack(session, risk_reader, bank, settings)

    return factory


@pytest.fixture
def wallet(session, wallet_factory) -> WalletStack:
    return wallet_factory(session)


@pytest.fixture
def client(engine, risk_reader, bank) -> TestClient:
    def _get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session_override
    app.dependency_overrides[get_risk_settings_reader] = lambda: risk_reader
    app.dependency_overrides[get_bank_network] = lambda: bank

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
