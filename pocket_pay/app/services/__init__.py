from .accounts import AccountStore, SystemAccount
from .banking import BankingWorkflow, BankNetwork, SimulatedBankNetwork, WithdrawalResult
from .history import HistoryService
from .ledger import Ledger, TransferBalances
from .money_requests import AcceptedRequest, RequestWorkflow
from .repository import WalletRepository
from .risk import (
    RiskAssessment,
    RiskContext,
    RiskSettingsReader,
    RiskSettingsSnapshot,
    evaluate,
)
from .transfers import SendOutcome, TransferEngine

__all__ = [
    "AcceptedRequest",
    "AccountStore",
    "BankingWorkflow",
    "BankNetwork",
    "HistoryService",
    "Ledger",
    "RequestWorkflow",
    "RiskAssessment",
    "RiskContext",
    "RiskSettingsReader",
    "RiskSettingsSnapshot",
    "SendOutcome",
    "SimulatedBankNetwork",
    "SystemAccount",
    "TransferBalances",
    "TransferEngine",
    "WalletRepository",
    "WithdrawalResult",
    "evaluate",
]
