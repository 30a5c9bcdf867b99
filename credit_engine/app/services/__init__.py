from .unit_of_work import UnitOfWork
from .alert_gateway import AlertGateway
from .account_locks import AccountLockManager
from .ttl_cache import TTLCache
from .entity_hierarchy import EntityHierarchy, HierarchyService
from .config_resolver import ConfigurationResolver, ConfigurationSnapshot, ResolvedCost, resolve_cost
from .alert_recorder import AlertRecorder
from .ledger_store import LedgerStore, BatchDraw, CreditPortion, DebitOutcome
from .ledger_runner import LedgerTransactionRunner
from .transfer_policy import TransferDecision, evaluate_transfer, check_approver

__all__ = [
    "UnitOfWork",
    "AlertGateway",
    "AccountLockManager",
    "TTLCache",
    "EntityHierarchy",
    "HierarchyService",
    "ConfigurationResolver",
    "ConfigurationSnapshot",
    "ResolvedCost",
    "resolve_cost",
    "AlertRecorder",
    "LedgerStore",
    "BatchDraw",
    "CreditPortion",
    "DebitOutcome",
    "LedgerTransactionRunner",
    "TransferDecision",
    "evaluate_transfer",
    "check_approver",
]
