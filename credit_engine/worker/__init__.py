"""Background workers for the credit ledger"""
from .expiry_sweeper import ExpirySweeperWorker
from .reservation_reaper import ReservationReaperWorker
from .ledger_reconciler import LedgerReconcilerWorker

__all__ = ["ExpirySweeperWorker", "ReservationReaperWorker", "LedgerReconcilerWorker"]
