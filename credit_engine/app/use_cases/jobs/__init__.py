"""Periodic ledger jobs: expiry sweep, reservation reaping, reconciliation"""

from .run_expiry_sweep import RunExpirySweep, warning_window
from .run_reservation_reap import RunReservationReap
from .reconcile_ledger import ReconcileLedger

__all__ = [
    "RunExpirySweep",
    "warning_window",
    "RunReservationReap",
    "ReconcileLedger",
]
