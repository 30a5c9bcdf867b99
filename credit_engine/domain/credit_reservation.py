"""Credit Reservation Domain Entity

A hold on credits for an operation that has not completed yet. Held credits
are taken out of their batches and parked on the reservation until it is
committed (consumed) or released (returned to the same batches).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from sqlmodel import Field, Column
from sqlalchemy import ForeignKey, BigInteger, Numeric, String, JSON
from credit_engine.domain.base import BaseModel, IdType, utc_now


class ReservationStatus(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    RELEASED = "released"
    EXPIRED = "expired"


class CreditReservation(BaseModel, table=True):
    __tablename__ = "credit_reservations"

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    account_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("credit_accounts.id", ondelete="CASCADE"), nullable=False),
    )

    amount: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))

    operation_code: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
    )

    status: ReservationStatus = Field(default=ReservationStatus.OPEN, index=True)

    deadline: datetime = Field(
        index=True,
        description="Uncommitted reservations are released after this time"
    )

    holds: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
        description="[{'batch_id': int, 'amount': str}] taken from each batch"
    )

    transaction_id: Optional[int] = Field(
        default=None,
        description="Consumption transaction written on commit"
    )

    created_at: datetime = Field(default_factory=utc_now)
    resolved_at: Optional[datetime] = Field(default=None)

    @property
    def is_open(self) -> bool:
        return self.status == ReservationStatus.OPEN
