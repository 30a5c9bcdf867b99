"""Operation Usage Domain Entity

Quantity of an operation used by an account in one free-allowance period.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import Field, Column
from sqlalchemy import ForeignKey, BigInteger, Numeric, String, UniqueConstraint
from credit_engine.domain.base import BaseModel, IdType, utc_now
from credit_engine.domain.money import ZERO


class OperationUsage(BaseModel, table=True):
    __tablename__ = "operation_usage"
    __table_args__ = (
        UniqueConstraint('account_id', 'operation_code', 'period_start', name='uq_operation_usage_period'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    account_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("credit_accounts.id", ondelete="CASCADE"), nullable=False),
    )

    operation_code: str = Field(sa_column=Column(String(255), nullable=False))

    period_start: datetime

    quantity_used: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    updated_at: datetime = Field(default_factory=utc_now)
