"""Operation Charge Domain Entity

One row per charged operation, written in the same database transaction as
the usage and consumption it describes. Charges covered entirely by the
free allowance consume nothing and write no ledger transaction, so this row
is what a repeated idempotency key is replayed from.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import Field, Column
from sqlalchemy import ForeignKey, BigInteger, Numeric, String
from credit_engine.domain.base import BaseModel, IdType, utc_now
from credit_engine.domain.credit_configuration import ConfigScope


class OperationCharge(BaseModel, table=True):
    __tablename__ = "operation_charges"

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    account_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("credit_accounts.id", ondelete="CASCADE"), nullable=False),
    )

    tenant_id: str = Field(index=True)
    entity_id: Optional[str] = Field(default=None)
    account_entity_id: Optional[str] = Field(default=None)

    operation_code: str = Field(sa_column=Column(String(255), nullable=False))

    quantity: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))
    free_quantity: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))
    unit_cost: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))
    charged_credits: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))
    overage_credits: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))
    new_balance: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))

    transaction_id: Optional[int] = Field(
        default=None,
        description="Consumption transaction; None when the charge was fully free"
    )

    source_tier: ConfigScope

    idempotency_key: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), unique=True, index=True, nullable=True),
    )

    charged_at: datetime = Field(default_factory=utc_now)
