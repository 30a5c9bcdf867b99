"""Credit Batch Domain Entity

A dated lot of credits. Batches are consumed soonest-expiring first; batches
without an expiry are consumed last.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import CheckConstraint, ForeignKey, BigInteger, Numeric, String
from credit_engine.domain.base import BaseModel, IdType, utc_now
from credit_engine.domain.credit_transaction import TransactionType
from credit_engine.domain.money import ZERO


class BatchSource(str, Enum):
    """Where a batch of credits came from"""
    PURCHASE = "purchase"
    TRANSFER = "transfer"
    PROMOTIONAL = "promotional"
    SEASONAL = "seasonal"
    ADJUSTMENT = "adjustment"
    REFUND = "refund"

    @property
    def transaction_type(self) -> TransactionType:
        return _SOURCE_TRANSACTION_TYPES[self]


_SOURCE_TRANSACTION_TYPES = {
    BatchSource.PURCHASE: TransactionType.PURCHASE,
    BatchSource.TRANSFER: TransactionType.TRANSFER_IN,
    BatchSource.PROMOTIONAL: TransactionType.ADJUSTMENT,
    BatchSource.SEASONAL: TransactionType.ADJUSTMENT,
    BatchSource.ADJUSTMENT: TransactionType.ADJUSTMENT,
    BatchSource.REFUND: TransactionType.REFUND,
}


class CreditBatch(BaseModel, table=True):
    """
    Credit Batch - Lot of credits with independent expiry

    Domain Rules:
    - Belongs to exactly one account at a time
    - 0 <= remaining_amount <= amount
    - Leaves the pool when fully consumed or expired
    - last_warning_days records the smallest expiry-warning window already sent
    """

    __tablename__ = "credit_batches"
    __table_args__ = (
        CheckConstraint('remaining_amount >= 0', name='batch_remaining_non_negative'),
        CheckConstraint('remaining_amount <= amount', name='batch_remaining_within_amount'),
        Index('ix_credit_batches_account_expiry', 'account_id', 'expiry_date'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    account_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("credit_accounts.id", ondelete="CASCADE"), nullable=False),
    )

    amount: Decimal = Field(
        sa_column=Column(Numeric(18, 4), nullable=False),
        description="Credits in the batch when it was created"
    )

    remaining_amount: Decimal = Field(
        sa_column=Column(Numeric(18, 4), nullable=False),
    )

    expiry_date: Optional[datetime] = Field(
        default=None,
        description="When unused credits expire (None = never)"
    )

    source: BatchSource = Field(description="purchase, transfer, promotional, seasonal, ...")

    source_reference: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
        description="Payment reference, transfer id or campaign"
    )

    is_expired: bool = Field(default=False)
    expired_at: Optional[datetime] = Field(default=None)
    expired_amount: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
        description="Credits that lapsed unused when the batch expired"
    )
    last_warning_days: Optional[int] = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)

    def is_due(self, now: datetime) -> bool:
        return self.expiry_date is not None and self.expiry_date <= now
