"""Credit Transaction Domain Entity

Immutable append-only audit trail of all credit balance changes.
Each transaction records the available balance before and after the change.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import ForeignKey, BigInteger, Numeric, String, Text, UniqueConstraint
from credit_engine.domain.base import BaseModel, IdType, utc_now
from credit_engine.domain.money import ZERO


class TransactionType(str, Enum):
    """Credit transaction types"""
    PURCHASE = "purchase"          # Credits bought through the payment collaborator
    CONSUMPTION = "consumption"    # Credits consumed by a priced operation
    EXPIRY = "expiry"              # Unused batch credits expired
    TRANSFER_IN = "transfer_in"    # Credits received from another account
    TRANSFER_OUT = "transfer_out"  # Credits sent to another account
    REFUND = "refund"              # Credits returned by the payment collaborator
    ADJUSTMENT = "adjustment"      # Promotional, seasonal or manual grant
    RESERVATION = "reservation"    # Credits put on hold for a pending operation
    RELEASE = "release"            # Held credits returned to the pool

    @property
    def is_credit(self) -> bool:
        return self in _CREDIT_TYPES


_CREDIT_TYPES = {
    TransactionType.PURCHASE,
    TransactionType.TRANSFER_IN,
    TransactionType.REFUND,
    TransactionType.ADJUSTMENT,
    TransactionType.RELEASE,
}


class CreditTransaction(BaseModel, table=True):
    """
    Credit Transaction - Immutable audit trail of balance changes

    Domain Rules:
    - Transactions are immutable (append-only)
    - (account_id, sequence) is unique and totally orders an account's log
    - previous_balance equals the new_balance of the preceding transaction
    - amount is stored as a positive magnitude; the type gives the direction
    - A consumption that commits a reservation leaves the available balance
      unchanged (the credits left it when the reservation was made)
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        UniqueConstraint('account_id', 'sequence', name='uq_credit_transactions_account_sequence'),
        Index('ix_credit_transactions_processed_at', 'processed_at'),
        Index('ix_credit_transactions_account_type', 'account_id', 'transaction_type'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    account_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("credit_accounts.id", ondelete="CASCADE"), nullable=False),
    )

    tenant_id: str = Field(
        index=True,
        description="Tenant ID for query optimization"
    )

    entity_id: Optional[str] = Field(default=None)

    sequence: int = Field(description="Position in the account's ledger")

    transaction_type: TransactionType = Field(
        description="Type of transaction"
    )

    amount: Decimal = Field(
        sa_column=Column(Numeric(18, 4), nullable=False),
        description="Credit amount (positive magnitude)"
    )

    previous_balance: Decimal = Field(
        sa_column=Column(Numeric(18, 4), nullable=False),
    )

    new_balance: Decimal = Field(
        sa_column=Column(Numeric(18, 4), nullable=False),
    )

    operation_code: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
    )

    batch_id: Optional[int] = Field(default=None)
    transfer_id: Optional[int] = Field(default=None)
    reservation_id: Optional[int] = Field(default=None)

    payment_reference: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
    )

    description: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )

    initiated_by: Optional[str] = Field(default=None)

    idempotency_key: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), unique=True, index=True, nullable=True),
        description="Unique key for idempotent operations"
    )

    processed_at: datetime = Field(
        default_factory=utc_now,
        description="Transaction timestamp (immutable)"
    )

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this transaction on the available balance"""
        if self.transaction_type == TransactionType.CONSUMPTION and self.reservation_id is not None:
            return ZERO
        if self.transaction_type.is_credit:
            return self.amount
        return -self.amount
