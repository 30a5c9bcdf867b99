"""Credit Transfer Domain Entities

A request to move credits between two accounts of the same tenant, moved
through an approval state machine. Every state change is recorded in
TransferHistory.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import CheckConstraint, ForeignKey, BigInteger, Numeric, String, Text, JSON
from credit_engine.domain.base import BaseModel, IdType, utc_now
from credit_engine.domain.errors import InvalidTransferState
from credit_engine.domain.money import ZERO


class TransferStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    FAILED = "failed"
    RECALLED = "recalled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            TransferStatus.COMPLETED,
            TransferStatus.REJECTED,
            TransferStatus.FAILED,
            TransferStatus.RECALLED,
        )


ALLOWED_TRANSITIONS = {
    TransferStatus.PENDING: {TransferStatus.APPROVED, TransferStatus.REJECTED},
    TransferStatus.APPROVED: {TransferStatus.COMPLETED, TransferStatus.FAILED, TransferStatus.RECALLED},
}


class CreditTransfer(BaseModel, table=True):
    """
    Credit Transfer - Movement of credits between two entities

    Domain Rules:
    - pending -> approved | rejected
    - approved -> completed | failed | recalled (temporary only, before deadline)
    - Terminal states are never re-opened
    - The destination receives transfer_amount = requested_amount - transfer_fee
    - A temporary transfer stays approved after execution until it is
      recalled or its recall deadline passes
    """

    __tablename__ = "credit_transfers"
    __table_args__ = (
        CheckConstraint('requested_amount > 0', name='transfer_amount_positive'),
        CheckConstraint('transfer_fee >= 0', name='transfer_fee_non_negative'),
        Index('ix_credit_transfers_tenant_status', 'tenant_id', 'status'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    tenant_id: str = Field(index=True)

    source_entity_id: Optional[str] = Field(
        default=None,
        description="Source entity (None = tenant-level account)"
    )

    destination_entity_id: Optional[str] = Field(default=None)

    source_account_key: str = Field(
        sa_column=Column(String(160), nullable=False),
        description="Account debited on execution (after credit inheritance)"
    )

    destination_account_key: str = Field(
        sa_column=Column(String(160), nullable=False),
    )

    requested_amount: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))

    transfer_fee: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    transfer_amount: Decimal = Field(
        sa_column=Column(Numeric(18, 4), nullable=False),
        description="Credits the destination receives"
    )

    selected_batches: List[int] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
        description="Source batch ids to draw from (empty = FIFO by expiry)"
    )

    is_temporary: bool = Field(default=False)
    recall_deadline: Optional[datetime] = Field(default=None)

    status: TransferStatus = Field(default=TransferStatus.PENDING, index=True)

    approval_required: bool = Field(default=True)
    required_approval_level: int = Field(default=1)
    rule_id: Optional[int] = Field(default=None)

    requested_by: str
    requester_role: Optional[str] = Field(default=None)

    approved_by: Optional[str] = Field(default=None)
    approved_at: Optional[datetime] = Field(default=None)

    rejected_by: Optional[str] = Field(default=None)
    rejected_at: Optional[datetime] = Field(default=None)
    rejection_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    executed_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    failure_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    recalled_at: Optional[datetime] = Field(default=None)

    purpose: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    idempotency_key: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), unique=True, index=True, nullable=True),
    )

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def can_transition_to(self, new_status: TransferStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: TransferStatus, now: datetime) -> TransferStatus:
        """Move to ``new_status``, returning the previous status"""
        if not self.can_transition_to(new_status):
            raise InvalidTransferState(
                f"Transfer {self.id} cannot move from {self.status.value} to {new_status.value}",
                {"transfer_id": self.id, "status": self.status.value, "requested": new_status.value},
            )
        old_status = self.status
        self.status = new_status
        self.updated_at = now
        return old_status

    def is_recallable(self, now: datetime) -> bool:
        return (
            self.status == TransferStatus.APPROVED
            and self.is_temporary
            and self.executed_at is not None
            and self.recall_deadline is not None
            and now < self.recall_deadline
        )


class TransferHistory(BaseModel, table=True):
    """Audit row for one transfer state change"""

    __tablename__ = "transfer_history"

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    transfer_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("credit_transfers.id", ondelete="CASCADE"), nullable=False, index=True),
    )

    old_status: Optional[TransferStatus] = Field(default=None)
    new_status: TransferStatus

    actor_id: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    created_at: datetime = Field(default_factory=utc_now)
