"""Credit Alert Domain Entity

Non-authoritative record of a threshold crossing, delivered to the
notification collaborator after the triggering change commits.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import Numeric, String, Text
from credit_engine.domain.base import BaseModel, IdType, utc_now


class AlertType(str, Enum):
    LOW_BALANCE = "low_balance"
    EXPIRY_WARNING = "expiry_warning"
    OVERAGE_TRIGGERED = "overage_triggered"
    TRANSFER_STATE_CHANGED = "transfer_state_changed"
    CREDITS_GRANTED = "credits_granted"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class CreditAlert(BaseModel, table=True):
    __tablename__ = "credit_alerts"
    __table_args__ = (
        Index('ix_credit_alerts_tenant_created', 'tenant_id', 'created_at'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    tenant_id: str
    entity_id: Optional[str] = Field(default=None)
    account_id: Optional[int] = Field(default=None)

    alert_type: AlertType
    severity: AlertSeverity = Field(default=AlertSeverity.INFO)

    title: str = Field(sa_column=Column(String(255), nullable=False))
    message: str = Field(sa_column=Column(Text, nullable=False))

    current_value: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(18, 4), nullable=True),
    )

    threshold_value: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(18, 4), nullable=True),
    )

    days_remaining: Optional[int] = Field(default=None)
    batch_id: Optional[int] = Field(default=None)
    transfer_id: Optional[int] = Field(default=None)

    notified_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
