"""Seasonal Campaign Domain Entities

A campaign hands out free, expiring credits to many tenants at once. Each
tenant receives one SEASONAL batch on its tenant-level account, recorded as
a CampaignAllocation.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import CheckConstraint, ForeignKey, BigInteger, Numeric, String, Text, JSON, UniqueConstraint
from credit_engine.domain.base import BaseModel, IdType, utc_now


class CampaignCreditType(str, Enum):
    FREE_DISTRIBUTION = "free_distribution"
    PROMOTIONAL = "promotional"
    HOLIDAY = "holiday"
    BONUS = "bonus"
    EVENT = "event"


class DistributionMethod(str, Enum):
    """How total_credits is shared when credits_per_tenant is not set"""
    EQUAL = "equal"
    FIXED = "fixed"


class CampaignStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class AllocationStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class SeasonalCampaign(BaseModel, table=True):
    """
    Seasonal Campaign - Distribution of free credits to tenants

    Domain Rules:
    - Distributed at most once (PENDING -> PROCESSING -> final status)
    - Every granted batch expires at expires_at
    - Extending the campaign moves the expiry of its unexpired batches
    """

    __tablename__ = "seasonal_campaigns"
    __table_args__ = (
        CheckConstraint('total_credits > 0', name='campaign_total_positive'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    campaign_name: str = Field(sa_column=Column(String(255), nullable=False))
    credit_type: CampaignCreditType

    total_credits: Decimal = Field(sa_column=Column(Numeric(18, 4), nullable=False))

    credits_per_tenant: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(18, 4), nullable=True),
        description="Fixed grant per tenant; overrides distribution_method"
    )

    distribution_method: DistributionMethod = Field(default=DistributionMethod.EQUAL)

    expires_at: datetime

    target_all_tenants: bool = Field(default=False)
    target_tenant_ids: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    send_notifications: bool = Field(default=True)
    notification_template: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Supports {credit_amount} and {campaign_name}"
    )

    status: CampaignStatus = Field(default=CampaignStatus.PENDING, index=True)
    distributed_count: int = Field(default=0)
    failed_count: int = Field(default=0)
    distributed_at: Optional[datetime] = Field(default=None)

    created_by: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def reference(self) -> str:
        return f"campaign:{self.id}"


class CampaignAllocation(BaseModel, table=True):
    """Outcome of a campaign for one tenant"""

    __tablename__ = "campaign_allocations"
    __table_args__ = (
        UniqueConstraint('campaign_id', 'tenant_id', name='uq_campaign_allocations_tenant'),
        Index('ix_campaign_allocations_tenant', 'tenant_id'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    campaign_id: int = Field(
        sa_column=Column(BigInteger, ForeignKey("seasonal_campaigns.id", ondelete="CASCADE"), nullable=False),
    )

    tenant_id: str
    account_key: str = Field(sa_column=Column(String(255), nullable=False))

    allocated_credits: Decimal = Field(
        default=0,
        sa_column=Column(Numeric(18, 4), nullable=False),
    )

    batch_id: Optional[int] = Field(default=None, description="None when the grant only settled overage debt")
    transaction_id: Optional[int] = Field(default=None)

    status: AllocationStatus
    error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    allocated_at: datetime = Field(default_factory=utc_now)
