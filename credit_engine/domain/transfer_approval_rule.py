"""Transfer Approval Rule Domain Entity

Decides whether a transfer from a given source is auto-approved, needs an
approver of some level, or is not allowed at all.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlmodel import Field, Column
from sqlalchemy import Numeric, JSON
from credit_engine.domain.base import BaseModel, IdType, utc_now
from credit_engine.domain.money import ZERO


class TransferApprovalRule(BaseModel, table=True):
    """
    Transfer Approval Rule

    Domain Rules:
    - entity_id None makes the rule tenant-wide; otherwise it applies only to
      transfers out of that entity
    - A rule applies when min_amount <= amount <= max_amount (max None = unbounded)
    - Higher priority rules are evaluated first; entity rules before
      tenant-wide rules at equal priority
    """

    __tablename__ = "transfer_approval_rules"

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    tenant_id: str = Field(index=True)
    entity_id: Optional[str] = Field(default=None)

    min_amount: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    max_amount: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(18, 4), nullable=True),
    )

    requires_approval: bool = Field(default=True)
    required_approval_level: int = Field(default=1, ge=0)

    auto_approve_below: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(18, 4), nullable=True),
    )

    auto_approve_roles: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    restricted_destinations: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    is_active: bool = Field(default=True)
    priority: int = Field(default=0)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def applies_to(self, amount: Decimal) -> bool:
        if amount < self.min_amount:
            return False
        return self.max_amount is None or amount <= self.max_amount
