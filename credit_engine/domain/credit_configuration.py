"""Credit Configuration Domain Entity

A priced-operation rule at one of three tiers: global, tenant-wide or
entity-specific. Operation codes may end in a wildcard segment
(``crm.leads.*``); ``*`` alone matches every operation.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from sqlmodel import Field, Column, Index
from sqlalchemy import CheckConstraint, Numeric, String, UniqueConstraint
from credit_engine.domain.base import BaseModel, IdType, utc_now
from credit_engine.domain.policies import OveragePolicy, PeriodType

WILDCARD = "*"


class ConfigScope(str, Enum):
    """Configuration tiers, most specific first"""
    ENTITY_SPECIFIC = "entity"
    TENANT_WIDE = "tenant"
    GLOBAL = "global"


def scope_key_for(scope: ConfigScope, tenant_id: Optional[str], entity_id: Optional[str]) -> str:
    if scope == ConfigScope.GLOBAL:
        return "global"
    if scope == ConfigScope.TENANT_WIDE:
        return f"tenant:{tenant_id}"
    return f"entity:{tenant_id}:{entity_id}"


def operation_matches(pattern: str, operation_code: str) -> bool:
    if pattern == operation_code:
        return True
    if pattern == WILDCARD:
        return True
    if pattern.endswith("." + WILDCARD):
        return operation_code.startswith(pattern[:-1])
    return False


def specificity(pattern: str) -> Tuple[int, int]:
    """Exact codes beat wildcards; longer wildcard prefixes beat shorter ones"""
    if WILDCARD not in pattern:
        return (1, len(pattern.split(".")))
    if pattern == WILDCARD:
        return (0, 0)
    return (0, len(pattern.split(".")) - 1)


class CreditConfiguration(BaseModel, table=True):
    """
    Credit Configuration - Priced operation rule

    Domain Rules:
    - GLOBAL rows have no tenant and no entity
    - TENANT_WIDE rows have a tenant and no entity
    - ENTITY_SPECIFIC rows have both
    - (scope_key, operation_code) is unique
    """

    __tablename__ = "credit_configurations"
    __table_args__ = (
        UniqueConstraint('scope_key', 'operation_code', name='uq_credit_configurations_scope_operation'),
        CheckConstraint('credit_cost >= 0', name='credit_cost_non_negative'),
        Index('ix_credit_configurations_tenant', 'tenant_id'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    scope: ConfigScope = Field(description="entity, tenant or global")

    scope_key: str = Field(
        sa_column=Column(String(160), nullable=False),
        description="Derived from scope, tenant and entity"
    )

    tenant_id: Optional[str] = Field(default=None)
    entity_id: Optional[str] = Field(default=None)

    operation_code: str = Field(
        sa_column=Column(String(255), nullable=False),
        description="Exact code or dotted prefix ending in '*'"
    )

    credit_cost: Decimal = Field(
        sa_column=Column(Numeric(18, 4), nullable=False),
        description="Credits per unit"
    )

    unit: str = Field(default="operation", max_length=20)

    free_allowance: int = Field(default=0, ge=0)
    free_allowance_period: PeriodType = Field(default=PeriodType.MONTH)

    allow_overage: bool = Field(default=False)

    overage_limit: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(18, 4), nullable=True),
    )

    overage_period: PeriodType = Field(default=PeriodType.DAY)

    priority: int = Field(default=0)
    is_active: bool = Field(default=True)

    version: int = Field(default=1, description="Incremented on every update")

    updated_by: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def overage_policy(self) -> OveragePolicy:
        return OveragePolicy(
            allow_overage=self.allow_overage,
            overage_limit=self.overage_limit,
            overage_period=self.overage_period,
        )

    def matches(self, operation_code: str) -> bool:
        return self.is_active and operation_matches(self.operation_code, operation_code)
