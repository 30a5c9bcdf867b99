"""Credit Account Domain Entity

One prepaid balance per (tenant, entity) pair; entity None is the
tenant-level account. Balances change only through the LedgerStore, which
appends a CreditTransaction for every change.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple
from sqlmodel import Field, Column
from sqlalchemy import CheckConstraint, Numeric, String, Text
from credit_engine.domain.base import BaseModel, IdType, utc_now
from credit_engine.domain.money import ZERO
from credit_engine.domain.policies import AccountPolicy

TENANT_ACCOUNT_MARKER = "*"


class CreditAccount(BaseModel, table=True):
    """
    Credit Account - Per-entity credit balance

    Domain Rules:
    - account_key is unique: "{tenant_id}:{entity_id or '*'}"
    - total credits == available_credits + reserved_credits
    - available_credits == sum of remaining batch amounts, except while an
      overage debt leaves it negative (bounded by the overage limit)
    - sequence increments once per appended transaction
    """

    __tablename__ = "credit_accounts"
    __table_args__ = (
        CheckConstraint('reserved_credits >= 0', name='reserved_credits_non_negative'),
        CheckConstraint('overage_used >= 0', name='overage_used_non_negative'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(IdType, primary_key=True, autoincrement=True),
    )

    account_key: str = Field(
        sa_column=Column(String(160), unique=True, index=True, nullable=False),
        description="Lock and lookup key derived from tenant and entity"
    )

    tenant_id: str = Field(index=True)

    entity_id: Optional[str] = Field(
        default=None,
        description="Owning entity (None = tenant-level account)"
    )

    available_credits: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    reserved_credits: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    total_purchased: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    total_consumed: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    total_expired: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    total_transferred_out: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
    )

    current_period_consumed: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
        description="Consumption in the current monthly period"
    )

    period_start: Optional[datetime] = Field(default=None)

    overage_used: Decimal = Field(
        default=ZERO,
        sa_column=Column(Numeric(18, 4), nullable=False, default=0),
        description="Overage drawn in the current overage period"
    )

    overage_period_start: Optional[datetime] = Field(default=None)

    sequence: int = Field(
        default=0,
        description="Sequence number of the last appended transaction"
    )

    is_frozen: bool = Field(default=False)

    frozen_reason: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )

    policy_json: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Serialized AccountPolicy (expiry and notification preferences)"
    )

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @staticmethod
    def key_for(tenant_id: str, entity_id: Optional[str]) -> str:
        return f"{tenant_id}:{entity_id or TENANT_ACCOUNT_MARKER}"

    @staticmethod
    def parse_key(account_key: str) -> Tuple[str, Optional[str]]:
        tenant_id, _, entity_id = account_key.partition(":")
        return tenant_id, None if entity_id == TENANT_ACCOUNT_MARKER else entity_id

    @property
    def total_credits(self) -> Decimal:
        return self.available_credits + self.reserved_credits

    @property
    def overage_debt(self) -> Decimal:
        return -self.available_credits if self.available_credits < 0 else ZERO

    def get_policy(self) -> AccountPolicy:
        if not self.policy_json:
            return AccountPolicy()
        return AccountPolicy.model_validate_json(self.policy_json)

    def set_policy(self, policy: AccountPolicy) -> None:
        self.policy_json = policy.model_dump_json()
