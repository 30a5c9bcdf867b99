"""Typed policy structures

Versioned replacements for the free-form policy blobs attached to accounts
and configurations. Each one validates its own fields on load.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class PeriodType(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def period_start(now: datetime, period: PeriodType) -> datetime:
    """Start of the period containing ``now``"""
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == PeriodType.DAY:
        return day_start
    if period == PeriodType.WEEK:
        return day_start - timedelta(days=day_start.weekday())
    return day_start.replace(day=1)


class OveragePolicy(BaseModel):
    """Whether consumption may run past the available pool, and how far"""

    version: int = 1
    allow_overage: bool = False
    overage_limit: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Maximum overage per period (None = unbounded when allowed)"
    )
    overage_period: PeriodType = PeriodType.DAY


class ExpiryPolicy(BaseModel):
    version: int = 1
    enabled: bool = True
    default_days: int = Field(default=365, gt=0)
    notification_days: List[int] = Field(default_factory=lambda: [30, 7, 1])

    @field_validator("notification_days")
    @classmethod
    def validate_notification_days(cls, v):
        if any(day <= 0 for day in v):
            raise ValueError("Notification days must be positive")
        return sorted(set(v), reverse=True)


class NotificationPreferences(BaseModel):
    version: int = 1
    low_balance_threshold: Optional[Decimal] = Field(default=None, ge=0)
    low_balance_alerts: bool = True
    expiry_warnings: bool = True
    overage_alerts: bool = True


class AccountPolicy(BaseModel):
    """Per-account policy bundle stored on CreditAccount.policy_json"""

    version: int = 1
    expiry: ExpiryPolicy = Field(default_factory=ExpiryPolicy)
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)
