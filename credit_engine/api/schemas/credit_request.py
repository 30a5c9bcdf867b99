"""Request schemas for the credit API

Pydantic models for validating incoming HTTP requests. Cross-field rules
live on the use-case command DTOs the routes build from these.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from credit_engine.domain.credit_batch import BatchSource
from credit_engine.domain.credit_configuration import ConfigScope
from credit_engine.domain.entity import EntityKind
from credit_engine.domain.policies import PeriodType
from credit_engine.domain.seasonal_campaign import CampaignCreditType, DistributionMethod

MAX_FRACTION_DIGITS = 4


def _check_precision(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and value.as_tuple().exponent < -MAX_FRACTION_DIGITS:
        raise ValueError(f"Credit amounts carry at most {MAX_FRACTION_DIGITS} decimal places")
    return value


class ChargeRequestSchema(BaseModel):
    """
    Request schema for charging a priced operation

    Used for POST /credits/charge endpoint.
    """

    tenant_id: str = Field(..., min_length=1, description="Tenant identifier (required, non-empty)")
    entity_id: Optional[str] = Field(default=None, description="Entity charged (None = tenant level)")
    operation_code: str = Field(..., min_length=1, description="Priced operation, e.g. 'ai.image.generate'")
    quantity: Decimal = Field(default=Decimal("1"), gt=0, description="Units of the operation")
    idempotency_key: Optional[str] = Field(default=None, description="Repeated keys return the original charge")
    initiated_by: Optional[str] = None
    description: Optional[str] = None

    @field_validator('operation_code')
    @classmethod
    def validate_operation_code(cls, v):
        if "*" in v:
            raise ValueError("Charges name a concrete operation, not a wildcard")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "tenant_a",
                "entity_id": "branch_x",
                "operation_code": "ai.image.generate",
                "quantity": "2",
                "idempotency_key": "job_123:step_4",
            }
        }


class EstimateRequestSchema(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    entity_id: Optional[str] = None
    operation_code: str = Field(..., min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)


class ResolveRequestSchema(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    entity_id: Optional[str] = None
    operation_code: str = Field(..., min_length=1)


class PurchaseRequestSchema(BaseModel):
    """
    Request schema for adding credits

    Used for POST /credits/purchase endpoint.
    """

    tenant_id: str = Field(..., min_length=1)
    entity_id: Optional[str] = None
    amount: Decimal = Field(..., gt=0, description="Credits to add (must be > 0)")
    expiry_date: Optional[datetime] = Field(default=None, description="Defaults to the account's expiry policy")
    source: BatchSource = BatchSource.PURCHASE
    payment_reference: Optional[str] = None
    idempotency_key: Optional[str] = None
    initiated_by: Optional[str] = None
    description: Optional[str] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        return _check_precision(v)


class PaymentCompletedRequestSchema(BaseModel):
    """Payment collaborator webhook; idempotent on payment_reference"""

    tenant_id: str = Field(..., min_length=1)
    entity_id: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    expiry_date: Optional[datetime] = None
    payment_reference: str = Field(..., min_length=1)

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        return _check_precision(v)


class ReserveRequestSchema(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    entity_id: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, description="Credits to hold")
    operation_code: Optional[str] = Field(default=None, description="Hold the resolved cost of this operation")
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    ttl_seconds: Optional[int] = Field(default=None, gt=0, le=86400)
    initiated_by: Optional[str] = None
    description: Optional[str] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        return _check_precision(v)


class ReservationActionRequestSchema(BaseModel):
    initiated_by: Optional[str] = None
    description: Optional[str] = None


class TransferRequestSchema(BaseModel):
    """
    Request schema for transferring credits

    Used for POST /credits/transfers endpoint.
    """

    tenant_id: str = Field(..., min_length=1)
    source_entity_id: Optional[str] = None
    destination_entity_id: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    selected_batches: List[int] = Field(default_factory=list, description="Source batch ids (empty = FIFO)")
    is_temporary: bool = False
    recall_deadline: Optional[datetime] = None
    requested_by: str = Field(..., min_length=1)
    requester_role: Optional[str] = None
    purpose: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        return _check_precision(v)

    @field_validator('selected_batches')
    @classmethod
    def validate_selected_batches(cls, v):
        if len(set(v)) != len(v):
            raise ValueError("selected_batches contains duplicates")
        return v


class ApproveTransferRequestSchema(BaseModel):
    approver_id: str = Field(..., min_length=1)
    approver_level: int = Field(..., ge=0)
    notes: Optional[str] = None


class RejectTransferRequestSchema(BaseModel):
    rejected_by: str = Field(..., min_length=1)
    reason: Optional[str] = None


class RecallTransferRequestSchema(BaseModel):
    recalled_by: str = Field(..., min_length=1)
    reason: Optional[str] = None


class ConfigurationRequestSchema(BaseModel):
    """Request schema for PUT /credits/configurations"""

    scope: ConfigScope
    tenant_id: Optional[str] = None
    entity_id: Optional[str] = None
    operation_code: str = Field(..., min_length=1, max_length=255)
    credit_cost: Decimal = Field(..., ge=0)
    unit: str = Field(default="operation", max_length=20)
    free_allowance: int = Field(default=0, ge=0)
    free_allowance_period: PeriodType = PeriodType.MONTH
    allow_overage: bool = False
    overage_limit: Optional[Decimal] = Field(default=None, ge=0)
    overage_period: PeriodType = PeriodType.DAY
    priority: int = 0
    is_active: bool = True
    updated_by: Optional[str] = None

    @field_validator('credit_cost', 'overage_limit')
    @classmethod
    def validate_precision(cls, v):
        return _check_precision(v)

    class Config:
        json_schema_extra = {
            "example": {
                "scope": "tenant",
                "tenant_id": "tenant_a",
                "operation_code": "ai.image.*",
                "credit_cost": "2.0000",
                "free_allowance": 10,
            }
        }


class EntityRequestSchema(BaseModel):
    entity_id: str = Field(..., min_length=1, max_length=64)
    tenant_id: str = Field(..., min_length=1)
    parent_id: Optional[str] = None
    kind: EntityKind
    name: Optional[str] = Field(default=None, max_length=255)
    inherit_settings: bool = False
    inherit_branding: bool = False
    inherit_credits: bool = False

    @field_validator('entity_id')
    @classmethod
    def validate_entity_id(cls, v):
        if ":" in v:
            raise ValueError("Entity ids cannot contain ':'")
        return v


class MoveEntityRequestSchema(BaseModel):
    new_parent_id: str = Field(..., min_length=1)


class FreezeRequestSchema(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    entity_id: Optional[str] = None
    reason: Optional[str] = None
    actor_id: Optional[str] = None


class CampaignRequestSchema(BaseModel):
    """Request schema for POST /campaigns"""

    campaign_name: str = Field(..., min_length=1, max_length=255)
    credit_type: CampaignCreditType = CampaignCreditType.FREE_DISTRIBUTION
    total_credits: Decimal = Field(..., gt=0)
    credits_per_tenant: Optional[Decimal] = Field(default=None, gt=0)
    distribution_method: DistributionMethod = DistributionMethod.EQUAL
    expires_at: datetime
    target_all_tenants: bool = False
    target_tenant_ids: List[str] = Field(default_factory=list)
    send_notifications: bool = True
    notification_template: Optional[str] = Field(default=None, max_length=1000)
    created_by: Optional[str] = None

    @field_validator('total_credits', 'credits_per_tenant')
    @classmethod
    def validate_precision(cls, v):
        return _check_precision(v)

    class Config:
        json_schema_extra = {
            "example": {
                "campaign_name": "Winter Holidays",
                "credit_type": "holiday",
                "total_credits": "10000.0000",
                "expires_at": "2027-01-31T23:59:59Z",
                "target_all_tenants": True,
                "notification_template": "{credit_amount} holiday credits from {campaign_name}",
            }
        }


class CampaignActionRequestSchema(BaseModel):
    initiated_by: Optional[str] = None


class ExtendCampaignRequestSchema(BaseModel):
    additional_days: int = Field(..., gt=0, le=3650)
    initiated_by: Optional[str] = None
