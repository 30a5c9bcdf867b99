"""Data Transfer Objects for Credit Use Cases

Pydantic models for command inputs and response outputs.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from credit_engine.domain.credit_batch import BatchSource
from credit_engine.domain.credit_configuration import ConfigScope
from credit_engine.domain.credit_transaction import TransactionType
from credit_engine.domain.entity import EntityKind
from credit_engine.domain.policies import PeriodType
from credit_engine.domain.seasonal_campaign import AllocationStatus, CampaignCreditType, CampaignStatus, DistributionMethod


# ----------------------------------------------------------------------
# Charging
# ----------------------------------------------------------------------

class ChargeOperationCommandDTO(BaseModel):
    """
    Command DTO for charging a priced operation

    Used as input to ChargeOperation use case.
    """

    tenant_id: str = Field(..., description="Tenant identifier")

    entity_id: Optional[str] = Field(
        default=None,
        description="Entity performing the operation (None = tenant level)"
    )

    operation_code: str = Field(
        ...,
        min_length=1,
        description="Dotted operation code (e.g., crm.leads.create)"
    )

    quantity: Decimal = Field(
        default=Decimal("1"),
        gt=0,
        description="Units of the operation performed"
    )

    idempotency_key: Optional[str] = Field(
        default=None,
        description="Unique key for idempotent charging (e.g., request id)"
    )

    initiated_by: Optional[str] = Field(default=None, description="User or service charging")
    description: Optional[str] = Field(default=None)

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "tenant_a",
                "entity_id": "branch_x",
                "operation_code": "crm.leads.create",
                "quantity": "1",
                "idempotency_key": "lead_123:create",
            }
        }


class ChargeResultDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str]
    account_entity_id: Optional[str] = Field(description="Entity whose account paid (after inheritance)")
    operation_code: str
    quantity: Decimal
    free_quantity: Optional[Decimal] = Field(description="Units covered by the free allowance")
    unit_cost: Optional[Decimal]
    charged_credits: Decimal
    overage_credits: Decimal
    new_balance: Decimal
    transaction_id: Optional[int] = Field(description="None when the charge was fully free")
    source_tier: Optional[ConfigScope]
    replayed: bool = Field(default=False, description="True when returned for a repeated idempotency key")


class EstimateCommandDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str] = None
    operation_code: str = Field(..., min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)


class EstimateResponseDTO(BaseModel):
    operation_code: str
    quantity: Decimal
    unit_cost: Decimal
    unit: str
    free_quantity: Decimal
    estimated_credits: Decimal
    available_credits: Decimal
    sufficient_credits: bool
    allow_overage: bool
    source_tier: ConfigScope


class ResolveCostQueryDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str] = None
    operation_code: str = Field(..., min_length=1)


class ResolvedCostDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str]
    operation_code: str
    unit_cost: Decimal
    unit: str
    free_allowance: int
    free_allowance_period: PeriodType
    allow_overage: bool
    overage_limit: Optional[Decimal]
    overage_period: PeriodType
    source_tier: ConfigScope
    configuration_id: int
    matched_operation_code: str
    snapshot_version: int


# ----------------------------------------------------------------------
# Purchases
# ----------------------------------------------------------------------

class PurchaseCreditsCommandDTO(BaseModel):
    """
    Command DTO for adding credits to an account

    Used for purchases and for promotional, seasonal, adjustment and refund
    grants. Transfers add credits through the transfer workflow only.
    """

    tenant_id: str = Field(..., description="Tenant identifier")
    entity_id: Optional[str] = Field(default=None, description="Receiving entity (None = tenant level)")

    amount: Decimal = Field(..., gt=0, description="Credits to add (must be > 0)")

    expiry_date: Optional[datetime] = Field(
        default=None,
        description="Expiry of the new batch (None = account default expiry)"
    )

    source: BatchSource = Field(default=BatchSource.PURCHASE)

    payment_reference: Optional[str] = Field(default=None, description="Payment collaborator reference")
    idempotency_key: Optional[str] = Field(default=None)
    initiated_by: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)

    @model_validator(mode="after")
    def validate_source(self):
        if self.source == BatchSource.TRANSFER:
            raise ValueError("Transfer batches are created by the transfer workflow")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "tenant_a",
                "entity_id": "branch_x",
                "amount": "500.0000",
                "expiry_date": "2026-12-31T00:00:00",
                "source": "purchase",
                "payment_reference": "pay_123",
            }
        }


class PurchaseCompletedEventDTO(BaseModel):
    """Completed purchase delivered by the payment collaborator"""

    tenant_id: str
    entity_id: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    expiry_date: Optional[datetime] = None
    payment_reference: str = Field(..., min_length=1)


class CreditGrantResponseDTO(BaseModel):
    transaction_id: int
    batch_id: Optional[int] = Field(description="None when the credit only settled overage debt")
    tenant_id: str
    account_entity_id: Optional[str]
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    expiry_date: Optional[datetime]
    source: BatchSource
    payment_reference: Optional[str]
    processed_at: datetime


# ----------------------------------------------------------------------
# Balance, transactions, usage
# ----------------------------------------------------------------------

class BalanceResponseDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str]
    account_entity_id: Optional[str]
    available_credits: Decimal
    reserved_credits: Decimal
    total_credits: Decimal
    total_purchased: Decimal
    total_consumed: Decimal
    total_expired: Decimal
    total_transferred_out: Decimal
    current_period_consumed: Decimal
    overage_debt: Decimal
    is_frozen: bool
    frozen_reason: Optional[str] = None
    next_expiry_date: Optional[datetime] = None
    next_expiry_amount: Optional[Decimal] = None
    last_updated: Optional[datetime] = None


class ListTransactionsQueryDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class TransactionDTO(BaseModel):
    transaction_id: int
    sequence: int
    transaction_type: TransactionType
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    operation_code: Optional[str] = None
    batch_id: Optional[int] = None
    transfer_id: Optional[int] = None
    reservation_id: Optional[int] = None
    payment_reference: Optional[str] = None
    description: Optional[str] = None
    initiated_by: Optional[str] = None
    processed_at: datetime


class TransactionListResponseDTO(BaseModel):
    transactions: List[TransactionDTO]
    total: int
    limit: int
    offset: int


class UsageSummaryQueryDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str] = None
    period_start: datetime
    period_end: datetime

    @model_validator(mode="after")
    def validate_period(self):
        if self.period_end <= self.period_start:
            raise ValueError("period_end must be after period_start")
        return self


class UsageSummaryDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str]
    account_entity_id: Optional[str]
    period_start: datetime
    period_end: datetime
    total_consumed: Decimal
    total_purchased: Decimal
    total_expired: Decimal
    total_transferred_in: Decimal
    total_transferred_out: Decimal
    transaction_count: int
    by_type: Dict[str, Decimal]
    by_operation: Dict[str, Decimal]


# ----------------------------------------------------------------------
# Reservations
# ----------------------------------------------------------------------

class ReserveCreditsCommandDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, description="Credits to hold")
    operation_code: Optional[str] = Field(
        default=None,
        description="Priced operation; the hold is quantity x resolved cost when amount is omitted"
    )
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    ttl_seconds: Optional[int] = Field(
        default=None,
        gt=0,
        description="Seconds until an uncommitted reservation is auto-released"
    )
    initiated_by: Optional[str] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def validate_amount_or_operation(self):
        if self.amount is None and not self.operation_code:
            raise ValueError("Either amount or operation_code is required")
        return self


class ReservationActionCommandDTO(BaseModel):
    reservation_id: int
    initiated_by: Optional[str] = None
    description: Optional[str] = None


class ReservationDTO(BaseModel):
    reservation_id: int
    account_id: int
    amount: Decimal
    operation_code: Optional[str]
    status: str
    deadline: datetime
    transaction_id: Optional[int] = Field(default=None, description="Consumption transaction on commit")
    available_credits: Decimal
    reserved_credits: Decimal
    created_at: datetime
    resolved_at: Optional[datetime] = None


# ----------------------------------------------------------------------
# Transfers
# ----------------------------------------------------------------------

class RequestTransferCommandDTO(BaseModel):
    """
    Command DTO for requesting a credit transfer

    Used as input to RequestTransfer use case.
    """

    tenant_id: str
    source_entity_id: Optional[str] = Field(default=None, description="None = tenant-level account")
    destination_entity_id: Optional[str] = Field(default=None, description="None = tenant-level account")
    amount: Decimal = Field(..., gt=0)
    selected_batches: List[int] = Field(
        default_factory=list,
        description="Source batches to draw from (empty = soonest-expiring first)"
    )
    is_temporary: bool = False
    recall_deadline: Optional[datetime] = None
    requested_by: str = Field(..., min_length=1)
    requester_role: Optional[str] = None
    purpose: Optional[str] = None
    description: Optional[str] = None
    idempotency_key: Optional[str] = None

    @model_validator(mode="after")
    def validate_temporary(self):
        if self.is_temporary and self.recall_deadline is None:
            raise ValueError("Temporary transfers need a recall_deadline")
        if not self.is_temporary and self.recall_deadline is not None:
            raise ValueError("recall_deadline only applies to temporary transfers")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "tenant_a",
                "source_entity_id": "org_1",
                "destination_entity_id": "branch_x",
                "amount": "250.0000",
                "requested_by": "user_42",
                "requester_role": "org_admin",
                "purpose": "Quarterly allocation",
            }
        }


class ApproveTransferCommandDTO(BaseModel):
    transfer_id: int
    approver_id: str = Field(..., min_length=1)
    approver_level: int = Field(..., ge=0, description="Approval level held by the approver")
    notes: Optional[str] = None


class RejectTransferCommandDTO(BaseModel):
    transfer_id: int
    rejected_by: str = Field(..., min_length=1)
    reason: Optional[str] = None


class RecallTransferCommandDTO(BaseModel):
    transfer_id: int
    recalled_by: str = Field(..., min_length=1)
    reason: Optional[str] = None


class TransferHistoryDTO(BaseModel):
    old_status: Optional[str]
    new_status: str
    actor_id: Optional[str]
    notes: Optional[str]
    created_at: datetime


class TransferDTO(BaseModel):
    transfer_id: int
    tenant_id: str
    source_entity_id: Optional[str]
    destination_entity_id: Optional[str]
    requested_amount: Decimal
    transfer_fee: Decimal
    transfer_amount: Decimal
    selected_batches: List[int]
    is_temporary: bool
    recall_deadline: Optional[datetime]
    status: str
    approval_required: bool
    required_approval_level: int
    requested_by: str
    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    failure_reason: Optional[str] = None
    executed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    recalled_at: Optional[datetime] = None
    created_at: datetime
    history: List[TransferHistoryDTO] = Field(default_factory=list)


# ----------------------------------------------------------------------
# Configuration and entities
# ----------------------------------------------------------------------

class UpsertConfigurationCommandDTO(BaseModel):
    scope: ConfigScope
    tenant_id: Optional[str] = None
    entity_id: Optional[str] = None
    operation_code: str = Field(..., min_length=1)
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

    @model_validator(mode="after")
    def validate_scope(self):
        if self.scope == ConfigScope.GLOBAL and (self.tenant_id or self.entity_id):
            raise ValueError("Global configurations have no tenant or entity")
        if self.scope == ConfigScope.TENANT_WIDE and (not self.tenant_id or self.entity_id):
            raise ValueError("Tenant-wide configurations need a tenant and no entity")
        if self.scope == ConfigScope.ENTITY_SPECIFIC and (not self.tenant_id or not self.entity_id):
            raise ValueError("Entity configurations need a tenant and an entity")
        code = self.operation_code
        if "*" in code and not (code == "*" or (code.endswith(".*") and code.count("*") == 1)):
            raise ValueError("Wildcards are only allowed as a final '.*' segment or as '*'")
        return self


class ConfigurationDTO(BaseModel):
    configuration_id: int
    scope: ConfigScope
    tenant_id: Optional[str]
    entity_id: Optional[str]
    operation_code: str
    credit_cost: Decimal
    unit: str
    free_allowance: int
    free_allowance_period: PeriodType
    allow_overage: bool
    overage_limit: Optional[Decimal]
    overage_period: PeriodType
    priority: int
    is_active: bool
    version: int
    updated_at: datetime


class RegisterEntityCommandDTO(BaseModel):
    entity_id: str = Field(..., min_length=1, max_length=64)
    tenant_id: str = Field(..., min_length=1)
    parent_id: Optional[str] = None
    kind: EntityKind
    name: Optional[str] = None
    inherit_settings: bool = False
    inherit_branding: bool = False
    inherit_credits: bool = False


class MoveEntityCommandDTO(BaseModel):
    entity_id: str
    new_parent_id: str


class EntityDTO(BaseModel):
    entity_id: str
    tenant_id: str
    parent_id: Optional[str]
    kind: EntityKind
    name: Optional[str]
    inherit_settings: bool
    inherit_branding: bool
    inherit_credits: bool
    ancestor_chain: List[str]


class SetAccountFrozenCommandDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str] = None
    frozen: bool
    reason: Optional[str] = None
    actor_id: Optional[str] = None


class AccountStatusDTO(BaseModel):
    tenant_id: str
    entity_id: Optional[str]
    account_key: str
    is_frozen: bool
    frozen_reason: Optional[str] = None
    updated_at: datetime


# ----------------------------------------------------------------------
# Seasonal campaigns
# ----------------------------------------------------------------------

class CreateCampaignCommandDTO(BaseModel):
    campaign_name: str = Field(..., min_length=1, max_length=255)
    credit_type: CampaignCreditType = CampaignCreditType.FREE_DISTRIBUTION
    total_credits: Decimal = Field(..., gt=0)
    credits_per_tenant: Optional[Decimal] = Field(default=None, gt=0)
    distribution_method: DistributionMethod = DistributionMethod.EQUAL
    expires_at: datetime
    target_all_tenants: bool = False
    target_tenant_ids: List[str] = Field(default_factory=list)
    send_notifications: bool = True
    notification_template: Optional[str] = Field(
        default=None, description="May use {credit_amount} and {campaign_name}"
    )
    created_by: Optional[str] = None

    @field_validator("expires_at")
    @classmethod
    def to_naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def validate_targets(self):
        if not self.target_all_tenants and not self.target_tenant_ids:
            raise ValueError("Target all tenants or list the tenants to receive credits")
        if self.target_all_tenants and self.target_tenant_ids:
            raise ValueError("target_tenant_ids must be empty when targeting all tenants")
        if self.credits_per_tenant is not None and self.credits_per_tenant > self.total_credits:
            raise ValueError("credits_per_tenant cannot exceed total_credits")
        return self


class DistributeCampaignCommandDTO(BaseModel):
    campaign_id: int
    initiated_by: Optional[str] = None


class ExtendCampaignCommandDTO(BaseModel):
    campaign_id: int
    additional_days: int = Field(..., gt=0, le=3650)
    initiated_by: Optional[str] = None


class CampaignDTO(BaseModel):
    campaign_id: int
    campaign_name: str
    credit_type: CampaignCreditType
    total_credits: Decimal
    credits_per_tenant: Optional[Decimal]
    distribution_method: DistributionMethod
    expires_at: datetime
    target_all_tenants: bool
    target_tenant_ids: List[str]
    send_notifications: bool
    status: CampaignStatus
    distributed_count: int
    failed_count: int
    distributed_at: Optional[datetime]
    created_by: Optional[str]
    created_at: datetime


class CampaignAllocationDTO(BaseModel):
    tenant_id: str
    account_key: str
    allocated_credits: Decimal
    status: AllocationStatus
    batch_id: Optional[int]
    transaction_id: Optional[int]
    error: Optional[str]
    allocated_at: datetime


class CampaignDistributionResultDTO(BaseModel):
    campaign_id: int
    status: CampaignStatus
    credits_per_tenant: Decimal
    distributed_count: int
    failed_count: int
    credits_distributed: Decimal
    failed_tenants: List[Dict[str, str]] = Field(default_factory=list)
    distributed_at: datetime


class CampaignExtensionDTO(BaseModel):
    campaign_id: int
    previous_expiry: datetime
    new_expiry: datetime
    batches_extended: int


class CampaignStatusDTO(BaseModel):
    campaign: CampaignDTO
    allocations: List[CampaignAllocationDTO]
    successful_allocations: int
    failed_allocations: int
    credits_distributed: Decimal
    credits_used: Decimal
    credits_expired: Decimal
    utilization_rate: Decimal = Field(description="Percentage of distributed credits already used")


# ----------------------------------------------------------------------
# Periodic jobs
# ----------------------------------------------------------------------

class ExpirySweepResultDTO(BaseModel):
    accounts_processed: int
    batches_expired: int
    credits_expired: Decimal
    warnings_sent: int
    transfers_finalized: int
    failures: int
    sweep_time: datetime
    execution_time_ms: int


class ReservationReapResultDTO(BaseModel):
    reservations_released: int
    credits_released: Decimal
    failures: int
    reap_time: datetime


class LedgerDiscrepancyDTO(BaseModel):
    tenant_id: str
    account_key: str
    account_id: int
    kind: str = Field(description="balance, continuity, sequence or batches")
    expected: Optional[Decimal] = None
    actual: Optional[Decimal] = None
    detail: str


class ReconciliationResultDTO(BaseModel):
    total_accounts_checked: int
    discrepancies_found: int
    discrepancies: List[LedgerDiscrepancyDTO]
    reconciliation_time: datetime
    execution_time_ms: int
