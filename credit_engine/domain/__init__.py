from .base import BaseModel, generate_uuid, utc_now
from .entity import Entity, EntityKind
from .credit_account import CreditAccount
from .credit_batch import CreditBatch, BatchSource
from .credit_transaction import CreditTransaction, TransactionType
from .credit_reservation import CreditReservation, ReservationStatus
from .credit_configuration import CreditConfiguration, ConfigScope
from .credit_transfer import CreditTransfer, TransferHistory, TransferStatus
from .transfer_approval_rule import TransferApprovalRule
from .credit_alert import CreditAlert, AlertType, AlertSeverity
from .operation_usage import OperationUsage
from .operation_charge import OperationCharge
from .seasonal_campaign import (
    SeasonalCampaign,
    CampaignAllocation,
    CampaignStatus,
    CampaignCreditType,
    DistributionMethod,
    AllocationStatus,
)

__all__ = [
    "BaseModel",
    "generate_uuid",
    "utc_now",
    "Entity",
    "EntityKind",
    "CreditAccount",
    "CreditBatch",
    "BatchSource",
    "CreditTransaction",
    "TransactionType",
    "CreditReservation",
    "ReservationStatus",
    "CreditConfiguration",
    "ConfigScope",
    "CreditTransfer",
    "TransferHistory",
    "TransferStatus",
    "TransferApprovalRule",
    "CreditAlert",
    "AlertType",
    "AlertSeverity",
    "OperationUsage",
    "OperationCharge",
    "SeasonalCampaign",
    "CampaignAllocation",
    "CampaignStatus",
    "CampaignCreditType",
    "DistributionMethod",
    "AllocationStatus",
]
