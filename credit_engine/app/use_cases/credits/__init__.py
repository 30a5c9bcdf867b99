"""Credit ledger use cases"""
from .charge_operation import ChargeOperation
from .estimate_charge import EstimateCharge, ResolveCost
from .purchase_credits import PurchaseCredits, PurchaseCompleted, payment_idempotency_key
from .get_balance import GetBalance
from .list_transactions import ListTransactions
from .get_usage_summary import GetUsageSummary
from .reservations import ReserveCredits, CommitReservation, ReleaseReservation
from .transfer_workflow import TransferExecutor, portions_after_fee, transfer_to_dto
from .request_transfer import RequestTransfer
from .approve_transfer import ApproveTransfer
from .reject_transfer import RejectTransfer
from .recall_transfer import RecallTransfer
from .dtos import (
    ChargeOperationCommandDTO,
    ChargeResultDTO,
    EstimateCommandDTO,
    EstimateResponseDTO,
    ResolveCostQueryDTO,
    ResolvedCostDTO,
    PurchaseCreditsCommandDTO,
    PurchaseCompletedEventDTO,
    CreditGrantResponseDTO,
    BalanceResponseDTO,
    ListTransactionsQueryDTO,
    TransactionDTO,
    TransactionListResponseDTO,
    UsageSummaryQueryDTO,
    UsageSummaryDTO,
    ReserveCreditsCommandDTO,
    ReservationActionCommandDTO,
    ReservationDTO,
    RequestTransferCommandDTO,
    ApproveTransferCommandDTO,
    RejectTransferCommandDTO,
    RecallTransferCommandDTO,
    TransferHistoryDTO,
    TransferDTO,
    UpsertConfigurationCommandDTO,
    ConfigurationDTO,
    RegisterEntityCommandDTO,
    MoveEntityCommandDTO,
    EntityDTO,
    SetAccountFrozenCommandDTO,
    AccountStatusDTO,
    CreateCampaignCommandDTO,
    DistributeCampaignCommandDTO,
    ExtendCampaignCommandDTO,
    CampaignDTO,
    CampaignAllocationDTO,
    CampaignDistributionResultDTO,
    CampaignExtensionDTO,
    CampaignStatusDTO,
    ExpirySweepResultDTO,
    ReservationReapResultDTO,
    LedgerDiscrepancyDTO,
    ReconciliationResultDTO,
)

__all__ = [
    "ChargeOperation",
    "EstimateCharge",
    "ResolveCost",
    "PurchaseCredits",
    "PurchaseCompleted",
    "payment_idempotency_key",
    "GetBalance",
    "ListTransactions",
    "GetUsageSummary",
    "ReserveCredits",
    "CommitReservation",
    "ReleaseReservation",
    "TransferExecutor",
    "portions_after_fee",
    "transfer_to_dto",
    "RequestTransfer",
    "ApproveTransfer",
    "RejectTransfer",
    "RecallTransfer",
    "ChargeOperationCommandDTO",
    "ChargeResultDTO",
    "EstimateCommandDTO",
    "EstimateResponseDTO",
    "ResolveCostQueryDTO",
    "ResolvedCostDTO",
    "PurchaseCreditsCommandDTO",
    "PurchaseCompletedEventDTO",
    "CreditGrantResponseDTO",
    "BalanceResponseDTO",
    "ListTransactionsQueryDTO",
    "TransactionDTO",
    "TransactionListResponseDTO",
    "UsageSummaryQueryDTO",
    "UsageSummaryDTO",
    "ReserveCreditsCommandDTO",
    "ReservationActionCommandDTO",
    "ReservationDTO",
    "RequestTransferCommandDTO",
    "ApproveTransferCommandDTO",
    "RejectTransferCommandDTO",
    "RecallTransferCommandDTO",
    "TransferHistoryDTO",
    "TransferDTO",
    "UpsertConfigurationCommandDTO",
    "ConfigurationDTO",
    "RegisterEntityCommandDTO",
    "MoveEntityCommandDTO",
    "EntityDTO",
    "SetAccountFrozenCommandDTO",
    "AccountStatusDTO",
    "CreateCampaignCommandDTO",
    "DistributeCampaignCommandDTO",
    "ExtendCampaignCommandDTO",
    "CampaignDTO",
    "CampaignAllocationDTO",
    "CampaignDistributionResultDTO",
    "CampaignExtensionDTO",
    "CampaignStatusDTO",
    "ExpirySweepResultDTO",
    "ReservationReapResultDTO",
    "LedgerDiscrepancyDTO",
    "ReconciliationResultDTO",
]
