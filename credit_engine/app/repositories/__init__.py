from .entity_repository import EntityRepository
from .credit_account_repository import CreditAccountRepository
from .credit_batch_repository import CreditBatchRepository
from .credit_transaction_repository import CreditTransactionRepository
from .credit_reservation_repository import CreditReservationRepository
from .credit_configuration_repository import CreditConfigurationRepository
from .credit_transfer_repository import CreditTransferRepository
from .transfer_approval_rule_repository import TransferApprovalRuleRepository
from .credit_alert_repository import CreditAlertRepository
from .operation_usage_repository import OperationUsageRepository
from .operation_charge_repository import OperationChargeRepository
from .seasonal_campaign_repository import SeasonalCampaignRepository

__all__ = [
    "EntityRepository",
    "CreditAccountRepository",
    "CreditBatchRepository",
    "CreditTransactionRepository",
    "CreditReservationRepository",
    "CreditConfigurationRepository",
    "CreditTransferRepository",
    "TransferApprovalRuleRepository",
    "CreditAlertRepository",
    "OperationUsageRepository",
    "OperationChargeRepository",
    "SeasonalCampaignRepository",
]
