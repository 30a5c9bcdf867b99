from .entity_repository import SqlAlchemyEntityRepository
from .credit_account_repository import SqlAlchemyCreditAccountRepository
from .credit_batch_repository import SqlAlchemyCreditBatchRepository
from .credit_transaction_repository import SqlAlchemyCreditTransactionRepository
from .credit_reservation_repository import SqlAlchemyCreditReservationRepository
from .credit_configuration_repository import SqlAlchemyCreditConfigurationRepository
from .credit_transfer_repository import SqlAlchemyCreditTransferRepository
from .transfer_approval_rule_repository import SqlAlchemyTransferApprovalRuleRepository
from .credit_alert_repository import SqlAlchemyCreditAlertRepository
from .operation_usage_repository import SqlAlchemyOperationUsageRepository
from .operation_charge_repository import SqlAlchemyOperationChargeRepository
from .seasonal_campaign_repository import SqlAlchemySeasonalCampaignRepository

__all__ = [
    "SqlAlchemyEntityRepository",
    "SqlAlchemyCreditAccountRepository",
    "SqlAlchemyCreditBatchRepository",
    "SqlAlchemyCreditTransactionRepository",
    "SqlAlchemyCreditReservationRepository",
    "SqlAlchemyCreditConfigurationRepository",
    "SqlAlchemyCreditTransferRepository",
    "SqlAlchemyTransferApprovalRuleRepository",
    "SqlAlchemyCreditAlertRepository",
    "SqlAlchemyOperationUsageRepository",
    "SqlAlchemyOperationChargeRepository",
    "SqlAlchemySeasonalCampaignRepository",
]
