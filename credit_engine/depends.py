from decimal import Decimal
from typing import Optional
from fastapi import Depends
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from config import ApplicationConfig
from credit_engine.adapter.repositories import (
    SqlAlchemyEntityRepository,
    SqlAlchemyCreditAccountRepository,
    SqlAlchemyCreditBatchRepository,
    SqlAlchemyCreditTransactionRepository,
    SqlAlchemyCreditReservationRepository,
    SqlAlchemyCreditConfigurationRepository,
    SqlAlchemyCreditTransferRepository,
    SqlAlchemyTransferApprovalRuleRepository,
    SqlAlchemyCreditAlertRepository,
    SqlAlchemyOperationUsageRepository,
    SqlAlchemyOperationChargeRepository,
    SqlAlchemySeasonalCampaignRepository,
)
from credit_engine.adapter.services import SqlAlchemyUnitOfWork, create_alert_gateway
from credit_engine.app.services import (
    AccountLockManager,
    AlertGateway,
    AlertRecorder,
    ConfigurationResolver,
    HierarchyService,
    LedgerStore,
    LedgerTransactionRunner,
    TTLCache,
)
from credit_engine.app.use_cases.admin import (
    CreateCampaign,
    DistributeCampaign,
    ExtendCampaignExpiry,
    GetCampaignStatus,
    ListCampaigns,
    MoveEntity,
    RegisterEntity,
    SetAccountFrozen,
    UpsertConfiguration,
)
from credit_engine.app.use_cases.credits import (
    ApproveTransfer,
    ChargeOperation,
    CommitReservation,
    EstimateCharge,
    GetBalance,
    GetUsageSummary,
    ListTransactions,
    PurchaseCompleted,
    PurchaseCredits,
    RecallTransfer,
    RejectTransfer,
    ReleaseReservation,
    RequestTransfer,
    ReserveCredits,
    ResolveCost,
    TransferExecutor,
)
from credit_engine.app.use_cases.jobs import ReconcileLedger, RunExpirySweep, RunReservationReap

engine = create_async_engine(ApplicationConfig.DB_URI, echo=False, future=True)

AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

# Process-wide state shared by every request
account_locks = AccountLockManager(ApplicationConfig.CREDIT_LOCK_TIMEOUT_SECONDS)
configuration_cache = TTLCache(ApplicationConfig.CONFIG_CACHE_TTL_SECONDS, ApplicationConfig.CONFIG_CACHE_MAX_SIZE)
hierarchy_cache = TTLCache(ApplicationConfig.CONFIG_CACHE_TTL_SECONDS, ApplicationConfig.CONFIG_CACHE_MAX_SIZE)
alert_gateway = create_alert_gateway(ApplicationConfig.ALERT_WEBHOOK_URL)


class CreditServices:
    """
    Wiring of repositories, ledger services and use cases around one session

    Locks, caches and the alert gateway are process-wide and shared; every
    other object lives as long as the session.
    """

    def __init__(
        self,
        session: AsyncSession,
        config=ApplicationConfig,
        locks: Optional[AccountLockManager] = None,
        config_cache: Optional[TTLCache] = None,
        entity_cache: Optional[TTLCache] = None,
        gateway: Optional[AlertGateway] = None,
    ):
        self.config = config
        self.uow = SqlAlchemyUnitOfWork(session)

        self.entity_repo = SqlAlchemyEntityRepository(session)
        self.account_repo = SqlAlchemyCreditAccountRepository(session)
        self.batch_repo = SqlAlchemyCreditBatchRepository(session)
        self.transaction_repo = SqlAlchemyCreditTransactionRepository(session)
        self.reservation_repo = SqlAlchemyCreditReservationRepository(session)
        self.config_repo = SqlAlchemyCreditConfigurationRepository(session)
        self.transfer_repo = SqlAlchemyCreditTransferRepository(session)
        self.rule_repo = SqlAlchemyTransferApprovalRuleRepository(session)
        self.alert_repo = SqlAlchemyCreditAlertRepository(session)
        self.usage_repo = SqlAlchemyOperationUsageRepository(session)
        self.charge_repo = SqlAlchemyOperationChargeRepository(session)
        self.campaign_repo = SqlAlchemySeasonalCampaignRepository(session)

        self.alerts = AlertRecorder(self.alert_repo, Decimal(str(config.LOW_BALANCE_THRESHOLD)))
        self.ledger = LedgerStore(
            self.account_repo,
            self.batch_repo,
            self.transaction_repo,
            self.reservation_repo,
            self.alerts,
            default_expiry_days=config.CREDIT_DEFAULT_EXPIRY_DAYS,
        )
        self.runner = LedgerTransactionRunner(
            self.uow,
            locks if locks is not None else account_locks,
            self.alerts,
            gateway=gateway if gateway is not None else alert_gateway,
            max_retries=config.CREDIT_MAX_RETRIES,
        )
        self.hierarchy = HierarchyService(self.entity_repo, entity_cache if entity_cache is not None else hierarchy_cache)
        self.resolver = ConfigurationResolver(self.config_repo, config_cache if config_cache is not None else configuration_cache)
        self.executor = TransferExecutor(self.ledger, self.transfer_repo, self.alerts)

    # Charging and queries

    def charge_operation(self) -> ChargeOperation:
        return ChargeOperation(
            self.uow, self.runner, self.ledger, self.resolver, self.hierarchy, self.usage_repo, self.charge_repo
        )

    def estimate_charge(self) -> EstimateCharge:
        return EstimateCharge(self.resolver, self.hierarchy, self.account_repo, self.usage_repo)

    def resolve_cost(self) -> ResolveCost:
        return ResolveCost(self.resolver)

    def purchase_credits(self) -> PurchaseCredits:
        return PurchaseCredits(
            self.uow, self.runner, self.ledger, self.hierarchy, self.transaction_repo, self.batch_repo
        )

    def purchase_completed(self) -> PurchaseCompleted:
        return PurchaseCompleted(self.purchase_credits())

    def get_balance(self) -> GetBalance:
        return GetBalance(self.hierarchy, self.account_repo, self.batch_repo)

    def list_transactions(self) -> ListTransactions:
        return ListTransactions(self.hierarchy, self.account_repo, self.transaction_repo)

    def get_usage_summary(self) -> GetUsageSummary:
        return GetUsageSummary(self.hierarchy, self.account_repo, self.transaction_repo)

    # Reservations

    def reserve_credits(self) -> ReserveCredits:
        return ReserveCredits(
            self.uow,
            self.runner,
            self.ledger,
            self.resolver,
            self.hierarchy,
            default_ttl_seconds=self.config.RESERVATION_DEFAULT_TTL_SECONDS,
        )

    def commit_reservation(self) -> CommitReservation:
        return CommitReservation(self.uow, self.runner, self.ledger, self.reservation_repo, self.account_repo)

    def release_reservation(self) -> ReleaseReservation:
        return ReleaseReservation(self.uow, self.runner, self.ledger, self.reservation_repo, self.account_repo)

    # Transfers

    def request_transfer(self) -> RequestTransfer:
        return RequestTransfer(
            self.uow,
            self.runner,
            self.executor,
            self.hierarchy,
            self.transfer_repo,
            self.rule_repo,
            fee_rate=Decimal(str(self.config.TRANSFER_FEE_RATE)),
            default_approval_level=self.config.DEFAULT_TRANSFER_APPROVAL_LEVEL,
        )

    def approve_transfer(self) -> ApproveTransfer:
        return ApproveTransfer(self.uow, self.runner, self.executor, self.transfer_repo)

    def reject_transfer(self) -> RejectTransfer:
        return RejectTransfer(self.uow, self.runner, self.executor, self.transfer_repo)

    def recall_transfer(self) -> RecallTransfer:
        return RecallTransfer(self.uow, self.runner, self.executor, self.transfer_repo)

    # Administration

    def upsert_configuration(self) -> UpsertConfiguration:
        return UpsertConfiguration(self.uow, self.config_repo, self.resolver, self.hierarchy)

    def register_entity(self) -> RegisterEntity:
        return RegisterEntity(self.uow, self.runner, self.entity_repo, self.hierarchy)

    def move_entity(self) -> MoveEntity:
        return MoveEntity(self.uow, self.runner, self.entity_repo, self.hierarchy)

    def set_account_frozen(self) -> SetAccountFrozen:
        return SetAccountFrozen(self.uow, self.runner, self.ledger, self.hierarchy)

    # Seasonal campaigns

    def create_campaign(self) -> CreateCampaign:
        return CreateCampaign(self.uow, self.campaign_repo)

    def distribute_campaign(self) -> DistributeCampaign:
        return DistributeCampaign(self.uow, self.runner, self.ledger, self.campaign_repo, self.entity_repo)

    def extend_campaign(self) -> ExtendCampaignExpiry:
        return ExtendCampaignExpiry(self.uow, self.runner, self.ledger, self.campaign_repo, self.batch_repo)

    def get_campaign_status(self) -> GetCampaignStatus:
        return GetCampaignStatus(self.campaign_repo, self.batch_repo)

    def list_campaigns(self) -> ListCampaigns:
        return ListCampaigns(self.campaign_repo)

    # Periodic jobs

    def run_expiry_sweep(self) -> RunExpirySweep:
        return RunExpirySweep(
            self.uow,
            self.runner,
            self.ledger,
            self.executor,
            self.account_repo,
            self.batch_repo,
            self.transfer_repo,
            warning_days=self.config.EXPIRY_WARNING_DAYS,
        )

    def run_reservation_reap(self) -> RunReservationReap:
        return RunReservationReap(self.uow, self.runner, self.ledger, self.account_repo, self.reservation_repo)

    def reconcile_ledger(self) -> ReconcileLedger:
        return ReconcileLedger(self.account_repo, self.transaction_repo, self.batch_repo)


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


async def get_credit_services(session: AsyncSession = Depends(get_session)) -> CreditServices:
    return CreditServices(session)
