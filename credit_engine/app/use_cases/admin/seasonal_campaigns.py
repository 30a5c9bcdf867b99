"""Seasonal Campaign Use Cases

Create a campaign, distribute it as expiring SEASONAL batches to the
tenant-level account of every targeted tenant, push its expiry back, and
report how much of it was used.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_batch_repository import CreditBatchRepository
from credit_engine.app.repositories.entity_repository import EntityRepository
from credit_engine.app.repositories.seasonal_campaign_repository import SeasonalCampaignRepository
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.ledger_store import LedgerStore
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.app.use_cases.credits.dtos import (
    CampaignAllocationDTO,
    CampaignDistributionResultDTO,
    CampaignDTO,
    CampaignExtensionDTO,
    CampaignStatusDTO,
    CreateCampaignCommandDTO,
    DistributeCampaignCommandDTO,
    ExtendCampaignCommandDTO,
)
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_batch import BatchSource
from credit_engine.domain.errors import CampaignNotFound, CreditError, InvalidCampaignState
from credit_engine.domain.money import ZERO, floor_credits, to_credits
from credit_engine.domain.seasonal_campaign import (
    AllocationStatus,
    CampaignAllocation,
    CampaignStatus,
    DistributionMethod,
    SeasonalCampaign,
)

logger = logging.getLogger(__name__)


def campaign_to_dto(campaign: SeasonalCampaign) -> CampaignDTO:
    return CampaignDTO(
        campaign_id=campaign.id,
        campaign_name=campaign.campaign_name,
        credit_type=campaign.credit_type,
        total_credits=campaign.total_credits,
        credits_per_tenant=campaign.credits_per_tenant,
        distribution_method=campaign.distribution_method,
        expires_at=campaign.expires_at,
        target_all_tenants=campaign.target_all_tenants,
        target_tenant_ids=list(campaign.target_tenant_ids or []),
        send_notifications=campaign.send_notifications,
        status=campaign.status,
        distributed_count=campaign.distributed_count,
        failed_count=campaign.failed_count,
        distributed_at=campaign.distributed_at,
        created_by=campaign.created_by,
        created_at=campaign.created_at,
    )


def allocation_to_dto(allocation: CampaignAllocation) -> CampaignAllocationDTO:
    return CampaignAllocationDTO(
        tenant_id=allocation.tenant_id,
        account_key=allocation.account_key,
        allocated_credits=allocation.allocated_credits,
        status=allocation.status,
        batch_id=allocation.batch_id,
        transaction_id=allocation.transaction_id,
        error=allocation.error,
        allocated_at=allocation.allocated_at,
    )


def grant_per_tenant(campaign: SeasonalCampaign, tenant_count: int) -> Decimal:
    """Credits each tenant receives, rounded down so the total is never exceeded"""
    if campaign.credits_per_tenant is not None:
        return to_credits(campaign.credits_per_tenant)
    if campaign.distribution_method == DistributionMethod.FIXED:
        return to_credits(campaign.total_credits)
    return floor_credits(Decimal(campaign.total_credits) / tenant_count)


def grant_message(template: Optional[str], campaign_name: str, amount: Decimal, expires_at: datetime) -> str:
    if template:
        return template.replace("{credit_amount}", str(amount)).replace("{campaign_name}", campaign_name)
    return f"You received {amount} credits from {campaign_name}, valid until {expires_at.date().isoformat()}"


async def _load(campaign_repo: SeasonalCampaignRepository, campaign_id: int, for_update: bool = False) -> SeasonalCampaign:
    campaign = await campaign_repo.get_by_id(campaign_id, for_update=for_update)
    if campaign is None:
        raise CampaignNotFound(campaign_id)
    return campaign


class CreateCampaign:

    def __init__(self, uow: UnitOfWork, campaign_repo: SeasonalCampaignRepository):
        self.uow = uow
        self.campaign_repo = campaign_repo

    async def execute(self, command: CreateCampaignCommandDTO) -> Result[CampaignDTO]:
        try:
            now = utc_now()
            if command.expires_at <= now:
                raise InvalidCampaignState(
                    "Campaign expiry must be in the future",
                    {"expires_at": command.expires_at.isoformat()},
                )

            campaign = await self.campaign_repo.create(
                SeasonalCampaign(
                    campaign_name=command.campaign_name,
                    credit_type=command.credit_type,
                    total_credits=to_credits(command.total_credits),
                    credits_per_tenant=to_credits(command.credits_per_tenant) if command.credits_per_tenant else None,
                    distribution_method=command.distribution_method,
                    expires_at=command.expires_at,
                    target_all_tenants=command.target_all_tenants,
                    target_tenant_ids=list(dict.fromkeys(command.target_tenant_ids)),
                    send_notifications=command.send_notifications,
                    notification_template=command.notification_template,
                    created_by=command.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            await self.uow.commit()

            logger.info(f"Created campaign {campaign.id} '{campaign.campaign_name}' ({campaign.total_credits} credits)")
            return Return.ok(campaign_to_dto(campaign))

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Creating campaign '{command.campaign_name}' failed: {e}")
            return Return.err(
                Error(code="CREATE_CAMPAIGN_FAILED", message="Failed to create campaign", reason=str(e))
            )


class DistributeCampaign:
    """
    Use Case: Distribute a seasonal campaign

    Business Rules:
    1. A campaign is distributed once; only PENDING campaigns qualify
    2. Every tenant gets one SEASONAL batch expiring with the campaign, in
       its own ledger transaction under its own account lock
    3. A tenant that fails is recorded and skipped; the rest still receive
       credits and the campaign ends PARTIAL_SUCCESS
    4. Explicit targets must be registered tenants
    """

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        campaign_repo: SeasonalCampaignRepository,
        entity_repo: EntityRepository,
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.campaign_repo = campaign_repo
        self.entity_repo = entity_repo

    async def execute(self, command: DistributeCampaignCommandDTO) -> Result[CampaignDistributionResultDTO]:
        try:
            now = utc_now()
            campaign = await _load(self.campaign_repo, command.campaign_id, for_update=True)
            if campaign.status != CampaignStatus.PENDING:
                raise InvalidCampaignState(
                    f"Campaign {campaign.id} was already {campaign.status.value}",
                    {"campaign_id": campaign.id, "status": campaign.status.value},
                )
            if campaign.expires_at <= now:
                raise InvalidCampaignState(
                    f"Campaign {campaign.id} expired before distribution",
                    {"campaign_id": campaign.id, "expires_at": campaign.expires_at.isoformat()},
                )

            registered = await self.entity_repo.list_tenant_ids()
            targets = registered if campaign.target_all_tenants else list(campaign.target_tenant_ids)
            if not targets:
                raise InvalidCampaignState(f"Campaign {campaign.id} has no tenants to receive credits")

            amount = grant_per_tenant(campaign, len(targets))
            if amount <= 0:
                raise InvalidCampaignState(
                    f"Campaign {campaign.id} is too small to give every tenant credits",
                    {"campaign_id": campaign.id, "tenants": len(targets)},
                )

            campaign.status = CampaignStatus.PROCESSING
            await self.campaign_repo.save(campaign)
            await self.uow.commit()

            # A failed tenant rolls the session back, so nothing below reads the campaign row
            campaign_id = campaign.id
            reference = campaign.reference
            name = campaign.campaign_name
            expires_at = campaign.expires_at
            notify = campaign.send_notifications
            template = campaign.notification_template
            known = set(registered)

            logger.info(f"Distributing campaign {campaign_id}: {amount} credits to {len(targets)} tenants")

            distributed, failed_tenants = 0, []
            for tenant_id in targets:
                account_key = CreditAccount.key_for(tenant_id, None)

                async def operation(attempt: int, tenant_id: str = tenant_id, account_key: str = account_key) -> None:
                    account = await self.ledger.load_account(tenant_id, None, now)
                    transaction, batch = await self.ledger.credit(
                        account,
                        amount,
                        now,
                        BatchSource.SEASONAL,
                        expiry_date=expires_at,
                        source_reference=reference,
                        description=f"Seasonal campaign: {name}",
                        initiated_by=command.initiated_by,
                        idempotency_key=f"{reference}:{tenant_id}",
                    )
                    await self.campaign_repo.add_allocation(
                        CampaignAllocation(
                            campaign_id=campaign_id,
                            tenant_id=tenant_id,
                            account_key=account_key,
                            allocated_credits=amount,
                            batch_id=batch.id if batch else None,
                            transaction_id=transaction.id,
                            status=AllocationStatus.COMPLETED,
                            allocated_at=now,
                        )
                    )
                    if notify:
                        await self.ledger.alerts.credits_granted(
                            account, amount, name, grant_message(template, name, amount, expires_at)
                        )

                try:
                    if tenant_id not in known:
                        raise InvalidCampaignState(f"Tenant {tenant_id} is not registered")
                    await self.runner.run([account_key], operation)
                    distributed += 1
                except Exception as e:
                    logger.error(f"Campaign {campaign_id} grant to {tenant_id} failed: {e}")
                    failed_tenants.append({"tenant_id": tenant_id, "error": str(e)})
                    await self.campaign_repo.add_allocation(
                        CampaignAllocation(
                            campaign_id=campaign_id,
                            tenant_id=tenant_id,
                            account_key=account_key,
                            status=AllocationStatus.FAILED,
                            error=str(e),
                            allocated_at=now,
                        )
                    )
                    await self.uow.commit()

            campaign = await _load(self.campaign_repo, campaign_id, for_update=True)
            if not failed_tenants:
                campaign.status = CampaignStatus.COMPLETED
            elif distributed:
                campaign.status = CampaignStatus.PARTIAL_SUCCESS
            else:
                campaign.status = CampaignStatus.FAILED
            campaign.distributed_count = distributed
            campaign.failed_count = len(failed_tenants)
            campaign.distributed_at = now
            await self.campaign_repo.save(campaign)
            await self.uow.commit()

            logger.info(
                f"Campaign {campaign_id} {campaign.status.value}: {distributed} tenants credited, "
                f"{len(failed_tenants)} failed"
            )
            return Return.ok(
                CampaignDistributionResultDTO(
                    campaign_id=campaign_id,
                    status=campaign.status,
                    credits_per_tenant=amount,
                    distributed_count=distributed,
                    failed_count=len(failed_tenants),
                    credits_distributed=to_credits(amount * distributed),
                    failed_tenants=failed_tenants,
                    distributed_at=now,
                )
            )

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Distributing campaign {command.campaign_id} failed: {e}")
            return Return.err(
                Error(code="DISTRIBUTE_CAMPAIGN_FAILED", message="Failed to distribute campaign", reason=str(e))
            )


class ExtendCampaignExpiry:
    """
    Use Case: Push a campaign's expiry back

    Every granted batch that has not expired yet moves to the new date and
    gets its expiry warnings again. Batches already expired stay expired.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        campaign_repo: SeasonalCampaignRepository,
        batch_repo: CreditBatchRepository,
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.campaign_repo = campaign_repo
        self.batch_repo = batch_repo

    async def execute(self, command: ExtendCampaignCommandDTO) -> Result[CampaignExtensionDTO]:
        try:
            now = utc_now()
            campaign = await _load(self.campaign_repo, command.campaign_id)
            if campaign.status == CampaignStatus.PROCESSING:
                raise InvalidCampaignState(
                    f"Campaign {campaign.id} is being distributed",
                    {"campaign_id": campaign.id, "status": campaign.status.value},
                )

            previous_expiry = campaign.expires_at
            new_expiry = previous_expiry + timedelta(days=command.additional_days)
            granted: Dict[str, int] = {
                allocation.account_key: allocation.batch_id
                for allocation in await self.campaign_repo.list_allocations(campaign.id)
                if allocation.status == AllocationStatus.COMPLETED and allocation.batch_id is not None
            }

            extended = 0
            for account_key, batch_id in granted.items():

                async def operation(attempt: int, account_key: str = account_key, batch_id: int = batch_id) -> int:
                    await self.ledger.load_account_by_key(account_key, now)
                    count = 0
                    for batch in await self.batch_repo.get_by_ids([batch_id], for_update=True):
                        if batch.is_expired or batch.is_due(now):
                            continue
                        # Absolute date so a retried extension lands on the same day
                        batch.expiry_date = new_expiry
                        batch.last_warning_days = None
                        await self.batch_repo.save(batch)
                        count += 1
                    return count

                extended += await self.runner.run([account_key], operation)

            campaign = await _load(self.campaign_repo, command.campaign_id, for_update=True)
            campaign.expires_at = new_expiry
            await self.campaign_repo.save(campaign)
            await self.uow.commit()

            logger.info(
                f"Campaign {command.campaign_id} extended by {command.additional_days} days to "
                f"{new_expiry.isoformat()} ({extended} batches)"
                f"{f' by {command.initiated_by}' if command.initiated_by else ''}"
            )
            return Return.ok(
                CampaignExtensionDTO(
                    campaign_id=command.campaign_id,
                    previous_expiry=previous_expiry,
                    new_expiry=new_expiry,
                    batches_extended=extended,
                )
            )

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Extending campaign {command.campaign_id} failed: {e}")
            return Return.err(
                Error(code="EXTEND_CAMPAIGN_FAILED", message="Failed to extend campaign", reason=str(e))
            )


class GetCampaignStatus:

    def __init__(self, campaign_repo: SeasonalCampaignRepository, batch_repo: CreditBatchRepository):
        self.campaign_repo = campaign_repo
        self.batch_repo = batch_repo

    async def execute(self, campaign_id: int) -> Result[CampaignStatusDTO]:
        try:
            campaign = await _load(self.campaign_repo, campaign_id)
            allocations = await self.campaign_repo.list_allocations(campaign_id)
            completed = [a for a in allocations if a.status == AllocationStatus.COMPLETED]

            batch_ids = [a.batch_id for a in completed if a.batch_id is not None]
            batches = await self.batch_repo.get_by_ids(batch_ids) if batch_ids else []

            distributed = to_credits(sum((a.allocated_credits for a in completed), ZERO))
            expired = to_credits(sum((b.expired_amount for b in batches), ZERO))
            remaining = to_credits(sum((b.remaining_amount for b in batches), ZERO))
            # Grants that only settled overage debt never became a batch and count as used
            used = max(to_credits(distributed - remaining - expired), ZERO)
            rate = (used / distributed * 100).quantize(Decimal("0.01")) if distributed > 0 else ZERO

            return Return.ok(
                CampaignStatusDTO(
                    campaign=campaign_to_dto(campaign),
                    allocations=[allocation_to_dto(a) for a in allocations],
                    successful_allocations=len(completed),
                    failed_allocations=len(allocations) - len(completed),
                    credits_distributed=distributed,
                    credits_used=used,
                    credits_expired=expired,
                    utilization_rate=rate,
                )
            )

        except CreditError as e:
            return Return.err(e.to_error())
        except Exception as e:
            logger.error(f"Loading campaign {campaign_id} failed: {e}")
            return Return.err(
                Error(code="GET_CAMPAIGN_FAILED", message="Failed to load campaign", reason=str(e))
            )


class ListCampaigns:

    def __init__(self, campaign_repo: SeasonalCampaignRepository):
        self.campaign_repo = campaign_repo

    async def execute(self, status: Optional[CampaignStatus] = None) -> Result[List[CampaignDTO]]:
        try:
            campaigns = await self.campaign_repo.list_campaigns(status)
            return Return.ok([campaign_to_dto(c) for c in campaigns])
        except Exception as e:
            logger.error(f"Listing campaigns failed: {e}")
            return Return.err(
                Error(code="LIST_CAMPAIGNS_FAILED", message="Failed to list campaigns", reason=str(e))
            )
