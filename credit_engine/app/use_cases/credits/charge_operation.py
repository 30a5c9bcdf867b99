"""ChargeOperation Use Case

Charges a priced operation to the account that pays for an entity: resolve
the operation's cost, apply the free allowance, then consume credits from
the batch pool under the resolved overage policy.
"""

import logging
from decimal import Decimal
from typing import Optional
from libs.result import Result, Return, Error
from credit_engine.app.repositories.operation_charge_repository import OperationChargeRepository
from credit_engine.app.repositories.operation_usage_repository import OperationUsageRepository
from credit_engine.app.services.config_resolver import ConfigurationResolver, ResolvedCost
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.ledger_store import LedgerStore
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.errors import AccountFrozen, CreditError
from credit_engine.domain.money import ZERO, multiply, to_credits
from credit_engine.domain.operation_charge import OperationCharge
from credit_engine.domain.operation_usage import OperationUsage
from credit_engine.domain.policies import period_start
from .dtos import ChargeOperationCommandDTO, ChargeResultDTO

logger = logging.getLogger(__name__)


class ChargeOperation:
    """
    Use Case: Charge a priced operation

    Business Rules:
    1. Idempotency: Same idempotency_key returns the original charge,
       including charges the free allowance covered entirely
    2. Cost comes from the first configuration tier that matches
       (entity, then tenant, then global); no match is an error, never free
    3. Quantity within the period's free allowance is not billed
    4. Credits are consumed soonest-expiring batch first
    5. Shortfall beyond the pool needs an overage policy that allows it
    6. Entities inheriting credits are charged to their ancestor's account

    Flow:
    1. Check idempotency
    2. Resolve paying account and cost
    3. Lock account, check idempotency again, apply free allowance, consume
    4. Record the charge, commit and deliver alerts
    """

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        resolver: ConfigurationResolver,
        hierarchy: HierarchyService,
        usage_repo: OperationUsageRepository,
        charge_repo: OperationChargeRepository,
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.resolver = resolver
        self.hierarchy = hierarchy
        self.usage_repo = usage_repo
        self.charge_repo = charge_repo

    async def execute(self, command: ChargeOperationCommandDTO) -> Result[ChargeResultDTO]:
        try:
            # Step 1: Idempotent replay
            if command.idempotency_key:
                existing = await self.charge_repo.get_by_idempotency_key(command.idempotency_key)
                if existing:
                    return Return.ok(charge_to_dto(existing, replayed=True))

            # Step 2: Paying account and effective cost
            await self.hierarchy.require_entity(command.tenant_id, command.entity_id)
            owner_id = await self.hierarchy.credit_owner(command.tenant_id, command.entity_id)
            resolved = await self.resolver.resolve(command.tenant_id, command.entity_id, command.operation_code)
            account_key = CreditAccount.key_for(command.tenant_id, owner_id)

            async def operation(attempt: int) -> ChargeResultDTO:
                now = utc_now()
                account = await self.ledger.load_account(command.tenant_id, owner_id, now)
                # A concurrent request with the same key may have committed while we waited
                if command.idempotency_key:
                    existing = await self.charge_repo.get_by_idempotency_key(command.idempotency_key)
                    if existing:
                        return charge_to_dto(existing, replayed=True)
                if account.is_frozen:
                    raise AccountFrozen(account.account_key, account.frozen_reason)

                free_quantity = await self._apply_free_allowance(account, command, resolved, now)
                billable = command.quantity - free_quantity
                amount = multiply(resolved.unit_cost, billable) if billable > 0 else ZERO

                transaction_id: Optional[int] = None
                overage = ZERO
                if amount > 0:
                    outcome = await self.ledger.consume(
                        account,
                        amount,
                        now,
                        operation_code=command.operation_code,
                        overage_policy=resolved.overage_policy,
                        description=command.description,
                        initiated_by=command.initiated_by,
                        idempotency_key=command.idempotency_key,
                    )
                    transaction_id = outcome.transaction.id
                    overage = outcome.overage

                charge = await self.charge_repo.create(
                    OperationCharge(
                        account_id=account.id,
                        tenant_id=command.tenant_id,
                        entity_id=command.entity_id,
                        account_entity_id=owner_id,
                        operation_code=command.operation_code,
                        quantity=to_credits(command.quantity),
                        free_quantity=free_quantity,
                        unit_cost=resolved.unit_cost,
                        charged_credits=amount,
                        overage_credits=overage,
                        new_balance=account.available_credits,
                        transaction_id=transaction_id,
                        source_tier=resolved.source_tier,
                        idempotency_key=command.idempotency_key,
                        charged_at=now,
                    )
                )
                return charge_to_dto(charge)

            # Step 3-4: Locked consume, commit, alerts
            result = await self.runner.run([account_key], operation)
            if result.replayed:
                logger.info(f"Charge {command.idempotency_key} already applied to {account_key}")
                return Return.ok(result)
            logger.info(
                f"Charged {result.charged_credits} credits to {account_key} for "
                f"{command.operation_code} x{command.quantity} (tier={resolved.source_tier.value})"
            )
            return Return.ok(result)

        except CreditError as e:
            await self.uow.rollback()
            logger.warning(f"Charge of {command.operation_code} for {command.tenant_id}/{command.entity_id} refused: {e.code}")
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Charge of {command.operation_code} failed: {e}")
            return Return.err(
                Error(
                    code="CHARGE_OPERATION_FAILED",
                    message="Failed to charge operation",
                    reason=str(e),
                )
            )

    async def _apply_free_allowance(
        self,
        account: CreditAccount,
        command: ChargeOperationCommandDTO,
        resolved: ResolvedCost,
        now,
    ) -> Decimal:
        """Record usage for the period and return the quantity that is free"""
        if resolved.free_allowance <= 0:
            return ZERO

        start = period_start(now, resolved.free_allowance_period)
        usage = await self.usage_repo.get(account.id, command.operation_code, start, for_update=True)
        if usage is None:
            usage = await self.usage_repo.create(
                OperationUsage(
                    account_id=account.id,
                    operation_code=command.operation_code,
                    period_start=start,
                    updated_at=now,
                )
            )

        remaining_free = max(Decimal(resolved.free_allowance) - usage.quantity_used, ZERO)
        free_quantity = to_credits(min(command.quantity, remaining_free))
        usage.quantity_used = to_credits(usage.quantity_used + command.quantity)
        await self.usage_repo.save(usage)
        return free_quantity


def charge_to_dto(charge: OperationCharge, replayed: bool = False) -> ChargeResultDTO:
    return ChargeResultDTO(
        tenant_id=charge.tenant_id,
        entity_id=charge.entity_id,
        account_entity_id=charge.account_entity_id,
        operation_code=charge.operation_code,
        quantity=charge.quantity,
        free_quantity=charge.free_quantity,
        unit_cost=charge.unit_cost,
        charged_credits=charge.charged_credits,
        overage_credits=charge.overage_credits,
        new_balance=charge.new_balance,
        transaction_id=charge.transaction_id,
        source_tier=charge.source_tier,
        replayed=replayed,
    )
