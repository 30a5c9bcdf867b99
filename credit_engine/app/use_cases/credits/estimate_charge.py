"""
Estimate Charge and Resolve Cost Use Cases

Read-only previews of what a charge would cost. Neither mutates balances
nor records usage.
"""
import logging
from decimal import Decimal
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.operation_usage_repository import OperationUsageRepository
from credit_engine.app.services.config_resolver import ConfigurationResolver
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.errors import CreditError
from credit_engine.domain.money import ZERO, multiply, to_credits
from credit_engine.domain.policies import period_start
from .dtos import (
    EstimateCommandDTO,
    EstimateResponseDTO,
    ResolveCostQueryDTO,
    ResolvedCostDTO,
)

logger = logging.getLogger(__name__)


class EstimateCharge:
    """
    Use case: Preflight charge estimation

    Resolves the operation's cost for the entity, subtracts the free
    allowance still available this period, and compares the result with
    the paying account's available credits plus permitted overage.
    """

    def __init__(
        self,
        resolver: ConfigurationResolver,
        hierarchy: HierarchyService,
        account_repo: CreditAccountRepository,
        usage_repo: OperationUsageRepository,
    ):
        self.resolver = resolver
        self.hierarchy = hierarchy
        self.account_repo = account_repo
        self.usage_repo = usage_repo

    async def execute(self, command: EstimateCommandDTO) -> Result[EstimateResponseDTO]:
        try:
            resolved = await self.resolver.resolve(command.tenant_id, command.entity_id, command.operation_code)
            owner_id = await self.hierarchy.credit_owner(command.tenant_id, command.entity_id)
            account = await self.account_repo.get_by_key(CreditAccount.key_for(command.tenant_id, owner_id))
            available = account.available_credits if account else ZERO

            free_quantity = ZERO
            if resolved.free_allowance > 0:
                used = ZERO
                if account is not None:
                    start = period_start(utc_now(), resolved.free_allowance_period)
                    usage = await self.usage_repo.get(account.id, command.operation_code, start)
                    used = usage.quantity_used if usage else ZERO
                remaining_free = max(Decimal(resolved.free_allowance) - used, ZERO)
                free_quantity = to_credits(min(command.quantity, remaining_free))

            billable = command.quantity - free_quantity
            estimated = multiply(resolved.unit_cost, billable) if billable > 0 else ZERO

            headroom = max(available, ZERO)
            policy = resolved.overage_policy
            if policy.allow_overage:
                if policy.overage_limit is None:
                    headroom = None
                else:
                    debt = max(-available, ZERO)
                    headroom += max(to_credits(policy.overage_limit) - debt, ZERO)

            return Return.ok(
                EstimateResponseDTO(
                    operation_code=command.operation_code,
                    quantity=command.quantity,
                    unit_cost=resolved.unit_cost,
                    unit=resolved.unit,
                    free_quantity=free_quantity,
                    estimated_credits=estimated,
                    available_credits=available,
                    sufficient_credits=headroom is None or estimated <= headroom,
                    allow_overage=policy.allow_overage,
                    source_tier=resolved.source_tier,
                )
            )
        except CreditError as e:
            return Return.err(e.to_error())
        except Exception as e:
            logger.error(f"Estimate for {command.operation_code} failed: {e}")
            return Return.err(
                Error(
                    code="ESTIMATE_CHARGE_FAILED",
                    message="Failed to estimate charge",
                    reason=str(e),
                )
            )


class ResolveCost:
    """Use case: Expose the configuration resolver to administrative callers"""

    def __init__(self, resolver: ConfigurationResolver):
        self.resolver = resolver

    async def execute(self, query: ResolveCostQueryDTO) -> Result[ResolvedCostDTO]:
        try:
            resolved = await self.resolver.resolve(query.tenant_id, query.entity_id, query.operation_code)
        except CreditError as e:
            return Return.err(e.to_error())
        except Exception as e:
            logger.error(f"Cost resolution for {query.operation_code} failed: {e}")
            return Return.err(
                Error(code="RESOLVE_COST_FAILED", message="Failed to resolve cost", reason=str(e))
            )

        return Return.ok(
            ResolvedCostDTO(
                tenant_id=query.tenant_id,
                entity_id=query.entity_id,
                operation_code=query.operation_code,
                unit_cost=resolved.unit_cost,
                unit=resolved.unit,
                free_allowance=resolved.free_allowance,
                free_allowance_period=resolved.free_allowance_period,
                allow_overage=resolved.overage_policy.allow_overage,
                overage_limit=resolved.overage_policy.overage_limit,
                overage_period=resolved.overage_policy.overage_period,
                source_tier=resolved.source_tier,
                configuration_id=resolved.configuration_id,
                matched_operation_code=resolved.matched_operation_code,
                snapshot_version=resolved.snapshot_version,
            )
        )
