"""Get Balance Use Case

Retrieves the credit balance that an entity draws on.
"""

from typing import Optional
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.credit_batch_repository import CreditBatchRepository
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.errors import CreditError
from credit_engine.domain.money import ZERO
from .dtos import BalanceResponseDTO


class GetBalance:
    """
    Get Balance Use Case

    Read-only operation. For entities that inherit credits the balance of
    the paying ancestor's account is returned. An account that was never
    used reports zero balances; it is not created by this read.
    """

    def __init__(
        self,
        hierarchy: HierarchyService,
        account_repo: CreditAccountRepository,
        batch_repo: CreditBatchRepository,
    ):
        self.hierarchy = hierarchy
        self.account_repo = account_repo
        self.batch_repo = batch_repo

    async def execute(self, tenant_id: str, entity_id: Optional[str] = None) -> Result[BalanceResponseDTO]:
        """
        Execute get balance operation

        Args:
            tenant_id: The tenant identifier
            entity_id: Entity identifier (None = tenant-level account)

        Returns:
            Result[BalanceResponseDTO]: Success with balance data or error
        """
        try:
            owner_id = await self.hierarchy.credit_owner(tenant_id, entity_id)
            account = await self.account_repo.get_by_key(CreditAccount.key_for(tenant_id, owner_id))
        except CreditError as e:
            return Return.err(e.to_error())
        except Exception as e:
            return Return.err(
                Error(code="GET_BALANCE_FAILED", message="Failed to read balance", reason=str(e))
            )

        if account is None:
            return Return.ok(
                BalanceResponseDTO(
                    tenant_id=tenant_id,
                    entity_id=entity_id,
                    account_entity_id=owner_id,
                    available_credits=ZERO,
                    reserved_credits=ZERO,
                    total_credits=ZERO,
                    total_purchased=ZERO,
                    total_consumed=ZERO,
                    total_expired=ZERO,
                    total_transferred_out=ZERO,
                    current_period_consumed=ZERO,
                    overage_debt=ZERO,
                    is_frozen=False,
                )
            )

        pool = await self.batch_repo.list_pool(account.id, utc_now())
        next_batch = pool[0] if pool and pool[0].expiry_date is not None else None

        return Return.ok(
            BalanceResponseDTO(
                tenant_id=tenant_id,
                entity_id=entity_id,
                account_entity_id=account.entity_id,
                available_credits=account.available_credits,
                reserved_credits=account.reserved_credits,
                total_credits=account.total_credits,
                total_purchased=account.total_purchased,
                total_consumed=account.total_consumed,
                total_expired=account.total_expired,
                total_transferred_out=account.total_transferred_out,
                current_period_consumed=account.current_period_consumed,
                overage_debt=account.overage_debt,
                is_frozen=account.is_frozen,
                frozen_reason=account.frozen_reason,
                next_expiry_date=next_batch.expiry_date if next_batch else None,
                next_expiry_amount=next_batch.remaining_amount if next_batch else None,
                last_updated=account.updated_at,
            )
        )
