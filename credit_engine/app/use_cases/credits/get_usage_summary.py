"""Get Usage Summary Use Case

Totals of an account's ledger activity over a period, computed from the
transaction log.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Dict
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.credit_transaction_repository import CreditTransactionRepository
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_transaction import TransactionType
from credit_engine.domain.errors import CreditError
from credit_engine.domain.money import ZERO
from .dtos import UsageSummaryDTO, UsageSummaryQueryDTO


class GetUsageSummary:

    def __init__(
        self,
        hierarchy: HierarchyService,
        account_repo: CreditAccountRepository,
        transaction_repo: CreditTransactionRepository,
    ):
        self.hierarchy = hierarchy
        self.account_repo = account_repo
        self.transaction_repo = transaction_repo

    async def execute(self, query: UsageSummaryQueryDTO) -> Result[UsageSummaryDTO]:
        try:
            owner_id = await self.hierarchy.credit_owner(query.tenant_id, query.entity_id)
            account = await self.account_repo.get_by_key(CreditAccount.key_for(query.tenant_id, owner_id))
            transactions = []
            if account is not None:
                transactions = await self.transaction_repo.list_in_period(
                    account.id, query.period_start, query.period_end
                )
        except CreditError as e:
            return Return.err(e.to_error())
        except Exception as e:
            return Return.err(
                Error(code="USAGE_SUMMARY_FAILED", message="Failed to summarize usage", reason=str(e))
            )

        by_type: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_operation: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for transaction in transactions:
            by_type[transaction.transaction_type.value] += transaction.amount
            if transaction.transaction_type == TransactionType.CONSUMPTION:
                by_operation[transaction.operation_code or "unspecified"] += transaction.amount

        return Return.ok(
            UsageSummaryDTO(
                tenant_id=query.tenant_id,
                entity_id=query.entity_id,
                account_entity_id=owner_id,
                period_start=query.period_start,
                period_end=query.period_end,
                total_consumed=by_type[TransactionType.CONSUMPTION.value],
                total_purchased=by_type[TransactionType.PURCHASE.value],
                total_expired=by_type[TransactionType.EXPIRY.value],
                total_transferred_in=by_type[TransactionType.TRANSFER_IN.value],
                total_transferred_out=by_type[TransactionType.TRANSFER_OUT.value],
                transaction_count=len(transactions),
                by_type=dict(by_type),
                by_operation=dict(by_operation),
            )
        )
