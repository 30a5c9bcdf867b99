"""List Transactions Use Case

Paginated, filtered view of an account's ledger, most recent first.
"""

from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.credit_transaction_repository import CreditTransactionRepository
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_transaction import CreditTransaction
from credit_engine.domain.errors import CreditError
from .dtos import ListTransactionsQueryDTO, TransactionDTO, TransactionListResponseDTO


def transaction_to_dto(transaction: CreditTransaction) -> TransactionDTO:
    return TransactionDTO(
        transaction_id=transaction.id,
        sequence=transaction.sequence,
        transaction_type=transaction.transaction_type,
        amount=transaction.amount,
        previous_balance=transaction.previous_balance,
        new_balance=transaction.new_balance,
        operation_code=transaction.operation_code,
        batch_id=transaction.batch_id,
        transfer_id=transaction.transfer_id,
        reservation_id=transaction.reservation_id,
        payment_reference=transaction.payment_reference,
        description=transaction.description,
        initiated_by=transaction.initiated_by,
        processed_at=transaction.processed_at,
    )


class ListTransactions:

    def __init__(
        self,
        hierarchy: HierarchyService,
        account_repo: CreditAccountRepository,
        transaction_repo: CreditTransactionRepository,
    ):
        self.hierarchy = hierarchy
        self.account_repo = account_repo
        self.transaction_repo = transaction_repo

    async def execute(self, query: ListTransactionsQueryDTO) -> Result[TransactionListResponseDTO]:
        try:
            owner_id = await self.hierarchy.credit_owner(query.tenant_id, query.entity_id)
            account = await self.account_repo.get_by_key(CreditAccount.key_for(query.tenant_id, owner_id))
            if account is None:
                return Return.ok(
                    TransactionListResponseDTO(transactions=[], total=0, limit=query.limit, offset=query.offset)
                )

            transactions, total = await self.transaction_repo.list_by_account(
                account.id,
                transaction_type=query.transaction_type,
                start=query.start,
                end=query.end,
                limit=query.limit,
                offset=query.offset,
            )
        except CreditError as e:
            return Return.err(e.to_error())
        except Exception as e:
            return Return.err(
                Error(
                    code="LIST_TRANSACTIONS_FAILED",
                    message="Failed to list transactions",
                    reason=str(e),
                )
            )

        return Return.ok(
            TransactionListResponseDTO(
                transactions=[transaction_to_dto(t) for t in transactions],
                total=total,
                limit=query.limit,
                offset=query.offset,
            )
        )
