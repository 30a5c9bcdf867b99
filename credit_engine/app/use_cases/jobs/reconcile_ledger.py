"""ReconcileLedger Use Case

Replays every account's transaction log and checks it against the account
balance and the batch pool.
"""

import logging
import time
from decimal import Decimal
from typing import List, Optional
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.credit_batch_repository import CreditBatchRepository
from credit_engine.app.repositories.credit_transaction_repository import CreditTransactionRepository
from credit_engine.app.use_cases.credits.dtos import LedgerDiscrepancyDTO, ReconciliationResultDTO
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.money import ZERO, to_credits

logger = logging.getLogger(__name__)


class ReconcileLedger:
    """
    Use Case: Reconcile accounts against their transaction logs

    Business Rules:
    1. Sequences run 1..n without gaps and end at the account's sequence
    2. Each transaction's previous_balance equals the running balance and
       its new_balance equals previous_balance + signed amount
    3. The replayed balance equals available_credits
    4. The batch pool holds exactly max(available_credits, 0)
    5. Does NOT modify any data
    """

    def __init__(
        self,
        account_repo: CreditAccountRepository,
        transaction_repo: CreditTransactionRepository,
        batch_repo: CreditBatchRepository,
    ):
        self.account_repo = account_repo
        self.transaction_repo = transaction_repo
        self.batch_repo = batch_repo

    async def execute(self) -> Result[ReconciliationResultDTO]:
        start_time = time.time()
        reconciliation_time = utc_now()

        try:
            logger.info("Starting credit ledger reconciliation")

            accounts = await self.account_repo.get_all()
            discrepancies: List[LedgerDiscrepancyDTO] = []
            for account in accounts:
                discrepancies.extend(await self.check_account(account))

            execution_time_ms = int((time.time() - start_time) * 1000)
            response = ReconciliationResultDTO(
                total_accounts_checked=len(accounts),
                discrepancies_found=len(discrepancies),
                discrepancies=discrepancies,
                reconciliation_time=reconciliation_time,
                execution_time_ms=execution_time_ms,
            )

            if discrepancies:
                logger.warning(
                    f"Reconciliation complete. Found {len(discrepancies)} discrepancies "
                    f"out of {len(accounts)} accounts in {execution_time_ms}ms"
                )
            else:
                logger.info(f"Reconciliation complete. All {len(accounts)} accounts balanced in {execution_time_ms}ms")

            return Return.ok(response)

        except Exception as e:
            logger.error(f"Ledger reconciliation failed: {e}")
            return Return.err(
                Error(code="RECONCILIATION_FAILED", message="Failed to reconcile credit ledger", reason=str(e))
            )

    async def check_account(self, account: CreditAccount) -> List[LedgerDiscrepancyDTO]:
        found: List[LedgerDiscrepancyDTO] = []

        def report(kind: str, detail: str, expected: Optional[Decimal] = None, actual: Optional[Decimal] = None) -> None:
            found.append(
                LedgerDiscrepancyDTO(
                    tenant_id=account.tenant_id,
                    account_key=account.account_key,
                    account_id=account.id,
                    kind=kind,
                    expected=expected,
                    actual=actual,
                    detail=detail,
                )
            )
            logger.warning(f"Ledger discrepancy on {account.account_key}: {kind}: {detail}")

        running = ZERO
        last_sequence = 0
        for transaction in await self.transaction_repo.list_ledger(account.id):
            if transaction.sequence != last_sequence + 1:
                report(
                    "sequence",
                    f"transaction {transaction.id} has sequence {transaction.sequence}, expected {last_sequence + 1}",
                )
            last_sequence = transaction.sequence

            if transaction.previous_balance != running:
                report(
                    "continuity",
                    f"transaction {transaction.id} starts from {transaction.previous_balance}",
                    expected=running,
                    actual=transaction.previous_balance,
                )
            running = to_credits(transaction.previous_balance + transaction.signed_amount)
            if transaction.new_balance != running:
                report(
                    "continuity",
                    f"transaction {transaction.id} ends at {transaction.new_balance}",
                    expected=running,
                    actual=transaction.new_balance,
                )
                running = transaction.new_balance

        if last_sequence != account.sequence:
            report("sequence", f"log ends at {last_sequence}, account is at {account.sequence}")

        if running != account.available_credits:
            report(
                "balance",
                "replayed balance differs from available credits",
                expected=running,
                actual=account.available_credits,
            )

        pooled = await self.batch_repo.sum_remaining(account.id)
        expected_pool = max(account.available_credits, ZERO)
        if pooled != expected_pool:
            report("batches", "batch pool differs from available credits", expected=expected_pool, actual=pooled)

        return found
