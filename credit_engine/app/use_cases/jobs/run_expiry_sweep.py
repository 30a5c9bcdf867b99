"""RunExpirySweep Use Case

Expires batches whose expiry date has passed, warns about batches that are
about to expire, and finalizes temporary transfers whose recall deadline
passed.
"""

import logging
import math
import time
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.credit_batch_repository import CreditBatchRepository
from credit_engine.app.repositories.credit_transfer_repository import CreditTransferRepository
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.ledger_store import LedgerStore
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.app.use_cases.credits.dtos import ExpirySweepResultDTO
from credit_engine.app.use_cases.credits.transfer_workflow import TransferExecutor
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_transfer import TransferStatus
from credit_engine.domain.money import ZERO, to_credits

logger = logging.getLogger(__name__)

SWEEPER_ACTOR = "expiry-sweeper"


def warning_window(expiry_date: datetime, now: datetime, windows: Sequence[int]) -> Optional[int]:
    """Smallest warning window (in days) the batch has entered, or None"""
    days_left = (expiry_date - now) / timedelta(days=1)
    entered = [days for days in windows if days_left <= days]
    return min(entered) if entered else None


class RunExpirySweep:
    """
    Use Case: Periodic expiry sweep

    Business Rules:
    1. Every batch past its expiry date is zeroed with an EXPIRY transaction,
       one account at a time under that account's lock
    2. A batch entering a warning window (30/7/1 days by default, or the
       account's own notification days) gets one warning per window
    3. Approved temporary transfers past their recall deadline become COMPLETED
    4. A failure on one account is logged and counted; the sweep continues
    """

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        executor: TransferExecutor,
        account_repo: CreditAccountRepository,
        batch_repo: CreditBatchRepository,
        transfer_repo: CreditTransferRepository,
        warning_days: Sequence[int] = (30, 7, 1),
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.executor = executor
        self.account_repo = account_repo
        self.batch_repo = batch_repo
        self.transfer_repo = transfer_repo
        self.warning_days = sorted(set(warning_days), reverse=True)

    async def execute(self, now: Optional[datetime] = None) -> Result[ExpirySweepResultDTO]:
        start_time = time.time()
        sweep_time = now or utc_now()

        try:
            logger.info(f"Starting expiry sweep at {sweep_time.isoformat()}")

            accounts, batches, credits, expiry_failures = await self._expire(sweep_time)
            warnings, warning_failures = await self._warn(sweep_time)
            finalized, transfer_failures = await self._finalize_transfers(sweep_time)

            execution_time_ms = int((time.time() - start_time) * 1000)
            response = ExpirySweepResultDTO(
                accounts_processed=accounts,
                batches_expired=batches,
                credits_expired=credits,
                warnings_sent=warnings,
                transfers_finalized=finalized,
                failures=expiry_failures + warning_failures + transfer_failures,
                sweep_time=sweep_time,
                execution_time_ms=execution_time_ms,
            )
            logger.info(
                f"Expiry sweep complete: {batches} batches ({credits} credits) expired on {accounts} accounts, "
                f"{warnings} warnings, {finalized} transfers finalized, {response.failures} failures "
                f"in {execution_time_ms}ms"
            )
            return Return.ok(response)

        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Expiry sweep failed: {e}")
            return Return.err(
                Error(code="EXPIRY_SWEEP_FAILED", message="Failed to run expiry sweep", reason=str(e))
            )

    async def _account_key(self, account_id: int) -> Optional[str]:
        account = await self.account_repo.get_by_id(account_id)
        return account.account_key if account else None

    async def _expire(self, now: datetime) -> Tuple[int, int, Decimal, int]:
        account_ids = await self.batch_repo.list_account_ids_with_due_batches(now)
        processed, batches, credits, failures = 0, 0, ZERO, 0

        for account_id in account_ids:
            account_key = await self._account_key(account_id)
            if account_key is None:
                continue

            async def operation(attempt: int, account_key: str = account_key) -> List[Decimal]:
                account = await self.ledger.load_account_by_key(account_key, now)
                transactions = await self.ledger.expire_due(account, now)
                return [transaction.amount for transaction in transactions]

            try:
                expired = await self.runner.run([account_key], operation)
            except Exception as e:
                failures += 1
                logger.error(f"Expiry of account {account_key} failed: {e}")
                continue

            processed += 1
            batches += len(expired)
            credits = to_credits(credits + sum(expired, ZERO))

        return processed, batches, credits, failures

    def _windows_for(self, account: CreditAccount) -> List[int]:
        if account.policy_json:
            return account.get_policy().expiry.notification_days
        return self.warning_days

    async def _warn(self, now: datetime) -> Tuple[int, int]:
        if not self.warning_days:
            return 0, 0

        horizon = now + timedelta(days=max(self.warning_days))
        expiring: Dict[int, List[int]] = defaultdict(list)
        for batch in await self.batch_repo.list_expiring(now, horizon):
            expiring[batch.account_id].append(batch.id)

        sent, failures = 0, 0
        for account_id, batch_ids in expiring.items():
            account_key = await self._account_key(account_id)
            if account_key is None:
                continue

            async def operation(attempt: int, account_key: str = account_key, batch_ids: List[int] = batch_ids) -> int:
                account = await self.ledger.load_account_by_key(account_key, now)
                windows = self._windows_for(account)
                count = 0
                for batch in await self.batch_repo.get_by_ids(batch_ids, for_update=True):
                    if batch.is_expired or batch.remaining_amount <= 0:
                        continue
                    window = warning_window(batch.expiry_date, now, windows)
                    if window is None:
                        continue
                    if batch.last_warning_days is not None and batch.last_warning_days <= window:
                        continue
                    days_remaining = max(math.ceil((batch.expiry_date - now) / timedelta(days=1)), 0)
                    if await self.ledger.alerts.expiry_warning(account, batch, days_remaining):
                        count += 1
                    batch.last_warning_days = window
                    await self.batch_repo.save(batch)
                return count

            try:
                sent += await self.runner.run([account_key], operation)
            except Exception as e:
                failures += 1
                logger.error(f"Expiry warnings for account {account_key} failed: {e}")

        return sent, failures

    async def _finalize_transfers(self, now: datetime) -> Tuple[int, int]:
        lapsed = [
            (transfer.id, transfer.source_account_key, transfer.destination_account_key)
            for transfer in await self.transfer_repo.list_lapsed_temporary(now)
        ]

        finalized, failures = 0, 0
        for transfer_id, source_key, destination_key in lapsed:

            async def operation(attempt: int, transfer_id: int = transfer_id) -> bool:
                transfer = await self.transfer_repo.get_by_id(transfer_id, for_update=True)
                if transfer is None or transfer.status != TransferStatus.APPROVED or transfer.executed_at is None:
                    return False
                transfer.completed_at = now
                await self.executor.transition(
                    transfer, TransferStatus.COMPLETED, now, SWEEPER_ACTOR, notes="recall deadline passed"
                )
                return True

            try:
                if await self.runner.run([source_key, destination_key], operation):
                    finalized += 1
            except Exception as e:
                failures += 1
                logger.error(f"Finalizing transfer {transfer_id} failed: {e}")

        return finalized, failures
