"""Ledger Transaction Runner

Runs one mutating ledger operation as an all-or-nothing unit: take the
account locks, run the operation, commit, then deliver the alerts it
recorded. LockTimeout and ExpiredBatchReferenced are retried a bounded
number of times with a rollback between attempts; every other error rolls
back and propagates.
"""

import logging
from typing import Awaitable, Callable, Iterable, Optional, TypeVar
from credit_engine.app.services.account_locks import AccountLockManager
from credit_engine.app.services.alert_gateway import AlertGateway
from credit_engine.app.services.alert_recorder import AlertRecorder
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.domain.errors import ExpiredBatchReferenced, LockTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (LockTimeout, ExpiredBatchReferenced)


class LedgerTransactionRunner:

    def __init__(
        self,
        uow: UnitOfWork,
        locks: AccountLockManager,
        alerts: AlertRecorder,
        gateway: Optional[AlertGateway] = None,
        max_retries: int = 3,
    ):
        self.uow = uow
        self.locks = locks
        self.alerts = alerts
        self.gateway = gateway
        self.max_retries = max_retries

    async def run(self, lock_keys: Iterable[str], operation: Callable[[int], Awaitable[T]]) -> T:
        """
        Run ``operation(attempt)`` under the account locks and commit it

        ``attempt`` starts at 0 and lets the operation change strategy on a
        retry (for example, drop an explicit batch selection).
        """
        keys = list(lock_keys)
        attempt = 0
        while True:
            try:
                async with self.locks.acquire(keys):
                    result = await operation(attempt)
                    await self.uow.commit()
                break
            except RETRYABLE_ERRORS as e:
                await self.uow.rollback()
                self.alerts.discard()
                if attempt >= self.max_retries:
                    logger.error(f"Giving up on accounts {keys} after {attempt + 1} attempts: {e.code}")
                    raise
                attempt += 1
                logger.warning(f"Retrying ledger operation on {keys} (attempt {attempt}/{self.max_retries}): {e.code}")
            except Exception:
                await self.uow.rollback()
                self.alerts.discard()
                raise

        await self.deliver_alerts()
        return result

    async def deliver_alerts(self) -> None:
        """Post-commit alert delivery; failures are logged, never raised"""
        if self.gateway is None or not self.alerts.pending:
            self.alerts.discard()
            return
        try:
            delivered = await self.alerts.deliver(self.gateway)
            if delivered:
                await self.uow.commit()
        except Exception as e:
            logger.error(f"Failed to record alert delivery: {e}")
            await self.uow.rollback()
