"""Expiry Sweep Background Worker

Expires due credit batches, sends expiry warnings and finalizes temporary
transfers whose recall deadline passed.
"""

import asyncio
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig
from credit_engine.adapter.services import create_alert_gateway
from credit_engine.app.services import AccountLockManager, TTLCache
from credit_engine.app.use_cases.credits.dtos import ExpirySweepResultDTO
from credit_engine.depends import CreditServices
from credit_engine.domain.base import utc_now
from credit_engine.domain.money import ZERO

logger = logging.getLogger(__name__)


class ExpirySweeperWorker:
    """
    Background worker for the periodic expiry sweep

    Usage:
        worker = ExpirySweeperWorker()
        await worker.run_once()
        await worker.run_forever(interval_seconds=3600)
    """

    def __init__(self, db_uri: Optional[str] = None, config=ApplicationConfig):
        self.config = config
        self.db_uri = db_uri or config.DB_URI

        self.engine = create_async_engine(self.db_uri, echo=False, future=True)
        self.async_session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )
        self.locks = AccountLockManager(config.CREDIT_LOCK_TIMEOUT_SECONDS)
        self.config_cache = TTLCache(config.CONFIG_CACHE_TTL_SECONDS)
        self.entity_cache = TTLCache(config.CONFIG_CACHE_TTL_SECONDS)
        self.gateway = create_alert_gateway(config.ALERT_WEBHOOK_URL)

        logger.info("ExpirySweeperWorker initialized")

    async def run_once(self) -> ExpirySweepResultDTO:
        if not self.config.EXPIRY_SWEEP_ENABLED:
            logger.info("Expiry sweep is disabled, skipping")
            return ExpirySweepResultDTO(
                accounts_processed=0,
                batches_expired=0,
                credits_expired=ZERO,
                warnings_sent=0,
                transfers_finalized=0,
                failures=0,
                sweep_time=utc_now(),
                execution_time_ms=0,
            )

        async with self.async_session_factory() as session:
            services = CreditServices(
                session,
                config=self.config,
                locks=self.locks,
                config_cache=self.config_cache,
                entity_cache=self.entity_cache,
                gateway=self.gateway,
            )
            result = await services.run_expiry_sweep().execute()

            if result.is_err():
                logger.error(f"Expiry sweep failed: {result.error.message}")
                raise RuntimeError(f"Expiry sweep failed: {result.error.message}")

            return result.value

    async def run_forever(self, interval_seconds: int = 3600):
        logger.info(f"Starting continuous expiry sweep with {interval_seconds}s interval")

        while True:
            try:
                result = await self.run_once()
                if result.failures:
                    logger.warning(f"Expiry sweep finished with {result.failures} failures")
            except Exception as e:
                logger.error(f"Expiry sweep cycle failed: {e}")

            await asyncio.sleep(interval_seconds)

    async def shutdown(self):
        await self.engine.dispose()
        logger.info("ExpirySweeperWorker shutdown complete")


async def main():
    """
    Usage:
        python -m credit_engine.worker.expiry_sweeper --once
        python -m credit_engine.worker.expiry_sweeper --interval 600
    """
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Credit Expiry Sweep Worker")
    parser.add_argument("--once", action="store_true", help="Run once and exit")
    parser.add_argument(
        "--interval", type=int, default=ApplicationConfig.EXPIRY_SWEEP_INTERVAL_SECONDS,
        help="Interval between runs in seconds (default: 3600)"
    )
    args = parser.parse_args()

    worker = ExpirySweeperWorker()

    try:
        if args.once:
            result = await worker.run_once()
            print("Expiry sweep complete:")
            print(f"  Accounts processed: {result.accounts_processed}")
            print(f"  Batches expired: {result.batches_expired} ({result.credits_expired} credits)")
            print(f"  Warnings sent: {result.warnings_sent}")
            print(f"  Transfers finalized: {result.transfers_finalized}")
            print(f"  Failures: {result.failures}")
        else:
            await worker.run_forever(interval_seconds=args.interval)
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    finally:
        await worker.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
