"""Reservation Reaper Background Worker

Releases reservations whose deadline passed without a commit or release.
"""

import asyncio
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig
from credit_engine.adapter.services import create_alert_gateway
from credit_engine.app.services import AccountLockManager
from credit_engine.app.use_cases.credits.dtos import ReservationReapResultDTO
from credit_engine.depends import CreditServices
from credit_engine.domain.base import utc_now
from credit_engine.domain.money import ZERO

logger = logging.getLogger(__name__)


class ReservationReaperWorker:

    def __init__(self, db_uri: Optional[str] = None, config=ApplicationConfig):
        self.config = config
        self.db_uri = db_uri or config.DB_URI

        self.engine = create_async_engine(self.db_uri, echo=False, future=True)
        self.async_session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )
        self.locks = AccountLockManager(config.CREDIT_LOCK_TIMEOUT_SECONDS)
        self.gateway = create_alert_gateway(config.ALERT_WEBHOOK_URL)

        logger.info("ReservationReaperWorker initialized")

    async def run_once(self) -> ReservationReapResultDTO:
        if not self.config.RESERVATION_REAP_ENABLED:
            logger.info("Reservation reaping is disabled, skipping")
            return ReservationReapResultDTO(
                reservations_released=0,
                credits_released=ZERO,
                failures=0,
                reap_time=utc_now(),
            )

        async with self.async_session_factory() as session:
            services = CreditServices(session, config=self.config, locks=self.locks, gateway=self.gateway)
            result = await services.run_reservation_reap().execute()

            if result.is_err():
                logger.error(f"Reservation reap failed: {result.error.message}")
                raise RuntimeError(f"Reservation reap failed: {result.error.message}")

            return result.value

    async def run_forever(self, interval_seconds: int = 60):
        logger.info(f"Starting continuous reservation reaping with {interval_seconds}s interval")

        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Reservation reap cycle failed: {e}")

            await asyncio.sleep(interval_seconds)

    async def shutdown(self):
        await self.engine.dispose()
        logger.info("ReservationReaperWorker shutdown complete")


async def main():
    """
    Usage:
        python -m credit_engine.worker.reservation_reaper --once
        python -m credit_engine.worker.reservation_reaper --interval 30
    """
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Reservation Reaper Worker")
    parser.add_argument("--once", action="store_true", help="Run once and exit")
    parser.add_argument(
        "--interval", type=int, default=ApplicationConfig.RESERVATION_REAP_INTERVAL_SECONDS,
        help="Interval between runs in seconds (default: 60)"
    )
    args = parser.parse_args()

    worker = ReservationReaperWorker()

    try:
        if args.once:
            result = await worker.run_once()
            print(f"Released {result.reservations_released} reservations ({result.credits_released} credits), "
                  f"{result.failures} failures")
        else:
            await worker.run_forever(interval_seconds=args.interval)
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    finally:
        await worker.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
