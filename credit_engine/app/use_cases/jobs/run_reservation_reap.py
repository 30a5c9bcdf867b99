"""RunReservationReap Use Case

Releases reservations that outlived their deadline without a commit or a
release, returning the held credits to their batches.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.credit_reservation_repository import CreditReservationRepository
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.ledger_store import LedgerStore
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.app.use_cases.credits.dtos import ReservationReapResultDTO
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_reservation import ReservationStatus
from credit_engine.domain.money import ZERO, to_credits

logger = logging.getLogger(__name__)

REAPER_ACTOR = "reservation-reaper"


class RunReservationReap:

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        account_repo: CreditAccountRepository,
        reservation_repo: CreditReservationRepository,
        batch_size: int = 500,
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.account_repo = account_repo
        self.reservation_repo = reservation_repo
        self.batch_size = batch_size

    async def execute(self, now: Optional[datetime] = None) -> Result[ReservationReapResultDTO]:
        reap_time = now or utc_now()
        try:
            overdue = [
                (reservation.id, reservation.account_id)
                for reservation in await self.reservation_repo.list_overdue(reap_time, self.batch_size)
            ]

            released, credits, failures = 0, ZERO, 0
            for reservation_id, account_id in overdue:
                account = await self.account_repo.get_by_id(account_id)
                if account is None:
                    continue
                account_key = account.account_key

                async def operation(attempt: int, reservation_id: int = reservation_id,
                                    account_key: str = account_key) -> Optional[Decimal]:
                    locked = await self.ledger.load_account_by_key(account_key, reap_time)
                    reservation = await self.reservation_repo.get_by_id(reservation_id, for_update=True)
                    # Committed or released while we waited for the lock
                    if reservation is None or not reservation.is_open:
                        return None
                    await self.ledger.release(
                        locked, reservation, reap_time, status=ReservationStatus.EXPIRED, initiated_by=REAPER_ACTOR
                    )
                    return reservation.amount

                try:
                    amount = await self.runner.run([account_key], operation)
                except Exception as e:
                    failures += 1
                    logger.error(f"Releasing reservation {reservation_id} failed: {e}")
                    continue

                if amount is not None:
                    released += 1
                    credits = to_credits(credits + amount)

            if overdue:
                logger.info(f"Released {released} expired reservations ({credits} credits), {failures} failures")

            return Return.ok(
                ReservationReapResultDTO(
                    reservations_released=released,
                    credits_released=credits,
                    failures=failures,
                    reap_time=reap_time,
                )
            )

        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Reservation reap failed: {e}")
            return Return.err(
                Error(code="RESERVATION_REAP_FAILED", message="Failed to release expired reservations", reason=str(e))
            )
