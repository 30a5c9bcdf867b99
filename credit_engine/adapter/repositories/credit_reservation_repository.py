"""SQLAlchemy implementation of CreditReservationRepository"""

from datetime import datetime
from typing import List, Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.credit_reservation_repository import CreditReservationRepository
from credit_engine.domain.credit_reservation import CreditReservation, ReservationStatus


class SqlAlchemyCreditReservationRepository(CreditReservationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, reservation: CreditReservation) -> CreditReservation:
        self.session.add(reservation)
        await self.session.flush()
        await self.session.refresh(reservation)
        return reservation

    async def get_by_id(self, reservation_id: int, for_update: bool = False) -> Optional[CreditReservation]:
        stmt = select(CreditReservation).where(CreditReservation.id == reservation_id)

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, reservation: CreditReservation) -> CreditReservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def list_overdue(self, now: datetime, limit: int = 500) -> List[CreditReservation]:
        stmt = (
            select(CreditReservation)
            .where(
                CreditReservation.status == ReservationStatus.OPEN,
                CreditReservation.deadline <= now,
            )
            .order_by(CreditReservation.deadline, CreditReservation.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
