"""SQLAlchemy implementation of CreditBatchRepository"""

from datetime import datetime
from decimal import Decimal
from typing import List
from sqlmodel import select, func, or_, and_
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.credit_batch_repository import CreditBatchRepository
from credit_engine.domain.credit_batch import CreditBatch
from credit_engine.domain.money import to_credits


def _consumption_order():
    # Soonest expiry first, never-expiring batches last
    return (
        CreditBatch.expiry_date.is_(None),
        CreditBatch.expiry_date,
        CreditBatch.created_at,
        CreditBatch.id,
    )


class SqlAlchemyCreditBatchRepository(CreditBatchRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, batch: CreditBatch) -> CreditBatch:
        self.session.add(batch)
        await self.session.flush()
        await self.session.refresh(batch)
        return batch

    async def save(self, batch: CreditBatch) -> CreditBatch:
        self.session.add(batch)
        await self.session.flush()
        return batch

    async def list_pool(self, account_id: int, now: datetime, for_update: bool = False) -> List[CreditBatch]:
        stmt = (
            select(CreditBatch)
            .where(
                CreditBatch.account_id == account_id,
                CreditBatch.remaining_amount > 0,
                or_(CreditBatch.expiry_date.is_(None), CreditBatch.expiry_date > now),
            )
            .order_by(*_consumption_order())
        )

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_due(self, account_id: int, now: datetime, for_update: bool = False) -> List[CreditBatch]:
        stmt = (
            select(CreditBatch)
            .where(
                CreditBatch.account_id == account_id,
                CreditBatch.remaining_amount > 0,
                CreditBatch.expiry_date.is_not(None),
                CreditBatch.expiry_date <= now,
            )
            .order_by(*_consumption_order())
        )

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_ids(self, batch_ids: List[int], for_update: bool = False) -> List[CreditBatch]:
        if not batch_ids:
            return []
        stmt = select(CreditBatch).where(CreditBatch.id.in_(batch_ids)).order_by(*_consumption_order())

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_account_ids_with_due_batches(self, now: datetime) -> List[int]:
        stmt = (
            select(CreditBatch.account_id)
            .where(
                CreditBatch.remaining_amount > 0,
                CreditBatch.expiry_date.is_not(None),
                CreditBatch.expiry_date <= now,
            )
            .distinct()
            .order_by(CreditBatch.account_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_expiring(self, now: datetime, until: datetime) -> List[CreditBatch]:
        stmt = (
            select(CreditBatch)
            .where(
                and_(
                    CreditBatch.remaining_amount > 0,
                    CreditBatch.expiry_date.is_not(None),
                    CreditBatch.expiry_date > now,
                    CreditBatch.expiry_date <= until,
                )
            )
            .order_by(CreditBatch.account_id, *_consumption_order())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sum_remaining(self, account_id: int) -> Decimal:
        stmt = select(func.coalesce(func.sum(CreditBatch.remaining_amount), 0)).where(
            CreditBatch.account_id == account_id
        )
        result = await self.session.execute(stmt)
        return to_credits(result.scalar() or 0)

    async def list_by_account(self, account_id: int) -> List[CreditBatch]:
        stmt = (
            select(CreditBatch)
            .where(CreditBatch.account_id == account_id)
            .order_by(*_consumption_order())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
