"""SQLAlchemy implementation of CreditTransferRepository"""

from datetime import datetime
from typing import List, Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.credit_transfer_repository import CreditTransferRepository
from credit_engine.domain.credit_transfer import CreditTransfer, TransferHistory, TransferStatus


class SqlAlchemyCreditTransferRepository(CreditTransferRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, transfer: CreditTransfer) -> CreditTransfer:
        self.session.add(transfer)
        await self.session.flush()
        await self.session.refresh(transfer)
        return transfer

    async def get_by_id(self, transfer_id: int, for_update: bool = False) -> Optional[CreditTransfer]:
        stmt = select(CreditTransfer).where(CreditTransfer.id == transfer_id)

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[CreditTransfer]:
        stmt = select(CreditTransfer).where(CreditTransfer.idempotency_key == idempotency_key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, transfer: CreditTransfer) -> CreditTransfer:
        self.session.add(transfer)
        await self.session.flush()
        return transfer

    async def list_lapsed_temporary(self, now: datetime) -> List[CreditTransfer]:
        stmt = (
            select(CreditTransfer)
            .where(
                CreditTransfer.status == TransferStatus.APPROVED,
                CreditTransfer.is_temporary == True,  # noqa: E712
                CreditTransfer.executed_at.is_not(None),
                CreditTransfer.recall_deadline <= now,
            )
            .order_by(CreditTransfer.recall_deadline, CreditTransfer.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_history(self, history: TransferHistory) -> TransferHistory:
        self.session.add(history)
        await self.session.flush()
        return history

    async def list_history(self, transfer_id: int) -> List[TransferHistory]:
        stmt = (
            select(TransferHistory)
            .where(TransferHistory.transfer_id == transfer_id)
            .order_by(TransferHistory.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
