"""SQLAlchemy implementation of OperationChargeRepository"""

from typing import Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.operation_charge_repository import OperationChargeRepository
from credit_engine.domain.operation_charge import OperationCharge


class SqlAlchemyOperationChargeRepository(OperationChargeRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, charge: OperationCharge) -> OperationCharge:
        self.session.add(charge)
        await self.session.flush()
        await self.session.refresh(charge)
        return charge

    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[OperationCharge]:
        stmt = select(OperationCharge).where(OperationCharge.idempotency_key == idempotency_key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
