"""SQLAlchemy implementation of OperationUsageRepository"""

from datetime import datetime
from typing import Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.operation_usage_repository import OperationUsageRepository
from credit_engine.domain.base import utc_now
from credit_engine.domain.operation_usage import OperationUsage


class SqlAlchemyOperationUsageRepository(OperationUsageRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self, account_id: int, operation_code: str, period_start: datetime, for_update: bool = False
    ) -> Optional[OperationUsage]:
        stmt = select(OperationUsage).where(
            OperationUsage.account_id == account_id,
            OperationUsage.operation_code == operation_code,
            OperationUsage.period_start == period_start,
        )

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, usage: OperationUsage) -> OperationUsage:
        self.session.add(usage)
        await self.session.flush()
        await self.session.refresh(usage)
        return usage

    async def save(self, usage: OperationUsage) -> OperationUsage:
        usage.updated_at = utc_now()
        self.session.add(usage)
        await self.session.flush()
        return usage
