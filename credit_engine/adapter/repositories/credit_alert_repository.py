"""SQLAlchemy implementation of CreditAlertRepository"""

from datetime import datetime
from typing import List, Tuple
from sqlmodel import select, func
from sqlalchemy import update
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.credit_alert_repository import CreditAlertRepository
from credit_engine.domain.credit_alert import CreditAlert


class SqlAlchemyCreditAlertRepository(CreditAlertRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, alert: CreditAlert) -> CreditAlert:
        self.session.add(alert)
        await self.session.flush()
        await self.session.refresh(alert)
        return alert

    async def mark_notified(self, alert_id: int, notified_at: datetime) -> None:
        stmt = update(CreditAlert).where(CreditAlert.id == alert_id).values(notified_at=notified_at)
        await self.session.execute(stmt)

    async def list_by_tenant(
        self, tenant_id: str, limit: int = 20, offset: int = 0
    ) -> Tuple[List[CreditAlert], int]:
        count_stmt = select(func.count()).select_from(CreditAlert).where(CreditAlert.tenant_id == tenant_id)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(CreditAlert)
            .where(CreditAlert.tenant_id == tenant_id)
            .order_by(CreditAlert.created_at.desc(), CreditAlert.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total
