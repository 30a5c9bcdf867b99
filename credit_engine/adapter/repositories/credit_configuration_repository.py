"""SQLAlchemy implementation of CreditConfigurationRepository"""

from typing import List, Optional
from sqlmodel import select, or_
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.credit_configuration_repository import CreditConfigurationRepository
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_configuration import CreditConfiguration, ConfigScope


class SqlAlchemyCreditConfigurationRepository(CreditConfigurationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_active_for_tenant(self, tenant_id: str) -> List[CreditConfiguration]:
        """All active rows that can apply to the tenant, including global ones"""
        stmt = (
            select(CreditConfiguration)
            .where(
                CreditConfiguration.is_active == True,  # noqa: E712
                or_(
                    CreditConfiguration.tenant_id == tenant_id,
                    CreditConfiguration.scope == ConfigScope.GLOBAL,
                ),
            )
            .order_by(CreditConfiguration.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_scope(self, scope_key: str, operation_code: str) -> Optional[CreditConfiguration]:
        stmt = select(CreditConfiguration).where(
            CreditConfiguration.scope_key == scope_key,
            CreditConfiguration.operation_code == operation_code,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, configuration: CreditConfiguration) -> CreditConfiguration:
        self.session.add(configuration)
        await self.session.flush()
        await self.session.refresh(configuration)
        return configuration

    async def save(self, configuration: CreditConfiguration) -> CreditConfiguration:
        configuration.updated_at = utc_now()
        self.session.add(configuration)
        await self.session.flush()
        return configuration
