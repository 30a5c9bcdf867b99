"""SQLAlchemy implementation of EntityRepository"""

from typing import List, Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.entity_repository import EntityRepository
from credit_engine.domain.entity import Entity, EntityKind


class SqlAlchemyEntityRepository(EntityRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, entity_id: str) -> Optional[Entity]:
        stmt = select(Entity).where(Entity.id == entity_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_tenant(self, tenant_id: str) -> List[Entity]:
        stmt = select(Entity).where(Entity.tenant_id == tenant_id).order_by(Entity.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_tenant_ids(self) -> List[str]:
        stmt = select(Entity.tenant_id).where(Entity.kind == EntityKind.TENANT).order_by(Entity.tenant_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, entity: Entity) -> Entity:
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def save(self, entity: Entity) -> Entity:
        self.session.add(entity)
        await self.session.flush()
        return entity
