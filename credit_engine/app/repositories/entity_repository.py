"""Entity Repository Interface"""

from abc import ABC, abstractmethod
from typing import List, Optional
from credit_engine.domain.entity import Entity


class EntityRepository(ABC):
    """Read access to the entity hierarchy plus validated writes"""

    @abstractmethod
    async def get_by_id(self, entity_id: str) -> Optional[Entity]:
        pass

    @abstractmethod
    async def list_by_tenant(self, tenant_id: str) -> List[Entity]:
        """All entities of a tenant, including the tenant root"""
        pass

    @abstractmethod
    async def list_tenant_ids(self) -> List[str]:
        """Tenants with a registered root entity"""
        pass

    @abstractmethod
    async def create(self, entity: Entity) -> Entity:
        pass

    @abstractmethod
    async def save(self, entity: Entity) -> Entity:
        pass
