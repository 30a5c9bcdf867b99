"""Entity Hierarchy

Read-only view of one tenant's ownership tree, rebuilt from the entity table
and cached for a short time. Parent links are held in an arena indexed by
entity id and are validated for acyclicity before any parent assignment is
written.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from credit_engine.app.repositories.entity_repository import EntityRepository
from credit_engine.app.services.ttl_cache import TTLCache
from credit_engine.domain.entity import Entity, EntityKind
from credit_engine.domain.errors import EntityNotFound, InvalidHierarchy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HierarchyNode:
    id: str
    tenant_id: str
    parent_id: Optional[str]
    kind: EntityKind
    inherit_credits: bool


class EntityHierarchy:
    """Arena of a tenant's entities with parent indices"""

    def __init__(self, tenant_id: str, entities: Iterable[Entity], version: int = 0):
        self.tenant_id = tenant_id
        self.version = version
        self._nodes: Dict[str, HierarchyNode] = {
            entity.id: HierarchyNode(
                id=entity.id,
                tenant_id=entity.tenant_id,
                parent_id=entity.parent_id,
                kind=entity.kind,
                inherit_credits=entity.inherit_credits,
            )
            for entity in entities
            if entity.tenant_id == tenant_id
        }

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, entity_id: str) -> HierarchyNode:
        node = self._nodes.get(entity_id)
        if node is None:
            raise EntityNotFound(entity_id)
        return node

    def ancestor_chain(self, entity_id: str) -> List[str]:
        """
        Ancestors of an entity, nearest first, ending at the tenant root

        The entity itself is not part of the chain; a root has no ancestors.

        Raises:
            EntityNotFound: Unknown entity or dangling parent link
            InvalidHierarchy: Stored parent links contain a cycle
        """
        chain: List[str] = []
        seen = {entity_id}
        node = self.get(entity_id)

        while node.parent_id is not None:
            if node.parent_id in seen:
                raise InvalidHierarchy(
                    f"Cycle detected in hierarchy of tenant {self.tenant_id} at entity {node.parent_id}",
                    {"tenant_id": self.tenant_id, "entity_id": entity_id},
                )
            seen.add(node.parent_id)
            chain.append(node.parent_id)
            node = self.get(node.parent_id)

        return chain

    def validate_parent(self, entity_id: str, parent_id: Optional[str], kind: EntityKind) -> None:
        """
        Check that ``parent_id`` is a legal parent for ``entity_id``

        Raises:
            InvalidHierarchy: Root with a parent, non-root without one,
                cross-tenant parent, or a link that would close a cycle
            EntityNotFound: Parent does not exist in this tenant
        """
        if kind == EntityKind.TENANT:
            if parent_id is not None:
                raise InvalidHierarchy(
                    f"Tenant root {entity_id} cannot have a parent",
                    {"entity_id": entity_id, "parent_id": parent_id},
                )
            if entity_id != self.tenant_id:
                raise InvalidHierarchy(
                    f"Tenant root id {entity_id} must equal tenant id {self.tenant_id}",
                    {"entity_id": entity_id, "tenant_id": self.tenant_id},
                )
            return

        if parent_id is None:
            raise InvalidHierarchy(
                f"Entity {entity_id} needs a parent within tenant {self.tenant_id}",
                {"entity_id": entity_id, "tenant_id": self.tenant_id},
            )

        if parent_id == entity_id:
            raise InvalidHierarchy(
                f"Entity {entity_id} cannot be its own parent",
                {"entity_id": entity_id, "parent_id": parent_id},
            )

        if parent_id not in self._nodes:
            raise EntityNotFound(parent_id)

        if entity_id in self.ancestor_chain(parent_id):
            raise InvalidHierarchy(
                f"Moving {entity_id} under {parent_id} would create a cycle",
                {"entity_id": entity_id, "parent_id": parent_id},
            )

    def credit_owner(self, entity_id: Optional[str]) -> Optional[str]:
        """
        Entity whose account pays for ``entity_id``

        Walks up while entities inherit credits. The tenant root maps to the
        tenant-level account (None). Entities unknown to the hierarchy pay
        from their own account.
        """
        if entity_id is None or entity_id not in self._nodes:
            return entity_id

        candidates = [entity_id] + self.ancestor_chain(entity_id)
        for candidate in candidates:
            node = self._nodes[candidate]
            if node.kind == EntityKind.TENANT:
                return None
            if not node.inherit_credits:
                return candidate
        return None


class HierarchyService:
    """
    Tenant hierarchy lookups backed by a shared TTL cache

    Constructed per request around the request's repository; the cache is
    shared across requests and invalidated by entity writes.
    """

    def __init__(self, entity_repo: EntityRepository, cache: TTLCache):
        self.entity_repo = entity_repo
        self.cache = cache

    async def load(self, tenant_id: str, fresh: bool = False) -> EntityHierarchy:
        """Cached arena for the tenant; ``fresh`` bypasses the cache (used before writes)"""
        hierarchy = None if fresh else self.cache.get(tenant_id)
        if hierarchy is None:
            entities = await self.entity_repo.list_by_tenant(tenant_id)
            hierarchy = EntityHierarchy(tenant_id, entities, version=self.cache.generation)
            self.cache.put(tenant_id, hierarchy)
            logger.debug(f"Loaded hierarchy for tenant {tenant_id} ({len(hierarchy)} entities)")
        return hierarchy

    async def ancestor_chain(self, tenant_id: str, entity_id: str) -> List[str]:
        hierarchy = await self.load(tenant_id)
        return hierarchy.ancestor_chain(entity_id)

    async def credit_owner(self, tenant_id: str, entity_id: Optional[str]) -> Optional[str]:
        hierarchy = await self.load(tenant_id)
        return hierarchy.credit_owner(entity_id)

    async def require_entity(self, tenant_id: str, entity_id: Optional[str]) -> None:
        """Entity ids passed to the ledger must belong to the tenant when known"""
        if entity_id is None:
            return
        entity = await self.entity_repo.get_by_id(entity_id)
        if entity is not None and entity.tenant_id != tenant_id:
            raise InvalidHierarchy(
                f"Entity {entity_id} does not belong to tenant {tenant_id}",
                {"entity_id": entity_id, "tenant_id": tenant_id},
            )

    def invalidate(self, tenant_id: str) -> None:
        self.cache.invalidate(tenant_id)
