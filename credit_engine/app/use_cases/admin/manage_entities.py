"""Entity registry use cases

Parent assignments are validated against a freshly loaded tenant hierarchy
before they are written. Writes for one tenant are serialized through the
lock key ``hierarchy:{tenant_id}``.
"""

import logging
from typing import List
from libs.result import Result, Return, Error
from credit_engine.app.repositories.entity_repository import EntityRepository
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.app.use_cases.credits.dtos import EntityDTO, MoveEntityCommandDTO, RegisterEntityCommandDTO
from credit_engine.domain.base import utc_now
from credit_engine.domain.entity import Entity
from credit_engine.domain.errors import CreditError, EntityNotFound, InvalidHierarchy

logger = logging.getLogger(__name__)


def hierarchy_lock_key(tenant_id: str) -> str:
    return f"hierarchy:{tenant_id}"


def entity_to_dto(entity: Entity, ancestor_chain: List[str]) -> EntityDTO:
    return EntityDTO(
        entity_id=entity.id,
        tenant_id=entity.tenant_id,
        parent_id=entity.parent_id,
        kind=entity.kind,
        name=entity.name,
        inherit_settings=entity.inherit_settings,
        inherit_branding=entity.inherit_branding,
        inherit_credits=entity.inherit_credits,
        ancestor_chain=ancestor_chain,
    )


async def _check_parent_tenant(entity_repo: EntityRepository, tenant_id: str, entity_id: str, parent_id) -> None:
    if parent_id is None:
        return
    parent = await entity_repo.get_by_id(parent_id)
    if parent is not None and parent.tenant_id != tenant_id:
        raise InvalidHierarchy(
            f"Parent {parent_id} belongs to tenant {parent.tenant_id}, not {tenant_id}",
            {"entity_id": entity_id, "parent_id": parent_id, "tenant_id": tenant_id},
        )


class RegisterEntity:
    """Use Case: Add an entity to a tenant's hierarchy"""

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        entity_repo: EntityRepository,
        hierarchy: HierarchyService,
    ):
        self.uow = uow
        self.runner = runner
        self.entity_repo = entity_repo
        self.hierarchy = hierarchy

    async def execute(self, command: RegisterEntityCommandDTO) -> Result[EntityDTO]:
        try:
            async def operation(attempt: int) -> Entity:
                if await self.entity_repo.get_by_id(command.entity_id) is not None:
                    raise InvalidHierarchy(
                        f"Entity {command.entity_id} already exists",
                        {"entity_id": command.entity_id},
                    )
                await _check_parent_tenant(self.entity_repo, command.tenant_id, command.entity_id, command.parent_id)
                tree = await self.hierarchy.load(command.tenant_id, fresh=True)
                tree.validate_parent(command.entity_id, command.parent_id, command.kind)

                now = utc_now()
                return await self.entity_repo.create(
                    Entity(
                        id=command.entity_id,
                        tenant_id=command.tenant_id,
                        parent_id=command.parent_id,
                        kind=command.kind,
                        name=command.name,
                        inherit_settings=command.inherit_settings,
                        inherit_branding=command.inherit_branding,
                        inherit_credits=command.inherit_credits,
                        created_at=now,
                        updated_at=now,
                    )
                )

            entity = await self.runner.run([hierarchy_lock_key(command.tenant_id)], operation)
            self.hierarchy.invalidate(command.tenant_id)

            chain = await self.hierarchy.ancestor_chain(command.tenant_id, entity.id)
            logger.info(f"Registered {entity.kind.value} {entity.id} under {entity.parent_id} in {entity.tenant_id}")
            return Return.ok(entity_to_dto(entity, chain))

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Registering entity {command.entity_id} failed: {e}")
            return Return.err(
                Error(code="REGISTER_ENTITY_FAILED", message="Failed to register entity", reason=str(e))
            )


class MoveEntity:
    """Use Case: Re-parent an entity within its tenant"""

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        entity_repo: EntityRepository,
        hierarchy: HierarchyService,
    ):
        self.uow = uow
        self.runner = runner
        self.entity_repo = entity_repo
        self.hierarchy = hierarchy

    async def execute(self, command: MoveEntityCommandDTO) -> Result[EntityDTO]:
        try:
            entity = await self.entity_repo.get_by_id(command.entity_id)
            if entity is None:
                raise EntityNotFound(command.entity_id)
            tenant_id = entity.tenant_id

            async def operation(attempt: int) -> Entity:
                current = await self.entity_repo.get_by_id(command.entity_id)
                await _check_parent_tenant(self.entity_repo, tenant_id, current.id, command.new_parent_id)
                tree = await self.hierarchy.load(tenant_id, fresh=True)
                tree.validate_parent(current.id, command.new_parent_id, current.kind)

                current.parent_id = command.new_parent_id
                current.updated_at = utc_now()
                return await self.entity_repo.save(current)

            moved = await self.runner.run([hierarchy_lock_key(tenant_id)], operation)
            self.hierarchy.invalidate(tenant_id)

            chain = await self.hierarchy.ancestor_chain(tenant_id, moved.id)
            logger.info(f"Moved entity {moved.id} under {moved.parent_id}")
            return Return.ok(entity_to_dto(moved, chain))

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Moving entity {command.entity_id} failed: {e}")
            return Return.err(
                Error(code="MOVE_ENTITY_FAILED", message="Failed to move entity", reason=str(e))
            )
