"""UpsertConfiguration Use Case

Creates or updates the priced-operation rule for one tier and operation
code, then drops the cached configuration snapshots it affects.
"""

import logging
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_configuration_repository import CreditConfigurationRepository
from credit_engine.app.services.config_resolver import ConfigurationResolver
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.app.use_cases.credits.dtos import ConfigurationDTO, UpsertConfigurationCommandDTO
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_configuration import ConfigScope, CreditConfiguration, scope_key_for
from credit_engine.domain.errors import CreditError
from credit_engine.domain.money import to_credits

logger = logging.getLogger(__name__)


def configuration_to_dto(configuration: CreditConfiguration) -> ConfigurationDTO:
    return ConfigurationDTO(
        configuration_id=configuration.id,
        scope=configuration.scope,
        tenant_id=configuration.tenant_id,
        entity_id=configuration.entity_id,
        operation_code=configuration.operation_code,
        credit_cost=configuration.credit_cost,
        unit=configuration.unit,
        free_allowance=configuration.free_allowance,
        free_allowance_period=configuration.free_allowance_period,
        allow_overage=configuration.allow_overage,
        overage_limit=configuration.overage_limit,
        overage_period=configuration.overage_period,
        priority=configuration.priority,
        is_active=configuration.is_active,
        version=configuration.version,
        updated_at=configuration.updated_at,
    )


class UpsertConfiguration:
    """
    Use Case: Create or update a configuration rule

    Business Rules:
    1. (tier, tenant, entity, operation code) identifies the rule
    2. Updates bump the rule's version
    3. Entity rules must name an entity of the same tenant
    4. Global rule changes drop every tenant's cached snapshot
    """

    def __init__(
        self,
        uow: UnitOfWork,
        config_repo: CreditConfigurationRepository,
        resolver: ConfigurationResolver,
        hierarchy: HierarchyService,
    ):
        self.uow = uow
        self.config_repo = config_repo
        self.resolver = resolver
        self.hierarchy = hierarchy

    async def execute(self, command: UpsertConfigurationCommandDTO) -> Result[ConfigurationDTO]:
        try:
            if command.scope == ConfigScope.ENTITY_SPECIFIC:
                await self.hierarchy.require_entity(command.tenant_id, command.entity_id)

            now = utc_now()
            scope_key = scope_key_for(command.scope, command.tenant_id, command.entity_id)
            configuration = await self.config_repo.get_by_scope(scope_key, command.operation_code)
            fields = dict(
                credit_cost=to_credits(command.credit_cost),
                unit=command.unit,
                free_allowance=command.free_allowance,
                free_allowance_period=command.free_allowance_period,
                allow_overage=command.allow_overage,
                overage_limit=to_credits(command.overage_limit) if command.overage_limit is not None else None,
                overage_period=command.overage_period,
                priority=command.priority,
                is_active=command.is_active,
                updated_by=command.updated_by,
                updated_at=now,
            )

            if configuration is None:
                configuration = await self.config_repo.create(
                    CreditConfiguration(
                        scope=command.scope,
                        scope_key=scope_key,
                        tenant_id=command.tenant_id,
                        entity_id=command.entity_id,
                        operation_code=command.operation_code,
                        created_at=now,
                        **fields,
                    )
                )
            else:
                for name, value in fields.items():
                    setattr(configuration, name, value)
                configuration.version += 1
                configuration = await self.config_repo.save(configuration)

            await self.uow.commit()
            self.resolver.invalidate(None if command.scope == ConfigScope.GLOBAL else command.tenant_id)

            logger.info(
                f"Configuration {scope_key} {command.operation_code} now v{configuration.version}: "
                f"{configuration.credit_cost} per {configuration.unit}"
            )
            return Return.ok(configuration_to_dto(configuration))

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Configuration upsert for {command.operation_code} failed: {e}")
            return Return.err(
                Error(code="UPSERT_CONFIGURATION_FAILED", message="Failed to save configuration", reason=str(e))
            )
