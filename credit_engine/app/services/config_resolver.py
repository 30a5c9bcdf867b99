"""Configuration Resolver

Resolves the effective price and policy of an operation for an entity by
walking three configuration tiers: entity-specific, tenant-wide, global.
The first tier with an active matching rule wins; tiers are never merged.

Resolution is a pure function over an immutable ConfigurationSnapshot.
Snapshots are loaded per tenant and cached with a short TTL; configuration
writes invalidate them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Tuple
from credit_engine.app.repositories.credit_configuration_repository import CreditConfigurationRepository
from credit_engine.app.services.ttl_cache import TTLCache
from credit_engine.domain.credit_configuration import (
    ConfigScope,
    CreditConfiguration,
    operation_matches,
    specificity,
)
from credit_engine.domain.errors import ConfigurationNotFound
from credit_engine.domain.money import to_credits
from credit_engine.domain.policies import OveragePolicy, PeriodType

logger = logging.getLogger(__name__)

TIER_ORDER = (ConfigScope.ENTITY_SPECIFIC, ConfigScope.TENANT_WIDE, ConfigScope.GLOBAL)


@dataclass(frozen=True)
class ConfigurationRule:
    """Immutable copy of one active CreditConfiguration row"""

    id: int
    scope: ConfigScope
    tenant_id: Optional[str]
    entity_id: Optional[str]
    operation_code: str
    credit_cost: Decimal
    unit: str
    free_allowance: int
    free_allowance_period: PeriodType
    overage_policy: OveragePolicy
    priority: int
    updated_at: datetime

    @classmethod
    def from_row(cls, row: CreditConfiguration) -> "ConfigurationRule":
        return cls(
            id=row.id,
            scope=row.scope,
            tenant_id=row.tenant_id,
            entity_id=row.entity_id,
            operation_code=row.operation_code,
            credit_cost=to_credits(row.credit_cost),
            unit=row.unit,
            free_allowance=row.free_allowance,
            free_allowance_period=row.free_allowance_period,
            overage_policy=row.overage_policy(),
            priority=row.priority,
            updated_at=row.updated_at,
        )

    def rank(self) -> Tuple:
        # Higher ranks win: specificity, then priority, then most recent update, then newest row
        return (specificity(self.operation_code), self.priority, self.updated_at, self.id)


@dataclass(frozen=True)
class ConfigurationSnapshot:
    tenant_id: str
    version: int
    rules: Tuple[ConfigurationRule, ...]

    @classmethod
    def build(cls, tenant_id: str, rows: Iterable[CreditConfiguration], version: int = 0) -> "ConfigurationSnapshot":
        rules = tuple(
            ConfigurationRule.from_row(row)
            for row in sorted(rows, key=lambda r: r.id or 0)
            if row.is_active
        )
        return cls(tenant_id=tenant_id, version=version, rules=rules)


@dataclass(frozen=True)
class ResolvedCost:
    unit_cost: Decimal
    unit: str
    free_allowance: int
    free_allowance_period: PeriodType
    overage_policy: OveragePolicy
    source_tier: ConfigScope
    configuration_id: int
    matched_operation_code: str
    snapshot_version: int


def _in_tier(rule: ConfigurationRule, tier: ConfigScope, tenant_id: str, entity_id: Optional[str]) -> bool:
    if rule.scope != tier:
        return False
    if tier == ConfigScope.ENTITY_SPECIFIC:
        return entity_id is not None and rule.tenant_id == tenant_id and rule.entity_id == entity_id
    if tier == ConfigScope.TENANT_WIDE:
        return rule.tenant_id == tenant_id and rule.entity_id is None
    return rule.tenant_id is None and rule.entity_id is None


def resolve_cost(
    snapshot: ConfigurationSnapshot,
    tenant_id: str,
    entity_id: Optional[str],
    operation_code: str,
) -> ResolvedCost:
    """
    Resolve the effective configuration for an operation

    Raises:
        ConfigurationNotFound: No tier has an active matching rule
    """
    for tier in TIER_ORDER:
        candidates = [
            rule
            for rule in snapshot.rules
            if _in_tier(rule, tier, tenant_id, entity_id) and operation_matches(rule.operation_code, operation_code)
        ]
        if not candidates:
            continue

        winner = max(candidates, key=ConfigurationRule.rank)
        return ResolvedCost(
            unit_cost=winner.credit_cost,
            unit=winner.unit,
            free_allowance=winner.free_allowance,
            free_allowance_period=winner.free_allowance_period,
            overage_policy=winner.overage_policy,
            source_tier=tier,
            configuration_id=winner.id,
            matched_operation_code=winner.operation_code,
            snapshot_version=snapshot.version,
        )

    raise ConfigurationNotFound(tenant_id, entity_id, operation_code)


class ConfigurationResolver:
    """
    Snapshot loading and caching around ``resolve_cost``

    Constructed per request around the request's repository; the cache is
    shared and keyed by tenant.
    """

    def __init__(self, config_repo: CreditConfigurationRepository, cache: TTLCache):
        self.config_repo = config_repo
        self.cache = cache

    async def snapshot(self, tenant_id: str) -> ConfigurationSnapshot:
        snapshot = self.cache.get(tenant_id)
        if snapshot is None:
            rows = await self.config_repo.list_active_for_tenant(tenant_id)
            snapshot = ConfigurationSnapshot.build(tenant_id, rows, version=self.cache.generation)
            self.cache.put(tenant_id, snapshot)
            logger.debug(f"Loaded configuration snapshot v{snapshot.version} for tenant {tenant_id}")
        return snapshot

    async def resolve(self, tenant_id: str, entity_id: Optional[str], operation_code: str) -> ResolvedCost:
        snapshot = await self.snapshot(tenant_id)
        return resolve_cost(snapshot, tenant_id, entity_id, operation_code)

    def invalidate(self, tenant_id: Optional[str]) -> None:
        """Drop one tenant's snapshot, or every snapshot when a global rule changed"""
        if tenant_id is None:
            self.cache.clear()
        else:
            self.cache.invalidate(tenant_id)
