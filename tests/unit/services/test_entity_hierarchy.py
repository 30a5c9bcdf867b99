"""Unit tests for EntityHierarchy and HierarchyService"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from credit_engine.app.services.entity_hierarchy import EntityHierarchy, HierarchyService
from credit_engine.app.services.ttl_cache import TTLCache
from credit_engine.domain.entity import Entity, EntityKind
from credit_engine.domain.errors import EntityNotFound, InvalidHierarchy


def entity(id: str, parent_id=None, kind=EntityKind.LOCATION, inherit_credits=False, tenant_id="tenant_a") -> Entity:
    return Entity(id=id, tenant_id=tenant_id, parent_id=parent_id, kind=kind, inherit_credits=inherit_credits)


@pytest.fixture
def entities():
    return [
        entity("tenant_a", kind=EntityKind.TENANT),
        entity("org_1", "tenant_a", EntityKind.ORGANIZATION),
        entity("branch_x", "org_1", inherit_credits=True),
        entity("branch_y", "org_1"),
        entity("org_2", "tenant_a", EntityKind.ORGANIZATION, inherit_credits=True),
        entity("branch_z", "org_2", inherit_credits=True),
        entity("foreign", kind=EntityKind.TENANT, tenant_id="tenant_b"),
    ]


@pytest.fixture
def hierarchy(entities):
    return EntityHierarchy("tenant_a", entities)


class TestAncestorChain:

    def test_chain_nearest_first(self, hierarchy):
        assert hierarchy.ancestor_chain("branch_x") == ["org_1", "tenant_a"]

    def test_root_has_no_ancestors(self, hierarchy):
        assert hierarchy.ancestor_chain("tenant_a") == []

    def test_other_tenants_are_excluded(self, hierarchy):
        assert "foreign" not in hierarchy
        assert len(hierarchy) == 6

    def test_unknown_entity(self, hierarchy):
        with pytest.raises(EntityNotFound):
            hierarchy.ancestor_chain("nope")

    def test_stored_cycle_detected(self):
        corrupt = EntityHierarchy(
            "tenant_a",
            [entity("a", "b"), entity("b", "a")],
        )

        with pytest.raises(InvalidHierarchy):
            corrupt.ancestor_chain("a")


class TestValidateParent:

    def test_valid_move(self, hierarchy):
        hierarchy.validate_parent("branch_y", "org_2", EntityKind.LOCATION)

    def test_move_under_descendant_rejected(self, hierarchy):
        """
        Given org_1 -> branch_x
        When org_1 is moved under branch_x
        Then the cycle is rejected
        """
        with pytest.raises(InvalidHierarchy):
            hierarchy.validate_parent("org_1", "branch_x", EntityKind.ORGANIZATION)

    def test_self_parent_rejected(self, hierarchy):
        with pytest.raises(InvalidHierarchy):
            hierarchy.validate_parent("org_1", "org_1", EntityKind.ORGANIZATION)

    def test_missing_parent(self, hierarchy):
        with pytest.raises(EntityNotFound):
            hierarchy.validate_parent("branch_new", "nope", EntityKind.LOCATION)

    def test_cross_tenant_parent_is_unknown(self, hierarchy):
        with pytest.raises(EntityNotFound):
            hierarchy.validate_parent("branch_new", "foreign", EntityKind.LOCATION)

    def test_non_root_needs_parent(self, hierarchy):
        with pytest.raises(InvalidHierarchy):
            hierarchy.validate_parent("branch_new", None, EntityKind.LOCATION)

    def test_root_rules(self, hierarchy):
        hierarchy.validate_parent("tenant_a", None, EntityKind.TENANT)
        with pytest.raises(InvalidHierarchy):
            hierarchy.validate_parent("tenant_a", "org_1", EntityKind.TENANT)
        with pytest.raises(InvalidHierarchy):
            hierarchy.validate_parent("other_root", None, EntityKind.TENANT)


class TestCreditOwner:

    def test_own_account(self, hierarchy):
        assert hierarchy.credit_owner("branch_y") == "branch_y"

    def test_inherits_from_parent(self, hierarchy):
        assert hierarchy.credit_owner("branch_x") == "org_1"

    def test_inheritance_up_to_tenant_account(self, hierarchy):
        assert hierarchy.credit_owner("branch_z") is None

    def test_root_and_tenant_level(self, hierarchy):
        assert hierarchy.credit_owner("tenant_a") is None
        assert hierarchy.credit_owner(None) is None

    def test_unknown_entity_pays_for_itself(self, hierarchy):
        assert hierarchy.credit_owner("unregistered") == "unregistered"


@pytest.mark.asyncio
class TestHierarchyService:

    async def test_load_uses_cache_unless_fresh(self, entities):
        # Arrange
        repo = MagicMock()
        repo.list_by_tenant = AsyncMock(return_value=entities)
        service = HierarchyService(repo, TTLCache(ttl_seconds=60))

        # Act
        await service.credit_owner("tenant_a", "branch_x")
        await service.ancestor_chain("tenant_a", "branch_x")
        await service.load("tenant_a", fresh=True)

        # Assert
        assert repo.list_by_tenant.await_count == 2

    async def test_require_entity_rejects_foreign_entity(self, entities):
        repo = MagicMock()
        repo.get_by_id = AsyncMock(return_value=entities[-1])
        service = HierarchyService(repo, TTLCache())

        with pytest.raises(InvalidHierarchy):
            await service.require_entity("tenant_a", "foreign")

    async def test_require_entity_allows_unregistered(self):
        repo = MagicMock()
        repo.get_by_id = AsyncMock(return_value=None)
        service = HierarchyService(repo, TTLCache())

        await service.require_entity("tenant_a", "unregistered")
        await service.require_entity("tenant_a", None)

        repo.get_by_id.assert_awaited_once_with("unregistered")
