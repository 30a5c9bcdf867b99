"""Integration tests for charging operations against a real database

Tests cover:
- Soonest-expiring batches are consumed first
- Overage within the configured limit, and refusal beyond it
- Free allowance per period
- Most specific configuration tier wins
- Entities inheriting credits are charged to their ancestor's account
- Idempotent replay of a charge, free or concurrent
"""

import asyncio
import pytest
from decimal import Decimal
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.use_cases.credits import ChargeOperationCommandDTO
from credit_engine.domain.credit_configuration import ConfigScope
from credit_engine.domain.entity import EntityKind


async def account_batches(services, account_key: str):
    account = await services.account_repo.get_by_key(account_key)
    return account, await services.batch_repo.list_by_account(account.id)


def charge_command(operation_code: str = "api.call", quantity: str = "1", **fields) -> ChargeOperationCommandDTO:
    return ChargeOperationCommandDTO(
        tenant_id=fields.pop("tenant_id", "tenant_a"),
        operation_code=operation_code,
        quantity=Decimal(quantity),
        **fields,
    )


@pytest.mark.asyncio
class TestChargingFlow:

    async def test_consumes_soonest_expiring_batch_first(self, services, purchase, configure):
        """
        Given 100 credits expiring in 10 days and 50 expiring in 30 days
        When an operation costing 120 credits is charged
        Then the first batch is emptied and 30 credits remain in the second
        """
        # Arrange
        await configure("api.call", "1.5")
        await purchase("50", expires_in_days=30)
        await purchase("100", expires_in_days=10)

        # Act
        result = await services.charge_operation().execute(charge_command(quantity="80"))

        # Assert
        assert result.is_ok(), result.error
        assert result.value.charged_credits == Decimal("120")
        assert result.value.new_balance == Decimal("30")
        assert result.value.source_tier == ConfigScope.GLOBAL

        account, batches = await account_batches(services, "tenant_a:*")
        assert account.available_credits == Decimal("30")
        assert account.total_consumed == Decimal("120")
        assert [b.amount for b in batches] == [Decimal("100"), Decimal("50")]
        assert [b.remaining_amount for b in batches] == [Decimal("0"), Decimal("30")]

    async def test_overage_within_limit_then_settled_by_purchase(self, services, purchase, configure):
        # Arrange
        await configure("api.call", "1", tenant_id="tenant_a", allow_overage=True, overage_limit=Decimal("20"))
        await purchase("10")

        # Act
        result = await services.charge_operation().execute(charge_command(quantity="25"))

        # Assert
        assert result.is_ok(), result.error
        assert result.value.overage_credits == Decimal("15")
        assert result.value.new_balance == Decimal("-15")

        grant = await purchase("50")
        assert grant.new_balance == Decimal("35")
        _, batches = await account_batches(services, "tenant_a:*")
        assert sum(b.remaining_amount for b in batches) == Decimal("35")

    async def test_overage_beyond_limit_is_refused(self, services, purchase, configure):
        """
        Given an overage limit of 20 credits
        When a charge would leave the account 25 credits short
        Then it is refused and nothing changes
        """
        # Arrange
        await configure("api.call", "1", tenant_id="tenant_a", allow_overage=True, overage_limit=Decimal("20"))
        await purchase("10")

        # Act
        result = await services.charge_operation().execute(charge_command(quantity="35"))

        # Assert
        assert result.is_err()
        assert result.error.code == "INSUFFICIENT_CREDITS"
        account, _ = await account_batches(services, "tenant_a:*")
        assert account.available_credits == Decimal("10")

    async def test_without_overage_policy_shortfall_is_refused(self, services, purchase, configure):
        await configure("api.call", "1")
        await purchase("5")

        result = await services.charge_operation().execute(charge_command(quantity="6"))

        assert result.is_err()
        assert result.error.code == "INSUFFICIENT_CREDITS"
        assert result.error.details["shortfall"] == "1.0000"

    async def test_free_allowance(self, services, purchase, configure):
        # Arrange
        await configure("report.export", "1", free_allowance=5)
        await purchase("20")

        # Act
        first = await services.charge_operation().execute(charge_command("report.export", quantity="3"))
        second = await services.charge_operation().execute(charge_command("report.export", quantity="3"))

        # Assert
        assert first.value.charged_credits == Decimal("0")
        assert first.value.transaction_id is None
        assert second.value.free_quantity == Decimal("2")
        assert second.value.charged_credits == Decimal("1")
        assert second.value.new_balance == Decimal("19")

    async def test_entity_tier_overrides_tenant_and_global(self, services, purchase, configure):
        # Arrange
        await configure("ai.*", "1")
        await configure("ai.*", "2.0", tenant_id="tenant_a")
        await configure("ai.generate", "3.75", tenant_id="tenant_a", entity_id="branch_x")
        await purchase("100", entity_id="branch_x")
        await purchase("100", entity_id="branch_y")

        # Act
        specific = await services.charge_operation().execute(charge_command("ai.generate", entity_id="branch_x"))
        tenant_wide = await services.charge_operation().execute(charge_command("ai.generate", entity_id="branch_y"))

        # Assert
        assert specific.value.charged_credits == Decimal("3.75")
        assert specific.value.source_tier == ConfigScope.ENTITY_SPECIFIC
        assert tenant_wide.value.charged_credits == Decimal("2.0")
        assert tenant_wide.value.source_tier == ConfigScope.TENANT_WIDE

    async def test_unpriced_operation_is_an_error(self, services, purchase):
        await purchase("10")

        result = await services.charge_operation().execute(charge_command("unknown.op"))

        assert result.is_err()
        assert result.error.code == "CONFIGURATION_NOT_FOUND"

    async def test_inheriting_entity_charges_ancestor(self, services, purchase, configure, register):
        """
        Given a branch inheriting credits from its organization
        When the branch is charged
        Then the organization's account pays
        """
        # Arrange
        await register("tenant_a", kind=EntityKind.TENANT)
        await register("org_1", parent_id="tenant_a")
        await register("branch_x", parent_id="org_1", kind=EntityKind.LOCATION, inherit_credits=True)
        await configure("api.call", "2")
        await purchase("40", entity_id="org_1")

        # Act
        result = await services.charge_operation().execute(charge_command(entity_id="branch_x", quantity="5"))

        # Assert
        assert result.is_ok(), result.error
        assert result.value.account_entity_id == "org_1"
        account, _ = await account_batches(services, "tenant_a:org_1")
        assert account.available_credits == Decimal("30")
        assert await services.account_repo.get_by_key("tenant_a:branch_x") is None

    async def test_idempotent_charge(self, services, purchase, configure):
        # Arrange
        await configure("api.call", "2")
        await purchase("40")
        command = charge_command(quantity="5", idempotency_key="req-1")

        # Act
        first = await services.charge_operation().execute(command)
        second = await services.charge_operation().execute(command)

        # Assert
        assert second.value.replayed is True
        assert second.value.transaction_id == first.value.transaction_id
        account, _ = await account_batches(services, "tenant_a:*")
        assert account.available_credits == Decimal("30")

    async def test_free_charge_retry_is_not_billed(self, services, purchase, configure):
        """
        Given a free allowance of 3 units and 100 credits
        When a 3 unit charge is retried with the same idempotency key
        Then the retry replays the free charge and the balance stays at 100
        """
        # Arrange
        await configure("api.call", "1", free_allowance=3)
        await purchase("100")
        command = charge_command(quantity="3", idempotency_key="k1")

        # Act
        first = await services.charge_operation().execute(command)
        second = await services.charge_operation().execute(command)

        # Assert
        assert first.value.charged_credits == Decimal("0")
        assert second.is_ok(), second.error
        assert second.value.replayed is True
        assert second.value.charged_credits == Decimal("0")
        assert second.value.free_quantity == Decimal("3")
        account, _ = await account_batches(services, "tenant_a:*")
        assert account.available_credits == Decimal("100")

    async def test_concurrent_charges_with_same_key_bill_once(self, engine, make_services, purchase, configure):
        """
        Given two requests with the same idempotency key on separate sessions
        When they are charged concurrently
        Then one is applied, the other replays it and 5 credits are billed once
        """
        # Arrange
        await configure("api.call", "1")
        await purchase("100")
        Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
        command = charge_command(quantity="5", idempotency_key="dup")

        # Act
        async with Session() as one, Session() as two:
            results = await asyncio.gather(
                make_services(one).charge_operation().execute(command),
                make_services(two).charge_operation().execute(command),
            )

        # Assert
        assert all(result.is_ok() for result in results), [result.error for result in results]
        assert sorted(result.value.replayed for result in results) == [False, True]
        assert results[0].value.transaction_id == results[1].value.transaction_id
        async with Session() as fresh:
            account = await make_services(fresh).account_repo.get_by_key("tenant_a:*")
            assert account.available_credits == Decimal("95")

    async def test_frozen_account_refuses_charges(self, services, purchase, configure):
        from credit_engine.app.use_cases.credits import SetAccountFrozenCommandDTO

        await configure("api.call", "1")
        await purchase("10")
        frozen = await services.set_account_frozen().execute(
            SetAccountFrozenCommandDTO(tenant_id="tenant_a", frozen=True, reason="chargeback")
        )
        assert frozen.is_ok(), frozen.error

        result = await services.charge_operation().execute(charge_command())

        assert result.is_err()
        assert result.error.code == "ACCOUNT_FROZEN"
