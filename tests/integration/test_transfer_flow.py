"""Integration tests for the credit transfer workflow

Tests cover:
- Request, approve and execute; credits are conserved
- Transfer fee kept by neither account
- Auto-approval by rule
- Rejection and insufficient credits
- Temporary transfers: recall before the deadline
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from credit_engine.app.use_cases.credits import (
    ApproveTransferCommandDTO,
    RecallTransferCommandDTO,
    RejectTransferCommandDTO,
    RequestTransferCommandDTO,
)
from credit_engine.domain.base import utc_now
from credit_engine.domain.transfer_approval_rule import TransferApprovalRule
from config import ApplicationConfig


class FeeConfig(ApplicationConfig):
    TRANSFER_FEE_RATE = "0.01"
    CREDIT_MAX_RETRIES = 2


def transfer_command(amount: str, **fields) -> RequestTransferCommandDTO:
    return RequestTransferCommandDTO(
        tenant_id="tenant_a",
        source_entity_id=fields.pop("source_entity_id", "org_1"),
        destination_entity_id=fields.pop("destination_entity_id", "branch_x"),
        amount=Decimal(amount),
        requested_by=fields.pop("requested_by", "alice"),
        **fields,
    )


async def available(services, account_key: str) -> Decimal:
    account = await services.account_repo.get_by_key(account_key)
    return account.available_credits if account else Decimal("0")


@pytest.mark.asyncio
class TestTransferFlow:

    async def test_approved_transfer_moves_credits(self, services, purchase):
        """
        Given org_1 with 500 credits and no approval rules
        When 200 credits are requested for branch_x and approved
        Then branch_x holds 200, org_1 holds 300 and the transfer is completed
        """
        # Arrange
        await purchase("500", entity_id="org_1", expires_in_days=60)

        # Act
        requested = await services.request_transfer().execute(transfer_command("200"))
        approved = await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=1)
        )

        # Assert
        assert requested.value.status == "pending"
        assert requested.value.approval_required is True
        assert approved.is_ok(), approved.error
        assert approved.value.status == "completed"
        assert [h.new_status for h in approved.value.history] == ["pending", "approved", "completed"]
        assert await available(services, "tenant_a:org_1") == Decimal("300")
        assert await available(services, "tenant_a:branch_x") == Decimal("200")

    async def test_destination_batches_keep_source_expiry(self, services, purchase):
        # Arrange
        grant = await purchase("100", entity_id="org_1", expires_in_days=20)
        requested = await services.request_transfer().execute(transfer_command("40"))

        # Act
        await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=1)
        )

        # Assert
        destination = await services.account_repo.get_by_key("tenant_a:branch_x")
        batches = await services.batch_repo.list_by_account(destination.id)
        assert len(batches) == 1
        assert batches[0].expiry_date == grant.expiry_date
        assert batches[0].source_reference == f"transfer:{requested.value.transfer_id}"

    async def test_fee_is_withheld(self, db_session, make_services, purchase):
        # Arrange
        services = make_services(db_session, config=FeeConfig)
        await purchase("500", entity_id="org_1")

        # Act
        requested = await services.request_transfer().execute(transfer_command("200"))
        await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=1)
        )

        # Assert
        assert requested.value.transfer_fee == Decimal("2")
        assert requested.value.transfer_amount == Decimal("198")
        assert await available(services, "tenant_a:org_1") == Decimal("300")
        assert await available(services, "tenant_a:branch_x") == Decimal("198")

    async def test_approver_below_required_level(self, services, purchase):
        await purchase("100", entity_id="org_1")
        requested = await services.request_transfer().execute(transfer_command("50"))

        result = await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=0)
        )

        assert result.is_err()
        assert result.error.code == "APPROVAL_NOT_AUTHORIZED"
        assert await available(services, "tenant_a:org_1") == Decimal("100")

    async def test_requester_cannot_approve(self, services, purchase):
        await purchase("100", entity_id="org_1")
        requested = await services.request_transfer().execute(transfer_command("50"))

        result = await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="alice", approver_level=5)
        )

        assert result.error.code == "APPROVAL_NOT_AUTHORIZED"

    async def test_auto_approved_by_rule(self, services, db_session, purchase):
        # Arrange
        await services.rule_repo.create(
            TransferApprovalRule(
                tenant_id="tenant_a",
                entity_id="org_1",
                min_amount=Decimal("0"),
                auto_approve_below=Decimal("100"),
                auto_approve_roles=["org_admin"],
            )
        )
        await db_session.commit()
        await purchase("500", entity_id="org_1")

        # Act
        result = await services.request_transfer().execute(transfer_command("80", requester_role="org_admin"))

        # Assert
        assert result.is_ok(), result.error
        assert result.value.status == "completed"
        assert result.value.approval_required is False
        assert await available(services, "tenant_a:branch_x") == Decimal("80")

    async def test_rejected_transfer_moves_nothing(self, services, purchase):
        # Arrange
        await purchase("100", entity_id="org_1")
        requested = await services.request_transfer().execute(transfer_command("50"))

        # Act
        rejected = await services.reject_transfer().execute(
            RejectTransferCommandDTO(transfer_id=requested.value.transfer_id, rejected_by="bob", reason="not budgeted")
        )
        approve_after = await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=1)
        )

        # Assert
        assert rejected.value.status == "rejected"
        assert rejected.value.rejection_reason == "not budgeted"
        assert approve_after.error.code == "INVALID_TRANSFER_STATE"
        assert await available(services, "tenant_a:org_1") == Decimal("100")

    async def test_insufficient_credits_fails_transfer(self, services, purchase):
        """
        Given a pending transfer larger than the source balance
        When it is approved
        Then it ends FAILED and neither balance changes
        """
        # Arrange
        await purchase("10", entity_id="org_1")
        requested = await services.request_transfer().execute(transfer_command("50"))

        # Act
        result = await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=1)
        )

        # Assert
        assert result.is_ok(), result.error
        assert result.value.status == "failed"
        assert result.value.failure_reason is not None
        assert await available(services, "tenant_a:org_1") == Decimal("10")
        assert await available(services, "tenant_a:branch_x") == Decimal("0")

    async def test_recall_temporary_transfer(self, services, purchase):
        # Arrange
        await purchase("100", entity_id="org_1")
        requested = await services.request_transfer().execute(
            transfer_command("60", is_temporary=True, recall_deadline=utc_now() + timedelta(days=1))
        )
        approved = await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=1)
        )
        assert approved.value.status == "approved"
        assert approved.value.executed_at is not None

        # Act
        recalled = await services.recall_transfer().execute(
            RecallTransferCommandDTO(transfer_id=requested.value.transfer_id, recalled_by="alice")
        )

        # Assert
        assert recalled.is_ok(), recalled.error
        assert recalled.value.status == "recalled"
        assert await available(services, "tenant_a:org_1") == Decimal("100")
        assert await available(services, "tenant_a:branch_x") == Decimal("0")

    async def test_permanent_transfer_cannot_be_recalled(self, services, purchase):
        await purchase("100", entity_id="org_1")
        requested = await services.request_transfer().execute(transfer_command("10"))
        await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=1)
        )

        result = await services.recall_transfer().execute(
            RecallTransferCommandDTO(transfer_id=requested.value.transfer_id, recalled_by="alice")
        )

        assert result.error.code == "INVALID_TRANSFER_STATE"

    async def test_idempotent_request(self, services, purchase):
        await purchase("100", entity_id="org_1")

        first = await services.request_transfer().execute(transfer_command("10", idempotency_key="alloc-1"))
        second = await services.request_transfer().execute(transfer_command("10", idempotency_key="alloc-1"))

        assert second.value.transfer_id == first.value.transfer_id
