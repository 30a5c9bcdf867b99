"""Integration tests for the expiry sweep"""

import pytest
from datetime import timedelta
from decimal import Decimal
from credit_engine.app.use_cases.credits import ApproveTransferCommandDTO, RequestTransferCommandDTO
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_alert import AlertType
from credit_engine.domain.credit_transaction import TransactionType


@pytest.mark.asyncio
class TestExpirySweepFlow:

    async def test_expired_batches_are_zeroed(self, services, purchase):
        """
        Given 40 credits expiring tomorrow and 60 credits expiring next year
        When the sweep runs two days from now
        Then the 40 credits expire with an EXPIRY transaction and 60 remain
        """
        # Arrange
        await purchase("40", expires_in_days=1)
        await purchase("60")

        # Act
        result = await services.run_expiry_sweep().execute(now=utc_now() + timedelta(days=2))

        # Assert
        assert result.is_ok(), result.error
        assert result.value.accounts_processed == 1
        assert result.value.batches_expired == 1
        assert result.value.credits_expired == Decimal("40")

        account = await services.account_repo.get_by_key("tenant_a:*")
        assert account.available_credits == Decimal("60")
        assert account.total_expired == Decimal("40")
        ledger = await services.transaction_repo.list_ledger(account.id)
        assert ledger[-1].transaction_type == TransactionType.EXPIRY
        assert ledger[-1].new_balance == Decimal("60")

    async def test_second_sweep_expires_nothing(self, services, purchase):
        await purchase("40", expires_in_days=1)
        later = utc_now() + timedelta(days=2)
        await services.run_expiry_sweep().execute(now=later)

        result = await services.run_expiry_sweep().execute(now=later)

        assert result.value.batches_expired == 0
        assert result.value.credits_expired == Decimal("0")

    async def test_expired_credits_cannot_be_consumed(self, services, purchase, configure):
        """
        Given a batch past its expiry date that no sweep has processed yet
        When a charge needs those credits
        Then the batch is expired first and the charge is refused
        """
        from credit_engine.app.use_cases.credits import ChargeOperationCommandDTO

        # Arrange
        await configure("api.call", "1")
        grant = await purchase("10", expires_in_days=1)
        batch = (await services.batch_repo.get_by_ids([grant.batch_id]))[0]
        batch.expiry_date = utc_now() - timedelta(seconds=1)
        await services.batch_repo.save(batch)
        await services.uow.commit()

        # Act
        result = await services.charge_operation().execute(
            ChargeOperationCommandDTO(tenant_id="tenant_a", operation_code="api.call", quantity=Decimal("5"))
        )

        # Assert
        assert result.is_err()
        assert result.error.code == "INSUFFICIENT_CREDITS"

    async def test_warning_sent_once_per_window(self, services, purchase):
        # Arrange
        await purchase("25", expires_in_days=5)
        now = utc_now()

        # Act
        first = await services.run_expiry_sweep().execute(now=now)
        repeat = await services.run_expiry_sweep().execute(now=now + timedelta(hours=1))
        last_day = await services.run_expiry_sweep().execute(now=now + timedelta(days=4, hours=12))

        # Assert
        assert first.value.warnings_sent == 1
        assert repeat.value.warnings_sent == 0
        assert last_day.value.warnings_sent == 1
        alerts, total = await services.alert_repo.list_by_tenant("tenant_a")
        warnings = [alert for alert in alerts if alert.alert_type == AlertType.EXPIRY_WARNING]
        assert len(warnings) == 2

    async def test_lapsed_temporary_transfer_is_completed(self, services, purchase):
        """
        Given an executed temporary transfer with a recall deadline tomorrow
        When the sweep runs two days from now
        Then the transfer becomes COMPLETED and the credits stay with the destination
        """
        # Arrange
        await purchase("100", entity_id="org_1")
        requested = await services.request_transfer().execute(
            RequestTransferCommandDTO(
                tenant_id="tenant_a",
                source_entity_id="org_1",
                destination_entity_id="branch_x",
                amount=Decimal("30"),
                is_temporary=True,
                recall_deadline=utc_now() + timedelta(days=1),
                requested_by="alice",
            )
        )
        await services.approve_transfer().execute(
            ApproveTransferCommandDTO(transfer_id=requested.value.transfer_id, approver_id="bob", approver_level=1)
        )

        # Act
        result = await services.run_expiry_sweep().execute(now=utc_now() + timedelta(days=2))

        # Assert
        assert result.value.transfers_finalized == 1
        transfer = await services.transfer_repo.get_by_id(requested.value.transfer_id)
        assert transfer.status.value == "completed"
        history = await services.transfer_repo.list_history(transfer.id)
        assert history[-1].actor_id == "expiry-sweeper"
        destination = await services.account_repo.get_by_key("tenant_a:branch_x")
        assert destination.available_credits == Decimal("30")
