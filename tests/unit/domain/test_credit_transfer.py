"""Unit tests for the CreditTransfer state machine"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from credit_engine.domain.credit_transfer import ALLOWED_TRANSITIONS, CreditTransfer, TransferStatus
from credit_engine.domain.errors import InvalidTransferState

NOW = datetime(2026, 3, 1, 12, 0, 0)


def make_transfer(status: TransferStatus = TransferStatus.PENDING, **fields) -> CreditTransfer:
    defaults = dict(
        id=11,
        tenant_id="tenant_a",
        source_entity_id="org_1",
        destination_entity_id="branch_x",
        source_account_key="tenant_a:org_1",
        destination_account_key="tenant_a:branch_x",
        requested_amount=Decimal("100.0000"),
        transfer_amount=Decimal("100.0000"),
        requested_by="user_1",
        status=status,
    )
    defaults.update(fields)
    return CreditTransfer(**defaults)


class TestTransitions:

    @pytest.mark.parametrize(
        "old, new",
        [
            (TransferStatus.PENDING, TransferStatus.APPROVED),
            (TransferStatus.PENDING, TransferStatus.REJECTED),
            (TransferStatus.APPROVED, TransferStatus.COMPLETED),
            (TransferStatus.APPROVED, TransferStatus.FAILED),
            (TransferStatus.APPROVED, TransferStatus.RECALLED),
        ],
    )
    def test_allowed_transition(self, old, new):
        transfer = make_transfer(old)

        previous = transfer.transition_to(new, NOW)

        assert previous == old
        assert transfer.status == new
        assert transfer.updated_at == NOW

    @pytest.mark.parametrize(
        "old, new",
        [
            (TransferStatus.PENDING, TransferStatus.COMPLETED),
            (TransferStatus.PENDING, TransferStatus.RECALLED),
            (TransferStatus.APPROVED, TransferStatus.REJECTED),
            (TransferStatus.REJECTED, TransferStatus.APPROVED),
            (TransferStatus.COMPLETED, TransferStatus.RECALLED),
            (TransferStatus.FAILED, TransferStatus.APPROVED),
        ],
    )
    def test_illegal_transition_raises(self, old, new):
        transfer = make_transfer(old)

        with pytest.raises(InvalidTransferState) as exc_info:
            transfer.transition_to(new, NOW)

        assert transfer.status == old
        assert exc_info.value.details["requested"] == new.value

    def test_terminal_states_have_no_transitions(self):
        for status in TransferStatus:
            if status.is_terminal:
                assert status not in ALLOWED_TRANSITIONS
        assert not TransferStatus.PENDING.is_terminal
        assert not TransferStatus.APPROVED.is_terminal


class TestRecallable:

    def test_executed_temporary_before_deadline(self):
        transfer = make_transfer(
            TransferStatus.APPROVED,
            is_temporary=True,
            executed_at=NOW,
            recall_deadline=NOW + timedelta(days=7),
        )

        assert transfer.is_recallable(NOW + timedelta(days=1))

    def test_not_recallable_after_deadline(self):
        transfer = make_transfer(
            TransferStatus.APPROVED,
            is_temporary=True,
            executed_at=NOW,
            recall_deadline=NOW + timedelta(days=7),
        )

        assert not transfer.is_recallable(NOW + timedelta(days=7))

    def test_not_recallable_before_execution(self):
        transfer = make_transfer(
            TransferStatus.APPROVED,
            is_temporary=True,
            recall_deadline=NOW + timedelta(days=7),
        )

        assert not transfer.is_recallable(NOW)

    def test_permanent_transfer_not_recallable(self):
        transfer = make_transfer(TransferStatus.COMPLETED, executed_at=NOW)

        assert not transfer.is_recallable(NOW)
