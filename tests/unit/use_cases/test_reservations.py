"""Unit tests for reservation commit and release use cases"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from credit_engine.app.use_cases.credits import (
    CommitReservation,
    ReleaseReservation,
    ReservationActionCommandDTO,
)
from credit_engine.app.use_cases.credits.reservations import _ReservationAction
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_reservation import CreditReservation, ReservationStatus


@pytest.fixture
def reservation():
    return CreditReservation(
        id=5,
        account_id=1,
        amount=Decimal("20.0000"),
        status=ReservationStatus.OPEN,
        deadline=utc_now() + timedelta(minutes=10),
        holds=[{"batch_id": 3, "amount": "20.0000"}],
    )


@pytest.fixture
def account():
    return CreditAccount(
        id=1,
        account_key="tenant_a:*",
        tenant_id="tenant_a",
        available_credits=Decimal("80.0000"),
        reserved_credits=Decimal("20.0000"),
    )


@pytest.fixture
def mock_runner():
    runner = MagicMock()

    async def run(keys, operation):
        return await operation(0)

    runner.run = AsyncMock(side_effect=run)
    return runner


@pytest.fixture
def mock_reservation_repo(reservation):
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=reservation)
    return repo


@pytest.fixture
def mock_account_repo(account):
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=account)
    return repo


def test_shared_action_cannot_be_instantiated(mock_uow):
    with pytest.raises(TypeError):
        _ReservationAction(mock_uow, MagicMock(), MagicMock(), MagicMock(), MagicMock())


@pytest.mark.asyncio
class TestReservationActions:

    async def test_commit_uses_ledger_commit(
        self, mock_uow, mock_runner, mock_reservation_repo, mock_account_repo, account, reservation
    ):
        # Arrange
        ledger = MagicMock()
        ledger.commit = AsyncMock()
        use_case = CommitReservation(mock_uow, mock_runner, ledger, mock_reservation_repo, mock_account_repo)

        # Act
        result = await use_case.execute(ReservationActionCommandDTO(reservation_id=5))

        # Assert
        assert result.is_ok()
        assert mock_runner.run.await_args.args[0] == ["tenant_a:*"]
        assert ledger.commit.await_args.args[0] is account
        assert ledger.commit.await_args.args[1] is reservation

    async def test_unknown_reservation(self, mock_uow, mock_runner, mock_reservation_repo, mock_account_repo):
        mock_reservation_repo.get_by_id = AsyncMock(return_value=None)
        use_case = ReleaseReservation(mock_uow, mock_runner, MagicMock(), mock_reservation_repo, mock_account_repo)

        result = await use_case.execute(ReservationActionCommandDTO(reservation_id=99))

        assert result.is_err()
        assert result.error.code == "RESERVATION_NOT_FOUND"
        mock_runner.run.assert_not_awaited()
        mock_uow.rollback.assert_awaited_once()
