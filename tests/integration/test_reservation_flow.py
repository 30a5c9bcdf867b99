"""Integration tests for reservations and the reservation reaper"""

import pytest
from datetime import timedelta
from decimal import Decimal
from credit_engine.app.use_cases.credits import ReservationActionCommandDTO, ReserveCreditsCommandDTO
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_reservation import ReservationStatus


async def reserve(services, amount=None, **fields):
    result = await services.reserve_credits().execute(
        ReserveCreditsCommandDTO(
            tenant_id="tenant_a",
            amount=Decimal(amount) if amount is not None else None,
            **fields,
        )
    )
    return result


@pytest.mark.asyncio
class TestReservationFlow:

    async def test_reserve_then_commit(self, services, purchase):
        """
        Given an account with 50 credits
        When 20 credits are reserved and the reservation is committed
        Then 30 remain available and 20 are recorded as consumed
        """
        # Arrange
        await purchase("50")

        # Act
        reserved = await reserve(services, "20", operation_code="video.render")
        committed = await services.commit_reservation().execute(
            ReservationActionCommandDTO(reservation_id=reserved.value.reservation_id)
        )

        # Assert
        assert reserved.value.available_credits == Decimal("30")
        assert reserved.value.reserved_credits == Decimal("20")
        assert committed.is_ok(), committed.error
        assert committed.value.status == "committed"
        assert committed.value.transaction_id is not None
        account = await services.account_repo.get_by_key("tenant_a:*")
        assert account.available_credits == Decimal("30")
        assert account.reserved_credits == Decimal("0")
        assert account.total_consumed == Decimal("20")

    async def test_release_returns_credits_to_batches(self, services, purchase):
        # Arrange
        await purchase("50")
        reserved = await reserve(services, "20")

        # Act
        released = await services.release_reservation().execute(
            ReservationActionCommandDTO(reservation_id=reserved.value.reservation_id)
        )

        # Assert
        assert released.value.status == "released"
        account = await services.account_repo.get_by_key("tenant_a:*")
        assert account.available_credits == Decimal("50")
        assert await services.batch_repo.sum_remaining(account.id) == Decimal("50")

    async def test_amount_from_operation_cost(self, services, purchase, configure):
        await configure("video.render", "2.5")
        await purchase("50")

        reserved = await reserve(services, operation_code="video.render", quantity=Decimal("4"))

        assert reserved.value.amount == Decimal("10")

    async def test_reservation_cannot_exceed_pool(self, services, purchase):
        await purchase("10")

        result = await reserve(services, "11")

        assert result.is_err()
        assert result.error.code == "INSUFFICIENT_CREDITS"

    async def test_second_commit_is_rejected(self, services, purchase):
        # Arrange
        await purchase("50")
        reserved = await reserve(services, "5")
        command = ReservationActionCommandDTO(reservation_id=reserved.value.reservation_id)
        await services.commit_reservation().execute(command)

        # Act
        again = await services.release_reservation().execute(command)

        # Assert
        assert again.is_err()
        assert again.error.code == "INVALID_RESERVATION_STATE"

    async def test_unknown_reservation(self, services):
        result = await services.commit_reservation().execute(ReservationActionCommandDTO(reservation_id=999))

        assert result.is_err()
        assert result.error.code == "RESERVATION_NOT_FOUND"

    async def test_reaper_releases_overdue_reservations(self, services, purchase):
        """
        Given a reservation with a one second deadline
        When the reaper runs five minutes later
        Then the credits come back and the reservation is marked expired
        """
        # Arrange
        await purchase("50")
        reserved = await reserve(services, "15", ttl_seconds=1)
        kept = await reserve(services, "5", ttl_seconds=3600)

        # Act
        result = await services.run_reservation_reap().execute(now=utc_now() + timedelta(minutes=5))

        # Assert
        assert result.is_ok(), result.error
        assert result.value.reservations_released == 1
        assert result.value.credits_released == Decimal("15")
        reservation = await services.reservation_repo.get_by_id(reserved.value.reservation_id)
        assert reservation.status == ReservationStatus.EXPIRED
        still_open = await services.reservation_repo.get_by_id(kept.value.reservation_id)
        assert still_open.status == ReservationStatus.OPEN
        account = await services.account_repo.get_by_key("tenant_a:*")
        assert account.available_credits == Decimal("45")
        assert account.reserved_credits == Decimal("5")
