"""Reservation Use Cases

Hold credits for an operation that has not completed yet, then commit the
hold as consumption or release it back to the pool. Holds that are neither
committed nor released before their deadline are released by the
reservation reaper.
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.credit_reservation_repository import CreditReservationRepository
from credit_engine.app.services.config_resolver import ConfigurationResolver
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.ledger_store import LedgerStore
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_reservation import CreditReservation
from credit_engine.domain.errors import CreditError, ReservationNotFound
from credit_engine.domain.money import multiply
from .dtos import ReservationActionCommandDTO, ReservationDTO, ReserveCreditsCommandDTO

logger = logging.getLogger(__name__)


def reservation_to_dto(reservation: CreditReservation, account: CreditAccount) -> ReservationDTO:
    return ReservationDTO(
        reservation_id=reservation.id,
        account_id=reservation.account_id,
        amount=reservation.amount,
        operation_code=reservation.operation_code,
        status=reservation.status.value,
        deadline=reservation.deadline,
        transaction_id=reservation.transaction_id,
        available_credits=account.available_credits,
        reserved_credits=account.reserved_credits,
        created_at=reservation.created_at,
        resolved_at=reservation.resolved_at,
    )


class ReserveCredits:
    """
    Use Case: Hold credits for a pending operation

    Business Rules:
    1. The hold amount is explicit, or quantity x resolved operation cost
    2. Held credits leave their batches soonest-expiring first
    3. No overage: the pool must cover the hold
    4. Every reservation has a deadline (default TTL when none is given)
    """

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        resolver: ConfigurationResolver,
        hierarchy: HierarchyService,
        default_ttl_seconds: int = 900,
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.resolver = resolver
        self.hierarchy = hierarchy
        self.default_ttl_seconds = default_ttl_seconds

    async def execute(self, command: ReserveCreditsCommandDTO) -> Result[ReservationDTO]:
        try:
            await self.hierarchy.require_entity(command.tenant_id, command.entity_id)
            amount = command.amount
            if amount is None:
                resolved = await self.resolver.resolve(command.tenant_id, command.entity_id, command.operation_code)
                amount = multiply(resolved.unit_cost, command.quantity)
                if amount <= 0:
                    return Return.err(
                        Error(
                            code="NOTHING_TO_RESERVE",
                            message=f"Operation {command.operation_code} costs nothing to reserve",
                        )
                    )

            owner_id = await self.hierarchy.credit_owner(command.tenant_id, command.entity_id)
            account_key = CreditAccount.key_for(command.tenant_id, owner_id)
            ttl = timedelta(seconds=command.ttl_seconds or self.default_ttl_seconds)

            async def operation(attempt: int) -> ReservationDTO:
                now = utc_now()
                account = await self.ledger.load_account(command.tenant_id, owner_id, now)
                reservation, _ = await self.ledger.reserve(
                    account,
                    amount,
                    now,
                    deadline=now + ttl,
                    operation_code=command.operation_code,
                    initiated_by=command.initiated_by,
                    description=command.description,
                )
                return reservation_to_dto(reservation, account)

            response = await self.runner.run([account_key], operation)
            logger.info(f"Reserved {amount} credits on {account_key} (reservation {response.reservation_id})")
            return Return.ok(response)

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Reservation on {command.tenant_id}/{command.entity_id} failed: {e}")
            return Return.err(
                Error(code="RESERVE_CREDITS_FAILED", message="Failed to reserve credits", reason=str(e))
            )


class _ReservationAction(ABC):
    """Shared lookup and locking for commit and release"""

    failure_code = "RESERVATION_ACTION_FAILED"

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        reservation_repo: CreditReservationRepository,
        account_repo: CreditAccountRepository,
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.reservation_repo = reservation_repo
        self.account_repo = account_repo

    async def _account_key(self, reservation_id: int) -> str:
        reservation = await self.reservation_repo.get_by_id(reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        account = await self.account_repo.get_by_id(reservation.account_id)
        return account.account_key

    @abstractmethod
    async def _apply(self, command: ReservationActionCommandDTO, account: CreditAccount,
                     reservation: CreditReservation, now) -> None:
        pass

    async def execute(self, command: ReservationActionCommandDTO) -> Result[ReservationDTO]:
        try:
            account_key = await self._account_key(command.reservation_id)

            async def operation(attempt: int) -> ReservationDTO:
                now = utc_now()
                reservation: Optional[CreditReservation] = await self.reservation_repo.get_by_id(
                    command.reservation_id, for_update=True
                )
                if reservation is None:
                    raise ReservationNotFound(command.reservation_id)
                account = await self.account_repo.get_by_id(reservation.account_id, for_update=True)
                await self._apply(command, account, reservation, now)
                return reservation_to_dto(reservation, account)

            return Return.ok(await self.runner.run([account_key], operation))

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Reservation {command.reservation_id} action failed: {e}")
            return Return.err(
                Error(code=self.failure_code, message="Failed to update reservation", reason=str(e))
            )


class CommitReservation(_ReservationAction):
    """
    Use Case: Convert a reservation into consumption

    A reservation past its deadline can no longer be committed; it stays
    open until the reaper releases it.
    """

    failure_code = "COMMIT_RESERVATION_FAILED"

    async def _apply(self, command, account, reservation, now) -> None:
        await self.ledger.commit(
            account,
            reservation,
            now,
            initiated_by=command.initiated_by,
            description=command.description,
        )
        logger.info(f"Committed reservation {reservation.id} ({reservation.amount} credits) on {account.account_key}")


class ReleaseReservation(_ReservationAction):
    """Use Case: Return reserved credits to the pool"""

    failure_code = "RELEASE_RESERVATION_FAILED"

    async def _apply(self, command, account, reservation, now) -> None:
        await self.ledger.release(account, reservation, now, initiated_by=command.initiated_by)
        logger.info(f"Released reservation {reservation.id} ({reservation.amount} credits) on {account.account_key}")
