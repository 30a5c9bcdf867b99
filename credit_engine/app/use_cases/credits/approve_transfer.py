"""ApproveTransfer Use Case

Approves a pending transfer and executes it.
"""

import logging
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_transfer_repository import CreditTransferRepository
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.transfer_policy import check_approver
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_transfer import TransferStatus
from credit_engine.domain.errors import CreditError, InvalidTransferState, TransferNotFound
from .dtos import ApproveTransferCommandDTO, TransferDTO
from .transfer_workflow import TransferExecutor, transfer_to_dto

logger = logging.getLogger(__name__)


class ApproveTransfer:
    """
    Use Case: Approve a pending transfer

    Business Rules:
    1. Only pending transfers can be approved
    2. The approver must hold the required approval level and must not be
       the requester
    3. Approval executes the transfer; a source-side failure moves it to
       FAILED without crediting the destination
    4. Approving an already executed transfer again changes nothing
    """

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        executor: TransferExecutor,
        transfer_repo: CreditTransferRepository,
    ):
        self.uow = uow
        self.runner = runner
        self.executor = executor
        self.transfer_repo = transfer_repo

    async def execute(self, command: ApproveTransferCommandDTO) -> Result[TransferDTO]:
        try:
            transfer = await self.transfer_repo.get_by_id(command.transfer_id)
            if transfer is None:
                raise TransferNotFound(command.transfer_id)
            lock_keys = [transfer.source_account_key, transfer.destination_account_key]

            async def operation(attempt: int) -> TransferDTO:
                now = utc_now()
                current = await self.transfer_repo.get_by_id(command.transfer_id, for_update=True)

                already_approved = (
                    current.status in (TransferStatus.APPROVED, TransferStatus.COMPLETED)
                    and current.approved_by == command.approver_id
                    and current.executed_at is not None
                )
                if not already_approved:
                    if current.status != TransferStatus.PENDING:
                        raise InvalidTransferState(
                            f"Transfer {current.id} is {current.status.value}, not pending",
                            {"transfer_id": current.id, "status": current.status.value},
                        )
                    check_approver(current, command.approver_id, command.approver_level)
                    current.approved_by = command.approver_id
                    current.approved_at = now
                    await self.executor.transition(
                        current, TransferStatus.APPROVED, now, command.approver_id, command.notes
                    )
                    await self.executor.execute(current, now, attempt, actor_id=command.approver_id)

                history = await self.transfer_repo.list_history(current.id)
                return transfer_to_dto(current, history)

            return Return.ok(await self.runner.run(lock_keys, operation))

        except CreditError as e:
            await self.uow.rollback()
            logger.warning(f"Approval of transfer {command.transfer_id} by {command.approver_id} refused: {e.code}")
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Approval of transfer {command.transfer_id} failed: {e}")
            return Return.err(
                Error(code="APPROVE_TRANSFER_FAILED", message="Failed to approve transfer", reason=str(e))
            )
