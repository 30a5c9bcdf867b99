"""RejectTransfer Use Case"""

import logging
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_transfer_repository import CreditTransferRepository
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_transfer import TransferStatus
from credit_engine.domain.errors import CreditError, TransferNotFound
from .dtos import RejectTransferCommandDTO, TransferDTO
from .transfer_workflow import TransferExecutor, transfer_to_dto

logger = logging.getLogger(__name__)


class RejectTransfer:
    """Use Case: Reject a pending transfer; no credits move"""

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

    async def execute(self, command: RejectTransferCommandDTO) -> Result[TransferDTO]:
        try:
            transfer = await self.transfer_repo.get_by_id(command.transfer_id)
            if transfer is None:
                raise TransferNotFound(command.transfer_id)
            lock_keys = [transfer.source_account_key, transfer.destination_account_key]

            async def operation(attempt: int) -> TransferDTO:
                now = utc_now()
                current = await self.transfer_repo.get_by_id(command.transfer_id, for_update=True)
                current.rejected_by = command.rejected_by
                current.rejected_at = now
                current.rejection_reason = command.reason
                await self.executor.transition(
                    current, TransferStatus.REJECTED, now, command.rejected_by, command.reason
                )
                history = await self.transfer_repo.list_history(current.id)
                return transfer_to_dto(current, history)

            return Return.ok(await self.runner.run(lock_keys, operation))

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Rejection of transfer {command.transfer_id} failed: {e}")
            return Return.err(
                Error(code="REJECT_TRANSFER_FAILED", message="Failed to reject transfer", reason=str(e))
            )
