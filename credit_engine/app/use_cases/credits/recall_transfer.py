"""RecallTransfer Use Case"""

import logging
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_transfer_repository import CreditTransferRepository
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.domain.base import utc_now
from credit_engine.domain.errors import CreditError, InvalidTransferState, TransferNotFound
from .dtos import RecallTransferCommandDTO, TransferDTO
from .transfer_workflow import TransferExecutor, transfer_to_dto

logger = logging.getLogger(__name__)


class RecallTransfer:
    """
    Use Case: Recall an executed temporary transfer

    Business Rules:
    1. Only approved, executed, temporary transfers before their recall
       deadline can be recalled
    2. The destination returns what it received (amount - fee); the fee is
       not refunded
    3. If the destination no longer holds the credits the recall fails and
       the transfer stays approved
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

    async def execute(self, command: RecallTransferCommandDTO) -> Result[TransferDTO]:
        try:
            transfer = await self.transfer_repo.get_by_id(command.transfer_id)
            if transfer is None:
                raise TransferNotFound(command.transfer_id)
            lock_keys = [transfer.source_account_key, transfer.destination_account_key]

            async def operation(attempt: int) -> TransferDTO:
                now = utc_now()
                current = await self.transfer_repo.get_by_id(command.transfer_id, for_update=True)
                if not current.is_recallable(now):
                    raise InvalidTransferState(
                        f"Transfer {current.id} cannot be recalled",
                        {
                            "transfer_id": current.id,
                            "status": current.status.value,
                            "is_temporary": current.is_temporary,
                            "recall_deadline": current.recall_deadline.isoformat() if current.recall_deadline else None,
                        },
                    )
                await self.executor.recall(current, now, command.recalled_by, command.reason)
                history = await self.transfer_repo.list_history(current.id)
                return transfer_to_dto(current, history)

            response = await self.runner.run(lock_keys, operation)
            logger.info(f"Transfer {command.transfer_id} recalled by {command.recalled_by}")
            return Return.ok(response)

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Recall of transfer {command.transfer_id} failed: {e}")
            return Return.err(
                Error(code="RECALL_TRANSFER_FAILED", message="Failed to recall transfer", reason=str(e))
            )
