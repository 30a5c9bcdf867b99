"""Transfer workflow building blocks

State-change recording and ledger execution shared by the transfer use
cases.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from credit_engine.app.repositories.credit_transfer_repository import CreditTransferRepository
from credit_engine.app.services.alert_recorder import AlertRecorder
from credit_engine.app.services.ledger_store import BatchDraw, CreditPortion, LedgerStore
from credit_engine.domain.credit_batch import BatchSource
from credit_engine.domain.credit_transaction import TransactionType
from credit_engine.domain.credit_transfer import CreditTransfer, TransferHistory, TransferStatus
from credit_engine.domain.errors import AccountFrozen, InsufficientCredits, TransferRuleViolation
from credit_engine.domain.money import to_credits
from .dtos import TransferDTO, TransferHistoryDTO

logger = logging.getLogger(__name__)

# Execution failures that end a transfer in FAILED instead of aborting the call
EXECUTION_FAILURES = (InsufficientCredits, AccountFrozen, TransferRuleViolation)


def portions_after_fee(draws: Sequence[BatchDraw], fee: Decimal) -> List[CreditPortion]:
    """
    Destination batches for a transfer

    Each source draw keeps its expiry. The fee is trimmed from the
    latest-expiring draws so the destination gets the credits that last
    the shortest time.
    """
    remaining_fee = to_credits(fee)
    amounts = [draw.amount for draw in draws]
    for index in range(len(amounts) - 1, -1, -1):
        if remaining_fee <= 0:
            break
        cut = min(amounts[index], remaining_fee)
        amounts[index] = to_credits(amounts[index] - cut)
        remaining_fee -= cut

    return [
        CreditPortion(amount=amount, expiry_date=draw.expiry_date)
        for draw, amount in zip(draws, amounts)
        if amount > 0
    ]


def transfer_to_dto(transfer: CreditTransfer, history: Optional[List[TransferHistory]] = None) -> TransferDTO:
    return TransferDTO(
        transfer_id=transfer.id,
        tenant_id=transfer.tenant_id,
        source_entity_id=transfer.source_entity_id,
        destination_entity_id=transfer.destination_entity_id,
        requested_amount=transfer.requested_amount,
        transfer_fee=transfer.transfer_fee,
        transfer_amount=transfer.transfer_amount,
        selected_batches=list(transfer.selected_batches or []),
        is_temporary=transfer.is_temporary,
        recall_deadline=transfer.recall_deadline,
        status=transfer.status.value,
        approval_required=transfer.approval_required,
        required_approval_level=transfer.required_approval_level,
        requested_by=transfer.requested_by,
        approved_by=transfer.approved_by,
        rejected_by=transfer.rejected_by,
        rejection_reason=transfer.rejection_reason,
        failure_reason=transfer.failure_reason,
        executed_at=transfer.executed_at,
        completed_at=transfer.completed_at,
        recalled_at=transfer.recalled_at,
        created_at=transfer.created_at,
        history=[
            TransferHistoryDTO(
                old_status=entry.old_status.value if entry.old_status else None,
                new_status=entry.new_status.value,
                actor_id=entry.actor_id,
                notes=entry.notes,
                created_at=entry.created_at,
            )
            for entry in (history or [])
        ],
    )


class TransferExecutor:
    """
    Moves a transfer's credits and records its state changes

    Every method runs inside a LedgerTransactionRunner holding both account
    locks; nothing here commits.
    """

    def __init__(self, ledger: LedgerStore, transfer_repo: CreditTransferRepository, alerts: AlertRecorder):
        self.ledger = ledger
        self.transfer_repo = transfer_repo
        self.alerts = alerts

    async def transition(
        self,
        transfer: CreditTransfer,
        new_status: TransferStatus,
        now: datetime,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        old_status = transfer.transition_to(new_status, now)
        await self.transfer_repo.save(transfer)
        await self.record(transfer, old_status, new_status, now, actor_id, notes)

    async def record(
        self,
        transfer: CreditTransfer,
        old_status: Optional[TransferStatus],
        new_status: TransferStatus,
        now: datetime,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        await self.transfer_repo.add_history(
            TransferHistory(
                transfer_id=transfer.id,
                old_status=old_status,
                new_status=new_status,
                actor_id=actor_id,
                notes=notes,
                created_at=now,
            )
        )
        if old_status is not None:
            await self.alerts.transfer_state_changed(transfer, old_status, new_status)
        logger.info(
            f"Transfer {transfer.id}: {old_status.value if old_status else 'new'} -> {new_status.value}"
            f"{f' by {actor_id}' if actor_id else ''}"
        )

    async def execute(self, transfer: CreditTransfer, now: datetime, attempt: int = 0,
                      actor_id: Optional[str] = None) -> bool:
        """
        Debit the source and credit the destination of an approved transfer

        A second call for an executed transfer is a no-op. On a retry
        (``attempt`` > 0) the batch selection is dropped and the remaining
        pool is used soonest-expiring first.

        Returns:
            True if credits moved, False if the transfer was already executed
            or ended in FAILED
        """
        if transfer.status != TransferStatus.APPROVED or transfer.executed_at is not None:
            logger.info(f"Transfer {transfer.id} already executed or not approved ({transfer.status.value}); skipping")
            return False

        source = await self.ledger.load_account_by_key(transfer.source_account_key, now)
        destination = await self.ledger.load_account_by_key(transfer.destination_account_key, now)
        batch_ids = list(transfer.selected_batches or []) if attempt == 0 else None

        try:
            debit = await self.ledger.transfer_out(
                source,
                transfer.requested_amount,
                now,
                transfer_id=transfer.id,
                batch_ids=batch_ids,
                initiated_by=actor_id,
                description=f"Transfer {transfer.id} to {destination.account_key}",
            )
        except EXECUTION_FAILURES as e:
            transfer.failure_reason = e.message
            await self.transition(transfer, TransferStatus.FAILED, now, actor_id, notes=e.code)
            logger.warning(f"Transfer {transfer.id} failed: {e.message}")
            return False

        portions = portions_after_fee(debit.draws, transfer.transfer_fee)
        if portions:
            await self.ledger.credit_portions(
                destination,
                portions,
                now,
                BatchSource.TRANSFER,
                transaction_type=TransactionType.TRANSFER_IN,
                source_reference=f"transfer:{transfer.id}",
                transfer_id=transfer.id,
                initiated_by=actor_id,
                description=f"Transfer {transfer.id} from {source.account_key}",
            )

        transfer.executed_at = now
        transfer.updated_at = now
        await self.transfer_repo.save(transfer)

        if not transfer.is_temporary:
            transfer.completed_at = now
            await self.transition(transfer, TransferStatus.COMPLETED, now, actor_id)

        logger.info(
            f"Transfer {transfer.id} moved {transfer.requested_amount} from {source.account_key} "
            f"to {destination.account_key} (fee {transfer.transfer_fee})"
        )
        return True

    async def recall(self, transfer: CreditTransfer, now: datetime, actor_id: Optional[str] = None,
                     notes: Optional[str] = None) -> None:
        """
        Reverse an executed temporary transfer

        The destination gives back what it received; the source gets the
        credits as new transfer batches keeping the destination batches'
        expiry.

        Raises:
            InsufficientCredits: The destination has already spent the credits
        """
        source = await self.ledger.load_account_by_key(transfer.source_account_key, now)
        destination = await self.ledger.load_account_by_key(transfer.destination_account_key, now)

        if transfer.transfer_amount > 0:
            debit = await self.ledger.transfer_out(
                destination,
                transfer.transfer_amount,
                now,
                transfer_id=transfer.id,
                check_frozen=False,
                initiated_by=actor_id,
                description=f"Recall of transfer {transfer.id}",
            )
            await self.ledger.credit_portions(
                source,
                [CreditPortion(amount=draw.amount, expiry_date=draw.expiry_date) for draw in debit.draws],
                now,
                BatchSource.TRANSFER,
                transaction_type=TransactionType.TRANSFER_IN,
                source_reference=f"recall:{transfer.id}",
                transfer_id=transfer.id,
                initiated_by=actor_id,
                description=f"Recall of transfer {transfer.id}",
            )

        transfer.recalled_at = now
        await self.transition(transfer, TransferStatus.RECALLED, now, actor_id, notes)
