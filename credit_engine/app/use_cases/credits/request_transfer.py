"""RequestTransfer Use Case

Creates a credit transfer between two accounts of one tenant and, when the
approval rules allow it, approves and executes it right away.
"""

import logging
from decimal import Decimal
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_transfer_repository import CreditTransferRepository
from credit_engine.app.repositories.transfer_approval_rule_repository import TransferApprovalRuleRepository
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.transfer_policy import evaluate_transfer
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_transfer import CreditTransfer, TransferStatus
from credit_engine.domain.errors import CreditError, TransferRuleViolation
from credit_engine.domain.money import floor_credits, to_credits
from .dtos import RequestTransferCommandDTO, TransferDTO
from .transfer_workflow import TransferExecutor, transfer_to_dto

logger = logging.getLogger(__name__)


class RequestTransfer:
    """
    Use Case: Request a credit transfer

    Business Rules:
    1. Source and destination are distinct accounts of the same tenant
    2. Approval rules for the source are evaluated in priority order;
       a restricted destination or an amount no rule covers is refused
    3. Auto-approved transfers execute immediately
    4. Fee = floor(amount x fee rate); the destination receives amount - fee
    5. Temporary transfers need a recall deadline in the future
    """

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        executor: TransferExecutor,
        hierarchy: HierarchyService,
        transfer_repo: CreditTransferRepository,
        rule_repo: TransferApprovalRuleRepository,
        fee_rate: Decimal = Decimal("0"),
        default_approval_level: int = 1,
    ):
        self.uow = uow
        self.runner = runner
        self.executor = executor
        self.hierarchy = hierarchy
        self.transfer_repo = transfer_repo
        self.rule_repo = rule_repo
        self.fee_rate = Decimal(str(fee_rate))
        self.default_approval_level = default_approval_level

    async def execute(self, command: RequestTransferCommandDTO) -> Result[TransferDTO]:
        try:
            # Step 1: Idempotent replay
            if command.idempotency_key:
                existing = await self.transfer_repo.get_by_idempotency_key(command.idempotency_key)
                if existing:
                    history = await self.transfer_repo.list_history(existing.id)
                    return Return.ok(transfer_to_dto(existing, history))

            # Step 2: Accounts
            await self.hierarchy.require_entity(command.tenant_id, command.source_entity_id)
            await self.hierarchy.require_entity(command.tenant_id, command.destination_entity_id)
            source_owner = await self.hierarchy.credit_owner(command.tenant_id, command.source_entity_id)
            destination_owner = await self.hierarchy.credit_owner(command.tenant_id, command.destination_entity_id)
            source_key = CreditAccount.key_for(command.tenant_id, source_owner)
            destination_key = CreditAccount.key_for(command.tenant_id, destination_owner)

            if source_key == destination_key:
                raise TransferRuleViolation(
                    "Source and destination draw on the same credit account",
                    {"account": source_key},
                )
            if command.is_temporary and command.recall_deadline <= utc_now():
                raise TransferRuleViolation(
                    "Recall deadline must be in the future",
                    {"recall_deadline": command.recall_deadline.isoformat()},
                )

            # Step 3: Approval rules
            amount = to_credits(command.amount)
            rules = await self.rule_repo.list_for_source(command.tenant_id, command.source_entity_id)
            decision = evaluate_transfer(
                rules,
                amount,
                command.destination_entity_id,
                command.requester_role,
                self.default_approval_level,
            )
            fee = floor_credits(amount * self.fee_rate)

            async def operation(attempt: int) -> TransferDTO:
                now = utc_now()
                if command.idempotency_key:
                    existing = await self.transfer_repo.get_by_idempotency_key(command.idempotency_key)
                    if existing:
                        history = await self.transfer_repo.list_history(existing.id)
                        return transfer_to_dto(existing, history)
                transfer = await self.transfer_repo.create(
                    CreditTransfer(
                        tenant_id=command.tenant_id,
                        source_entity_id=command.source_entity_id,
                        destination_entity_id=command.destination_entity_id,
                        source_account_key=source_key,
                        destination_account_key=destination_key,
                        requested_amount=amount,
                        transfer_fee=fee,
                        transfer_amount=to_credits(amount - fee),
                        selected_batches=list(command.selected_batches),
                        is_temporary=command.is_temporary,
                        recall_deadline=command.recall_deadline,
                        approval_required=not decision.auto_approve,
                        required_approval_level=decision.required_approval_level,
                        rule_id=decision.rule_id,
                        requested_by=command.requested_by,
                        requester_role=command.requester_role,
                        purpose=command.purpose,
                        description=command.description,
                        idempotency_key=command.idempotency_key,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await self.executor.record(transfer, None, TransferStatus.PENDING, now, command.requested_by)

                if decision.auto_approve:
                    transfer.approved_by = command.requested_by
                    transfer.approved_at = now
                    await self.executor.transition(
                        transfer, TransferStatus.APPROVED, now, command.requested_by, notes="auto-approved"
                    )
                    await self.executor.execute(transfer, now, attempt, actor_id=command.requested_by)

                history = await self.transfer_repo.list_history(transfer.id)
                return transfer_to_dto(transfer, history)

            # Step 4: Create (and maybe execute) under both account locks
            response = await self.runner.run([source_key, destination_key], operation)
            logger.info(
                f"Transfer {response.transfer_id} requested: {amount} from {source_key} to {destination_key} "
                f"({response.status})"
            )
            return Return.ok(response)

        except CreditError as e:
            await self.uow.rollback()
            logger.warning(f"Transfer request by {command.requested_by} refused: {e.code} {e.message}")
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Transfer request by {command.requested_by} failed: {e}")
            return Return.err(
                Error(code="REQUEST_TRANSFER_FAILED", message="Failed to request transfer", reason=str(e))
            )
