"""PurchaseCredits Use Case

Adds a batch of credits to an account. Covers purchases delivered by the
payment collaborator as well as promotional, seasonal, adjustment and
refund grants.
"""

import logging
from datetime import datetime
from typing import Optional
from libs.result import Result, Return, Error
from credit_engine.app.repositories.credit_batch_repository import CreditBatchRepository
from credit_engine.app.repositories.credit_transaction_repository import CreditTransactionRepository
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.ledger_store import LedgerStore
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_batch import BatchSource
from credit_engine.domain.credit_transaction import CreditTransaction
from credit_engine.domain.errors import CreditError
from .dtos import CreditGrantResponseDTO, PurchaseCompletedEventDTO, PurchaseCreditsCommandDTO

logger = logging.getLogger(__name__)


def payment_idempotency_key(payment_reference: str) -> str:
    return f"payment:{payment_reference}"


class PurchaseCredits:
    """
    Use Case: Add credits to an account

    Business Rules:
    1. Idempotency: Same idempotency_key (or payment reference) returns the
       original grant
    2. Credits go to the account that pays for the entity
    3. Without an expiry date the account's default expiry applies
    4. Outstanding overage debt is settled before a new batch is filled
    5. Frozen accounts still accept credits
    """

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        hierarchy: HierarchyService,
        transaction_repo: CreditTransactionRepository,
        batch_repo: CreditBatchRepository,
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.hierarchy = hierarchy
        self.transaction_repo = transaction_repo
        self.batch_repo = batch_repo

    async def execute(self, command: PurchaseCreditsCommandDTO) -> Result[CreditGrantResponseDTO]:
        idempotency_key = command.idempotency_key
        if idempotency_key is None and command.payment_reference:
            idempotency_key = payment_idempotency_key(command.payment_reference)

        try:
            # Step 1: Idempotent replay
            if idempotency_key:
                existing = await self.transaction_repo.get_by_idempotency_key(idempotency_key)
                if existing:
                    logger.info(f"Credit grant {idempotency_key} already applied as transaction {existing.id}")
                    return Return.ok(await self._replay_dto(existing, command.source))

            if command.expiry_date is not None and command.expiry_date <= utc_now():
                return Return.err(
                    Error(
                        code="INVALID_EXPIRY_DATE",
                        message="Expiry date must be in the future",
                        reason=f"expiry_date={command.expiry_date.isoformat()}",
                    )
                )

            # Step 2: Paying account
            await self.hierarchy.require_entity(command.tenant_id, command.entity_id)
            owner_id = await self.hierarchy.credit_owner(command.tenant_id, command.entity_id)
            account_key = CreditAccount.key_for(command.tenant_id, owner_id)

            async def operation(attempt: int) -> CreditGrantResponseDTO:
                now = utc_now()
                account = await self.ledger.load_account(command.tenant_id, owner_id, now)
                # A redelivered event may have been applied while we waited for the lock
                if idempotency_key:
                    existing = await self.transaction_repo.get_by_idempotency_key(idempotency_key)
                    if existing:
                        return await self._replay_dto(existing, command.source)
                expiry_date = command.expiry_date or self.ledger.default_expiry(account, now)
                transaction, batch = await self.ledger.credit(
                    account,
                    command.amount,
                    now,
                    command.source,
                    expiry_date=expiry_date,
                    source_reference=command.payment_reference,
                    payment_reference=command.payment_reference,
                    description=command.description,
                    initiated_by=command.initiated_by,
                    idempotency_key=idempotency_key,
                )
                return self._to_response_dto(transaction, batch.id if batch else None, expiry_date, command.source)

            # Step 3: Locked credit, commit
            response = await self.runner.run([account_key], operation)
            logger.info(
                f"Added {command.amount} {command.source.value} credits to {account_key} "
                f"(transaction {response.transaction_id})"
            )
            return Return.ok(response)

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Credit grant for {command.tenant_id}/{command.entity_id} failed: {e}")
            return Return.err(
                Error(
                    code="PURCHASE_CREDITS_FAILED",
                    message="Failed to add credits",
                    reason=str(e),
                )
            )

    async def _replay_dto(self, transaction: CreditTransaction, source: BatchSource) -> CreditGrantResponseDTO:
        expiry_date: Optional[datetime] = None
        if transaction.batch_id is not None:
            batches = await self.batch_repo.get_by_ids([transaction.batch_id])
            expiry_date = batches[0].expiry_date if batches else None
        return self._to_response_dto(transaction, transaction.batch_id, expiry_date, source)

    @staticmethod
    def _to_response_dto(
        transaction: CreditTransaction,
        batch_id: Optional[int],
        expiry_date: Optional[datetime],
        source: BatchSource,
    ) -> CreditGrantResponseDTO:
        return CreditGrantResponseDTO(
            transaction_id=transaction.id,
            batch_id=batch_id,
            tenant_id=transaction.tenant_id,
            account_entity_id=transaction.entity_id,
            amount=transaction.amount,
            previous_balance=transaction.previous_balance,
            new_balance=transaction.new_balance,
            expiry_date=expiry_date,
            source=source,
            payment_reference=transaction.payment_reference,
            processed_at=transaction.processed_at,
        )


class PurchaseCompleted:
    """
    Use Case: Payment collaborator reports a completed purchase

    Idempotent on the payment reference: redelivered events return the
    original grant without adding credits twice.
    """

    def __init__(self, purchase_credits: PurchaseCredits):
        self.purchase_credits = purchase_credits

    async def execute(self, event: PurchaseCompletedEventDTO) -> Result[CreditGrantResponseDTO]:
        return await self.purchase_credits.execute(
            PurchaseCreditsCommandDTO(
                tenant_id=event.tenant_id,
                entity_id=event.entity_id,
                amount=event.amount,
                expiry_date=event.expiry_date,
                source=BatchSource.PURCHASE,
                payment_reference=event.payment_reference,
                idempotency_key=payment_idempotency_key(event.payment_reference),
                initiated_by="payment-webhook",
                description=f"Purchase {event.payment_reference}",
            )
        )
