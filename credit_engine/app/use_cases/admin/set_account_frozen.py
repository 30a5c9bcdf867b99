"""SetAccountFrozen Use Case

Freezes or unfreezes the account an entity draws on. A frozen account
refuses consumption, reservations and outgoing transfers but still accepts
credits and expiry.
"""

import logging
from libs.result import Result, Return, Error
from credit_engine.app.services.entity_hierarchy import HierarchyService
from credit_engine.app.services.ledger_runner import LedgerTransactionRunner
from credit_engine.app.services.ledger_store import LedgerStore
from credit_engine.app.services.unit_of_work import UnitOfWork
from credit_engine.app.use_cases.credits.dtos import AccountStatusDTO, SetAccountFrozenCommandDTO
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.errors import CreditError

logger = logging.getLogger(__name__)


class SetAccountFrozen:

    def __init__(
        self,
        uow: UnitOfWork,
        runner: LedgerTransactionRunner,
        ledger: LedgerStore,
        hierarchy: HierarchyService,
    ):
        self.uow = uow
        self.runner = runner
        self.ledger = ledger
        self.hierarchy = hierarchy

    async def execute(self, command: SetAccountFrozenCommandDTO) -> Result[AccountStatusDTO]:
        try:
            await self.hierarchy.require_entity(command.tenant_id, command.entity_id)
            owner_id = await self.hierarchy.credit_owner(command.tenant_id, command.entity_id)
            account_key = CreditAccount.key_for(command.tenant_id, owner_id)

            async def operation(attempt: int) -> AccountStatusDTO:
                now = utc_now()
                account = await self.ledger.load_account(command.tenant_id, owner_id, now)
                account.is_frozen = command.frozen
                account.frozen_reason = command.reason if command.frozen else None
                account = await self.ledger.account_repo.save(account)
                return AccountStatusDTO(
                    tenant_id=account.tenant_id,
                    entity_id=account.entity_id,
                    account_key=account.account_key,
                    is_frozen=account.is_frozen,
                    frozen_reason=account.frozen_reason,
                    updated_at=account.updated_at,
                )

            response = await self.runner.run([account_key], operation)
            logger.warning(
                f"Account {account_key} {'frozen' if command.frozen else 'unfrozen'}"
                f"{f' by {command.actor_id}' if command.actor_id else ''}"
                f"{f': {command.reason}' if command.frozen and command.reason else ''}"
            )
            return Return.ok(response)

        except CreditError as e:
            await self.uow.rollback()
            return Return.err(e.to_error())
        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Changing frozen state of {command.tenant_id}/{command.entity_id} failed: {e}")
            return Return.err(
                Error(code="SET_ACCOUNT_FROZEN_FAILED", message="Failed to change account state", reason=str(e))
            )
