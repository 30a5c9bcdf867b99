"""SQLAlchemy implementation of CreditAccountRepository

Provides persistence for CreditAccount entities with pessimistic locking support
to prevent race conditions during concurrent credit operations.
"""

from typing import List, Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount


class SqlAlchemyCreditAccountRepository(CreditAccountRepository):
    """
    SQLAlchemy implementation of CreditAccountRepository

    Features:
    - Pessimistic locking via SELECT FOR UPDATE
    - Lookup by derived account key
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_key(self, account_key: str, for_update: bool = False) -> Optional[CreditAccount]:
        """
        Retrieve account by key with optional row-level locking

        Args:
            account_key: Tenant/entity account key
            for_update: If True, locks the row with SELECT FOR UPDATE (prevents concurrent modifications)

        Returns:
            CreditAccount if found, None otherwise
        """
        stmt = select(CreditAccount).where(CreditAccount.account_key == account_key)

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, account_id: int, for_update: bool = False) -> Optional[CreditAccount]:
        stmt = select(CreditAccount).where(CreditAccount.id == account_id)

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, account: CreditAccount) -> CreditAccount:
        self.session.add(account)
        await self.session.flush()
        await self.session.refresh(account)
        return account

    async def save(self, account: CreditAccount) -> CreditAccount:
        account.updated_at = utc_now()
        self.session.add(account)
        await self.session.flush()
        return account

    async def get_all(self) -> List[CreditAccount]:
        stmt = select(CreditAccount).order_by(CreditAccount.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
