"""SQLAlchemy implementation of CreditTransactionRepository

Provides persistence for CreditTransaction entities with idempotency enforcement
via unique constraint on idempotency_key.
"""

from datetime import datetime
from typing import List, Optional, Tuple
from sqlmodel import select, func
from sqlmodel.ext.asyncio.session import AsyncSession
from credit_engine.app.repositories.credit_transaction_repository import CreditTransactionRepository
from credit_engine.domain.credit_transaction import CreditTransaction, TransactionType


class SqlAlchemyCreditTransactionRepository(CreditTransactionRepository):
    """
    SQLAlchemy implementation of CreditTransactionRepository

    Features:
    - Idempotency enforcement via unique idempotency_key constraint
    - Immutable append-only transactions
    - Per-account sequence ordering
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, transaction: CreditTransaction) -> CreditTransaction:
        """
        Append a credit transaction

        Raises:
            IntegrityError: If idempotency_key or (account_id, sequence) already exists
        """
        self.session.add(transaction)
        await self.session.flush()
        await self.session.refresh(transaction)
        return transaction

    async def get_by_idempotency_key(self, idempotency_key: str) -> Optional[CreditTransaction]:
        stmt = select(CreditTransaction).where(
            CreditTransaction.idempotency_key == idempotency_key
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, transaction_id: int) -> Optional[CreditTransaction]:
        stmt = select(CreditTransaction).where(CreditTransaction.id == transaction_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_account(
        self,
        account_id: int,
        transaction_type: Optional[TransactionType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[CreditTransaction], int]:
        conditions = [CreditTransaction.account_id == account_id]
        if transaction_type is not None:
            conditions.append(CreditTransaction.transaction_type == transaction_type)
        if start is not None:
            conditions.append(CreditTransaction.processed_at >= start)
        if end is not None:
            conditions.append(CreditTransaction.processed_at <= end)

        count_stmt = select(func.count()).select_from(CreditTransaction).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(CreditTransaction)
            .where(*conditions)
            .order_by(CreditTransaction.sequence.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def list_ledger(self, account_id: int) -> List[CreditTransaction]:
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.account_id == account_id)
            .order_by(CreditTransaction.sequence)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_in_period(
        self, account_id: int, start: datetime, end: datetime
    ) -> List[CreditTransaction]:
        stmt = (
            select(CreditTransaction)
            .where(
                CreditTransaction.account_id == account_id,
                CreditTransaction.processed_at >= start,
                CreditTransaction.processed_at < end,
            )
            .order_by(CreditTransaction.sequence)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
