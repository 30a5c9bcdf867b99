"""Ledger Store (Batch Pool)

Applies every balance change of a credit account: consumption against the
FIFO-by-expiry batch pool, credits that create batches, reservations that
hold batch credits, and batch expiry. Each change appends exactly one
CreditTransaction per balance-affecting event and advances the account's
sequence counter.

The store never commits. Callers run it inside a LedgerTransactionRunner
that holds the account locks and owns the unit of work, so any exception
raised here discards the whole change.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from credit_engine.app.repositories.credit_account_repository import CreditAccountRepository
from credit_engine.app.repositories.credit_batch_repository import CreditBatchRepository
from credit_engine.app.repositories.credit_reservation_repository import CreditReservationRepository
from credit_engine.app.repositories.credit_transaction_repository import CreditTransactionRepository
from credit_engine.app.services.alert_recorder import AlertRecorder
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_batch import BatchSource, CreditBatch
from credit_engine.domain.credit_reservation import CreditReservation, ReservationStatus
from credit_engine.domain.credit_transaction import CreditTransaction, TransactionType
from credit_engine.domain.errors import (
    AccountFrozen,
    ExpiredBatchReferenced,
    InsufficientCredits,
    InvalidReservationState,
    TransferRuleViolation,
)
from credit_engine.domain.money import ZERO, to_credits
from credit_engine.domain.policies import OveragePolicy, PeriodType, period_start

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchDraw:
    """Credits taken from one batch by a debit"""
    batch_id: int
    amount: Decimal
    expiry_date: Optional[datetime]


@dataclass(frozen=True)
class CreditPortion:
    """Credits to add as one batch"""
    amount: Decimal
    expiry_date: Optional[datetime]


@dataclass
class DebitOutcome:
    transaction: CreditTransaction
    draws: List[BatchDraw]
    overage: Decimal


def plan_draws(batches: Iterable[CreditBatch], amount: Decimal) -> Tuple[List[Tuple[CreditBatch, Decimal]], Decimal]:
    """
    Take ``amount`` from batches in the given order

    Returns:
        Tuple of ([(batch, amount taken)], shortfall left unsatisfied)
    """
    remaining = amount
    plan: List[Tuple[CreditBatch, Decimal]] = []
    for batch in batches:
        if remaining <= 0:
            break
        if batch.remaining_amount <= 0:
            continue
        take = min(batch.remaining_amount, remaining)
        plan.append((batch, take))
        remaining -= take
    return plan, to_credits(remaining)


def settle_debt(debt: Decimal, amounts: Sequence[Decimal]) -> List[Decimal]:
    """Reduce incoming amounts, in order, by an outstanding overage debt"""
    settled = []
    for amount in amounts:
        paid = min(debt, amount)
        debt -= paid
        settled.append(to_credits(amount - paid))
    return settled


def _expiry_sort_key(expiry_date: Optional[datetime]) -> Tuple[bool, datetime]:
    return (expiry_date is None, expiry_date or datetime.max)


class LedgerStore:

    def __init__(
        self,
        account_repo: CreditAccountRepository,
        batch_repo: CreditBatchRepository,
        transaction_repo: CreditTransactionRepository,
        reservation_repo: CreditReservationRepository,
        alerts: AlertRecorder,
        default_expiry_days: int = 365,
    ):
        self.account_repo = account_repo
        self.batch_repo = batch_repo
        self.transaction_repo = transaction_repo
        self.reservation_repo = reservation_repo
        self.alerts = alerts
        self.default_expiry_days = default_expiry_days

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_account(self, tenant_id: str, entity_id: Optional[str]) -> Optional[CreditAccount]:
        return await self.account_repo.get_by_key(CreditAccount.key_for(tenant_id, entity_id))

    async def load_account(self, tenant_id: str, entity_id: Optional[str], now: datetime) -> CreditAccount:
        """Lock the account row, creating the account on first use"""
        account_key = CreditAccount.key_for(tenant_id, entity_id)
        account = await self.account_repo.get_by_key(account_key, for_update=True)
        if account is None:
            account = await self.account_repo.create(
                CreditAccount(
                    account_key=account_key,
                    tenant_id=tenant_id,
                    entity_id=entity_id,
                    period_start=period_start(now, PeriodType.MONTH),
                    created_at=now,
                    updated_at=now,
                )
            )
            logger.info(f"Created credit account {account_key}")
        return account

    async def load_account_by_key(self, account_key: str, now: datetime) -> CreditAccount:
        tenant_id, entity_id = CreditAccount.parse_key(account_key)
        return await self.load_account(tenant_id, entity_id, now)

    def default_expiry(self, account: CreditAccount, now: datetime) -> Optional[datetime]:
        """Expiry for credits added without an explicit date"""
        if account.policy_json:
            policy = account.get_policy().expiry
            if not policy.enabled:
                return None
            return now + timedelta(days=policy.default_days)
        return now + timedelta(days=self.default_expiry_days)

    def _roll_period(self, account: CreditAccount, now: datetime) -> None:
        current = period_start(now, PeriodType.MONTH)
        if account.period_start != current:
            account.period_start = current
            account.current_period_consumed = ZERO

    def _roll_overage_period(self, account: CreditAccount, policy: OveragePolicy, now: datetime) -> None:
        current = period_start(now, policy.overage_period)
        if account.overage_period_start != current:
            account.overage_period_start = current
            account.overage_used = ZERO

    async def _append(
        self,
        account: CreditAccount,
        transaction_type: TransactionType,
        amount: Decimal,
        previous_balance: Decimal,
        new_balance: Decimal,
        now: datetime,
        **fields,
    ) -> CreditTransaction:
        account.sequence += 1
        transaction = CreditTransaction(
            account_id=account.id,
            tenant_id=account.tenant_id,
            entity_id=account.entity_id,
            sequence=account.sequence,
            transaction_type=transaction_type,
            amount=to_credits(amount),
            previous_balance=previous_balance,
            new_balance=new_balance,
            processed_at=now,
            **fields,
        )
        return await self.transaction_repo.create(transaction)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def expire_due(self, account: CreditAccount, now: datetime) -> List[CreditTransaction]:
        """Zero every batch of the account whose expiry has passed"""
        batches = await self.batch_repo.list_due(account.id, now, for_update=True)
        if not batches:
            return []

        start_balance = account.available_credits
        transactions = []
        for batch in batches:
            expired = batch.remaining_amount
            batch.remaining_amount = ZERO
            batch.expired_amount = to_credits(batch.expired_amount + expired)
            batch.is_expired = True
            batch.expired_at = now
            await self.batch_repo.save(batch)

            before = account.available_credits
            account.available_credits = to_credits(before - expired)
            account.total_expired = to_credits(account.total_expired + expired)
            transactions.append(
                await self._append(
                    account,
                    TransactionType.EXPIRY,
                    expired,
                    before,
                    account.available_credits,
                    now,
                    batch_id=batch.id,
                    description=f"Batch {batch.id} expired",
                )
            )
            logger.info(f"Expired {expired} credits of batch {batch.id} on account {account.account_key}")

        await self.account_repo.save(account)
        await self.alerts.check_low_balance(account, start_balance, account.available_credits)
        return transactions

    # ------------------------------------------------------------------
    # Debits
    # ------------------------------------------------------------------

    def _overage_permitted(
        self, account: CreditAccount, shortfall: Decimal, policy: Optional[OveragePolicy], now: datetime
    ) -> bool:
        if policy is None or not policy.allow_overage:
            return False
        self._roll_overage_period(account, policy, now)
        if policy.overage_limit is None:
            return True
        limit = to_credits(policy.overage_limit)
        return (
            account.overage_used + shortfall <= limit
            and account.overage_debt + shortfall <= limit
        )

    async def _selected_batches(self, account: CreditAccount, batch_ids: List[int], now: datetime) -> List[CreditBatch]:
        batches = await self.batch_repo.get_by_ids(batch_ids, for_update=True)
        found = {batch.id: batch for batch in batches}
        for batch_id in batch_ids:
            batch = found.get(batch_id)
            if batch is None or batch.account_id != account.id:
                raise TransferRuleViolation(
                    f"Batch {batch_id} does not belong to account {account.account_key}",
                    {"batch_id": batch_id, "account": account.account_key},
                )
            if batch.is_expired or batch.is_due(now):
                raise ExpiredBatchReferenced(batch_id)
        return batches

    async def _debit(
        self,
        account: CreditAccount,
        amount: Decimal,
        now: datetime,
        transaction_type: TransactionType,
        overage_policy: Optional[OveragePolicy] = None,
        batch_ids: Optional[List[int]] = None,
        check_frozen: bool = True,
        **fields,
    ) -> DebitOutcome:
        amount = to_credits(amount)
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive, got {amount}")
        if check_frozen and account.is_frozen:
            raise AccountFrozen(account.account_key, account.frozen_reason)

        await self.expire_due(account, now)

        if batch_ids:
            pool = await self._selected_batches(account, batch_ids, now)
        else:
            pool = await self.batch_repo.list_pool(account.id, now, for_update=True)

        plan, shortfall = plan_draws(pool, amount)
        overage = ZERO
        if shortfall > 0:
            if batch_ids or not self._overage_permitted(account, shortfall, overage_policy, now):
                logger.warning(
                    f"Insufficient credits on {account.account_key}: required={amount}, shortfall={shortfall}"
                )
                raise InsufficientCredits(account.account_key, amount, to_credits(amount - shortfall), shortfall)
            overage = shortfall

        for batch, take in plan:
            batch.remaining_amount = to_credits(batch.remaining_amount - take)
            await self.batch_repo.save(batch)

        before = account.available_credits
        account.available_credits = to_credits(before - amount)
        if transaction_type == TransactionType.CONSUMPTION:
            self._roll_period(account, now)
            account.total_consumed = to_credits(account.total_consumed + amount)
            account.current_period_consumed = to_credits(account.current_period_consumed + amount)
        elif transaction_type == TransactionType.TRANSFER_OUT:
            account.total_transferred_out = to_credits(account.total_transferred_out + amount)
        if overage > 0:
            account.overage_used = to_credits(account.overage_used + overage)

        transaction = await self._append(
            account,
            transaction_type,
            amount,
            before,
            account.available_credits,
            now,
            batch_id=plan[0][0].id if len(plan) == 1 else None,
            **fields,
        )
        await self.account_repo.save(account)

        await self.alerts.check_low_balance(account, before, account.available_credits)
        if overage > 0:
            logger.warning(f"Overage of {overage} on {account.account_key} (period total {account.overage_used})")
            await self.alerts.overage_triggered(account, overage, overage_policy.overage_limit)

        draws = [BatchDraw(batch.id, take, batch.expiry_date) for batch, take in plan]
        return DebitOutcome(transaction=transaction, draws=draws, overage=overage)

    async def consume(
        self,
        account: CreditAccount,
        amount: Decimal,
        now: datetime,
        operation_code: Optional[str] = None,
        overage_policy: Optional[OveragePolicy] = None,
        description: Optional[str] = None,
        initiated_by: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> DebitOutcome:
        """
        Consume credits soonest-expiring first

        Raises:
            AccountFrozen: Account is frozen
            InsufficientCredits: Pool plus permitted overage cannot cover the amount
        """
        return await self._debit(
            account,
            amount,
            now,
            TransactionType.CONSUMPTION,
            overage_policy=overage_policy,
            operation_code=operation_code,
            description=description,
            initiated_by=initiated_by,
            idempotency_key=idempotency_key,
        )

    async def transfer_out(
        self,
        account: CreditAccount,
        amount: Decimal,
        now: datetime,
        transfer_id: int,
        batch_ids: Optional[List[int]] = None,
        check_frozen: bool = True,
        description: Optional[str] = None,
        initiated_by: Optional[str] = None,
    ) -> DebitOutcome:
        """
        Take credits out of an account for a transfer (never into overage)

        Raises:
            ExpiredBatchReferenced: A selected batch has expired
            InsufficientCredits: Selected batches or pool cannot cover the amount
        """
        return await self._debit(
            account,
            amount,
            now,
            TransactionType.TRANSFER_OUT,
            batch_ids=batch_ids,
            check_frozen=check_frozen,
            transfer_id=transfer_id,
            description=description,
            initiated_by=initiated_by,
        )

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------

    async def credit_portions(
        self,
        account: CreditAccount,
        portions: Sequence[CreditPortion],
        now: datetime,
        source: BatchSource,
        transaction_type: Optional[TransactionType] = None,
        source_reference: Optional[str] = None,
        **fields,
    ) -> Tuple[CreditTransaction, List[CreditBatch]]:
        """
        Add credits as one batch per portion, appending a single transaction

        Outstanding overage debt is settled first, from the soonest-expiring
        portion, so only the remainder becomes batch credits.
        """
        ordered = sorted(portions, key=lambda p: _expiry_sort_key(p.expiry_date))
        amounts = [to_credits(p.amount) for p in ordered]
        total = to_credits(sum(amounts, ZERO))
        if total <= 0:
            raise ValueError(f"Credit amount must be positive, got {total}")

        settled = settle_debt(account.overage_debt, amounts)
        batches: List[CreditBatch] = []
        for portion, batch_amount in zip(ordered, settled):
            if batch_amount <= 0:
                continue
            batches.append(
                await self.batch_repo.create(
                    CreditBatch(
                        account_id=account.id,
                        amount=batch_amount,
                        remaining_amount=batch_amount,
                        expiry_date=portion.expiry_date,
                        source=source,
                        source_reference=source_reference,
                        created_at=now,
                    )
                )
            )

        before = account.available_credits
        account.available_credits = to_credits(before + total)
        if source == BatchSource.PURCHASE:
            account.total_purchased = to_credits(account.total_purchased + total)

        transaction = await self._append(
            account,
            transaction_type or source.transaction_type,
            total,
            before,
            account.available_credits,
            now,
            batch_id=batches[0].id if len(batches) == 1 else None,
            **fields,
        )
        await self.account_repo.save(account)

        if before < 0:
            logger.info(f"Settled {min(-before, total)} overage debt on {account.account_key}")
        return transaction, batches

    async def credit(
        self,
        account: CreditAccount,
        amount: Decimal,
        now: datetime,
        source: BatchSource,
        expiry_date: Optional[datetime] = None,
        **fields,
    ) -> Tuple[CreditTransaction, Optional[CreditBatch]]:
        transaction, batches = await self.credit_portions(
            account, [CreditPortion(amount=amount, expiry_date=expiry_date)], now, source, **fields
        )
        return transaction, batches[0] if batches else None

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    async def reserve(
        self,
        account: CreditAccount,
        amount: Decimal,
        now: datetime,
        deadline: datetime,
        operation_code: Optional[str] = None,
        initiated_by: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Tuple[CreditReservation, CreditTransaction]:
        """
        Hold credits for a pending operation

        The held credits leave their batches (soonest-expiring first) and are
        recorded on the reservation so a release can put them back.
        """
        amount = to_credits(amount)
        if amount <= 0:
            raise ValueError(f"Reservation amount must be positive, got {amount}")
        if account.is_frozen:
            raise AccountFrozen(account.account_key, account.frozen_reason)

        await self.expire_due(account, now)
        pool = await self.batch_repo.list_pool(account.id, now, for_update=True)
        plan, shortfall = plan_draws(pool, amount)
        if shortfall > 0:
            raise InsufficientCredits(account.account_key, amount, to_credits(amount - shortfall), shortfall)

        for batch, take in plan:
            batch.remaining_amount = to_credits(batch.remaining_amount - take)
            await self.batch_repo.save(batch)

        reservation = await self.reservation_repo.create(
            CreditReservation(
                account_id=account.id,
                amount=amount,
                operation_code=operation_code,
                deadline=deadline,
                holds=[{"batch_id": batch.id, "amount": str(take)} for batch, take in plan],
                created_at=now,
            )
        )

        before = account.available_credits
        account.available_credits = to_credits(before - amount)
        account.reserved_credits = to_credits(account.reserved_credits + amount)
        transaction = await self._append(
            account,
            TransactionType.RESERVATION,
            amount,
            before,
            account.available_credits,
            now,
            reservation_id=reservation.id,
            operation_code=operation_code,
            initiated_by=initiated_by,
            description=description,
        )
        await self.account_repo.save(account)
        await self.alerts.check_low_balance(account, before, account.available_credits)
        return reservation, transaction

    async def release(
        self,
        account: CreditAccount,
        reservation: CreditReservation,
        now: datetime,
        status: ReservationStatus = ReservationStatus.RELEASED,
        initiated_by: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Return held credits to the batches they came from

        Credits returned to a batch that expired in the meantime are expired
        right away with their own expiry transaction.
        """
        if not reservation.is_open:
            raise InvalidReservationState(
                f"Reservation {reservation.id} is already {reservation.status.value}",
                {"reservation_id": reservation.id, "status": reservation.status.value},
            )

        held: Dict[int, Decimal] = {}
        for hold in reservation.holds:
            held[hold["batch_id"]] = held.get(hold["batch_id"], ZERO) + to_credits(hold["amount"])

        batches = await self.batch_repo.get_by_ids(list(held), for_update=True)
        returned = settle_debt(account.overage_debt, [held[batch.id] for batch in batches])
        for batch, amount in zip(batches, returned):
            if amount <= 0:
                continue
            batch.remaining_amount = to_credits(batch.remaining_amount + amount)
            await self.batch_repo.save(batch)

        amount = reservation.amount
        before = account.available_credits
        account.available_credits = to_credits(before + amount)
        account.reserved_credits = to_credits(account.reserved_credits - amount)

        reservation.status = status
        reservation.resolved_at = now
        await self.reservation_repo.save(reservation)

        transaction = await self._append(
            account,
            TransactionType.RELEASE,
            amount,
            before,
            account.available_credits,
            now,
            reservation_id=reservation.id,
            operation_code=reservation.operation_code,
            initiated_by=initiated_by,
            description=f"Reservation {reservation.id} {status.value}",
        )
        await self.account_repo.save(account)

        await self.expire_due(account, now)
        return transaction

    async def commit(
        self,
        account: CreditAccount,
        reservation: CreditReservation,
        now: datetime,
        initiated_by: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Convert a reservation into consumption

        The credits already left the available balance when they were
        reserved, so the consumption transaction keeps the balance unchanged.
        """
        if not reservation.is_open:
            raise InvalidReservationState(
                f"Reservation {reservation.id} is already {reservation.status.value}",
                {"reservation_id": reservation.id, "status": reservation.status.value},
            )
        if now > reservation.deadline:
            raise InvalidReservationState(
                f"Reservation {reservation.id} passed its deadline",
                {"reservation_id": reservation.id, "deadline": reservation.deadline.isoformat()},
            )

        amount = reservation.amount
        self._roll_period(account, now)
        account.reserved_credits = to_credits(account.reserved_credits - amount)
        account.total_consumed = to_credits(account.total_consumed + amount)
        account.current_period_consumed = to_credits(account.current_period_consumed + amount)

        balance = account.available_credits
        transaction = await self._append(
            account,
            TransactionType.CONSUMPTION,
            amount,
            balance,
            balance,
            now,
            reservation_id=reservation.id,
            operation_code=reservation.operation_code,
            initiated_by=initiated_by,
            description=description,
        )

        reservation.status = ReservationStatus.COMMITTED
        reservation.transaction_id = transaction.id
        reservation.resolved_at = now
        await self.reservation_repo.save(reservation)
        await self.account_repo.save(account)
        return transaction
