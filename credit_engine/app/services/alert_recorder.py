"""Alert Recorder

Persists threshold-crossing alerts inside the ledger transaction that caused
them and hands them to the AlertGateway once that transaction has committed.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from credit_engine.app.repositories.credit_alert_repository import CreditAlertRepository
from credit_engine.app.services.alert_gateway import AlertGateway
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_account import CreditAccount
from credit_engine.domain.credit_alert import AlertSeverity, AlertType, CreditAlert
from credit_engine.domain.credit_batch import CreditBatch
from credit_engine.domain.credit_transfer import CreditTransfer, TransferStatus
from credit_engine.domain.money import to_credits

logger = logging.getLogger(__name__)


class AlertRecorder:

    def __init__(self, alert_repo: CreditAlertRepository, default_low_balance_threshold: Decimal):
        self.alert_repo = alert_repo
        self.default_low_balance_threshold = to_credits(default_low_balance_threshold)
        self._pending: List[CreditAlert] = []

    @property
    def pending(self) -> List[CreditAlert]:
        return list(self._pending)

    async def record(self, alert: CreditAlert) -> CreditAlert:
        created = await self.alert_repo.create(alert)
        self._pending.append(created)
        logger.info(f"Recorded {alert.alert_type.value} alert for tenant {alert.tenant_id}: {alert.title}")
        return created

    def low_balance_threshold(self, account: CreditAccount) -> Optional[Decimal]:
        preferences = account.get_policy().notifications
        if not preferences.low_balance_alerts:
            return None
        if preferences.low_balance_threshold is not None:
            return to_credits(preferences.low_balance_threshold)
        return self.default_low_balance_threshold

    async def check_low_balance(self, account: CreditAccount, before: Decimal, after: Decimal) -> Optional[CreditAlert]:
        """Alert when the available balance crosses the threshold downward"""
        threshold = self.low_balance_threshold(account)
        if threshold is None or not (before >= threshold > after):
            return None

        severity = AlertSeverity.CRITICAL if after <= 0 else AlertSeverity.WARNING
        return await self.record(
            CreditAlert(
                tenant_id=account.tenant_id,
                entity_id=account.entity_id,
                account_id=account.id,
                alert_type=AlertType.LOW_BALANCE,
                severity=severity,
                title="Low credit balance",
                message=f"Available credits dropped to {after} (threshold {threshold})",
                current_value=after,
                threshold_value=threshold,
            )
        )

    async def overage_triggered(self, account: CreditAccount, shortfall: Decimal, limit: Optional[Decimal]) -> Optional[CreditAlert]:
        if not account.get_policy().notifications.overage_alerts:
            return None
        return await self.record(
            CreditAlert(
                tenant_id=account.tenant_id,
                entity_id=account.entity_id,
                account_id=account.id,
                alert_type=AlertType.OVERAGE_TRIGGERED,
                severity=AlertSeverity.WARNING,
                title="Credit overage used",
                message=f"Consumption exceeded the available pool by {shortfall}; "
                        f"overage this period is {account.overage_used}",
                current_value=account.overage_used,
                threshold_value=limit,
            )
        )

    async def expiry_warning(self, account: CreditAccount, batch: CreditBatch, days_remaining: int) -> Optional[CreditAlert]:
        if not account.get_policy().notifications.expiry_warnings:
            return None
        return await self.record(
            CreditAlert(
                tenant_id=account.tenant_id,
                entity_id=account.entity_id,
                account_id=account.id,
                alert_type=AlertType.EXPIRY_WARNING,
                severity=AlertSeverity.WARNING if days_remaining <= 7 else AlertSeverity.INFO,
                title=f"Credits expiring within {days_remaining} days",
                message=f"{batch.remaining_amount} credits from batch {batch.id} expire on "
                        f"{batch.expiry_date.isoformat()}",
                current_value=batch.remaining_amount,
                days_remaining=days_remaining,
                batch_id=batch.id,
            )
        )

    async def transfer_state_changed(
        self,
        transfer: CreditTransfer,
        old_status: Optional[TransferStatus],
        new_status: TransferStatus,
    ) -> CreditAlert:
        old_label = old_status.value if old_status else "new"
        return await self.record(
            CreditAlert(
                tenant_id=transfer.tenant_id,
                entity_id=transfer.source_entity_id,
                alert_type=AlertType.TRANSFER_STATE_CHANGED,
                severity=AlertSeverity.WARNING if new_status == TransferStatus.FAILED else AlertSeverity.INFO,
                title=f"Transfer {transfer.id} {new_status.value}",
                message=f"Transfer {transfer.id} of {transfer.requested_amount} credits moved "
                        f"from {old_label} to {new_status.value}",
                current_value=transfer.requested_amount,
                transfer_id=transfer.id,
            )
        )

    async def credits_granted(self, account: CreditAccount, amount: Decimal, title: str, message: str) -> CreditAlert:
        return await self.record(
            CreditAlert(
                tenant_id=account.tenant_id,
                entity_id=account.entity_id,
                account_id=account.id,
                alert_type=AlertType.CREDITS_GRANTED,
                severity=AlertSeverity.INFO,
                title=title,
                message=message,
                current_value=amount,
            )
        )

    def discard(self) -> None:
        """Forget alerts of a rolled back transaction"""
        self._pending.clear()

    async def deliver(self, gateway: AlertGateway, now: Optional[datetime] = None) -> int:
        """
        Send pending alerts through the gateway

        Must be called after the triggering transaction committed. Marks
        delivered alerts as notified; the caller commits that change.

        Returns:
            Number of alerts delivered
        """
        alerts, self._pending = self._pending, []
        delivered = 0
        for alert in alerts:
            try:
                sent = await gateway.send_alert(alert)
            except Exception as e:
                logger.error(f"Alert gateway {type(gateway).__name__} failed for alert {alert.id}: {e}")
                sent = False

            if sent:
                await self.alert_repo.mark_notified(alert.id, now or utc_now())
                delivered += 1
            else:
                logger.warning(f"Alert {alert.id} ({alert.alert_type.value}) was not delivered")
        return delivered
