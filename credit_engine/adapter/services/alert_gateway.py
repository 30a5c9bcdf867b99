"""Alert Gateway Implementations

Provides concrete implementations for delivering credit alerts.
"""

import logging
from typing import Any, Dict, Optional
import httpx
from credit_engine.app.services.alert_gateway import AlertGateway
from credit_engine.domain.credit_alert import CreditAlert

logger = logging.getLogger(__name__)


def alert_payload(alert: CreditAlert) -> Dict[str, Any]:
    return {
        "type": "credit_alert",
        "alert_id": alert.id,
        "alert_type": alert.alert_type.value,
        "severity": alert.severity.value,
        "tenant_id": alert.tenant_id,
        "entity_id": alert.entity_id,
        "title": alert.title,
        "message": alert.message,
        "current_value": str(alert.current_value) if alert.current_value is not None else None,
        "threshold_value": str(alert.threshold_value) if alert.threshold_value is not None else None,
        "days_remaining": alert.days_remaining,
        "batch_id": alert.batch_id,
        "transfer_id": alert.transfer_id,
        "created_at": alert.created_at.isoformat(),
    }


class LoggingAlertGateway(AlertGateway):
    """
    Alert gateway that logs alerts

    Useful for development and testing, or as a fallback.
    """

    async def send_alert(self, alert: CreditAlert) -> bool:
        logger.warning(
            f"[CREDIT ALERT] Tenant: {alert.tenant_id}, "
            f"Entity: {alert.entity_id or '-'}, "
            f"Type: {alert.alert_type.value}, "
            f"Severity: {alert.severity.value}, "
            f"{alert.message}"
        )
        return True


class WebhookAlertGateway(AlertGateway):
    """
    Alert gateway that posts alerts to an HTTP webhook

    Sends JSON payload to configured webhook URL.
    """

    def __init__(self, webhook_url: str, timeout: float = 10.0):
        """
        Initialize webhook alert gateway

        Args:
            webhook_url: URL to POST alerts to
            timeout: Request timeout in seconds
        """
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def send_alert(self, alert: CreditAlert) -> bool:
        """
        Send alert via webhook

        Returns:
            True if webhook call succeeded, False otherwise
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.webhook_url,
                    json=alert_payload(alert),
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                logger.info(f"Webhook alert sent for alert {alert.id} to {self.webhook_url}")
                return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook alert {alert.id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error sending webhook alert {alert.id}: {e}")
            return False


class CompositeAlertGateway(AlertGateway):
    """
    Alert gateway that delegates to multiple gateways

    Useful for sending to multiple channels (e.g., log + webhook).
    """

    def __init__(self, gateways: list[AlertGateway]):
        self.gateways = gateways

    async def send_alert(self, alert: CreditAlert) -> bool:
        """
        Send alert to all configured gateways

        Returns:
            True if at least one gateway succeeded, False otherwise
        """
        success = False
        for gateway in self.gateways:
            try:
                if await gateway.send_alert(alert):
                    success = True
            except Exception as e:
                logger.error(f"Alert gateway {type(gateway).__name__} failed: {e}")
        return success


def create_alert_gateway(webhook_url: Optional[str] = None) -> AlertGateway:
    """
    Factory function to create appropriate alert gateway

    Args:
        webhook_url: Optional webhook URL. If provided, creates composite
                     gateway with logging + webhook. Otherwise, just logging.
    """
    gateways: list[AlertGateway] = [LoggingAlertGateway()]

    if webhook_url:
        gateways.append(WebhookAlertGateway(webhook_url))

    if len(gateways) == 1:
        return gateways[0]

    return CompositeAlertGateway(gateways)
