"""Alert Gateway Interface

Defines the contract for delivering credit alerts to the notification
collaborator (webhook, email, chat, ...).
"""

from abc import ABC, abstractmethod
from credit_engine.domain.credit_alert import CreditAlert


class AlertGateway(ABC):
    """
    Abstract alert gateway

    Implementations must never raise for delivery problems; they report
    failure through the return value so the ledger operation that raised the
    alert is never affected.
    """

    @abstractmethod
    async def send_alert(self, alert: CreditAlert) -> bool:
        """
        Deliver one alert

        Args:
            alert: Persisted CreditAlert

        Returns:
            True if the alert was delivered, False otherwise
        """
        pass
