from .unit_of_work import SqlAlchemyUnitOfWork
from .alert_gateway import (
    LoggingAlertGateway,
    WebhookAlertGateway,
    CompositeAlertGateway,
    create_alert_gateway,
)

__all__ = [
    "SqlAlchemyUnitOfWork",
    "LoggingAlertGateway",
    "WebhookAlertGateway",
    "CompositeAlertGateway",
    "create_alert_gateway",
]
