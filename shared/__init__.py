"""
Shared infrastructure for the order alerting engine.

This package contains code used by both the alerting and dispatch packages:
- Domain models (Order, Customer, Notification, etc.)
- Error taxonomy and settings
- In-memory order store and its change feed
"""

from shared.models import (
    Order,
    OrderStatus,
    Customer,
    Invoice,
    InvoiceItem,
    Notification,
    NotificationType,
    NotificationPriority,
    ChangeEvent,
    ChangeType,
)
from shared.errors import (
    OrderAlertsError,
    FetchError,
    SubscriptionError,
    TransportError,
    UnknownTemplate,
)
from shared.change_feed import ChangeFeed, Subscription
from shared.data_store import OrderStore, OrderSnapshotSource
from shared.settings import DispatchSettings, ReconciliationSettings

__all__ = [
    "Order",
    "OrderStatus",
    "Customer",
    "Invoice",
    "InvoiceItem",
    "Notification",
    "NotificationType",
    "NotificationPriority",
    "ChangeEvent",
    "ChangeType",
    "OrderAlertsError",
    "FetchError",
    "SubscriptionError",
    "TransportError",
    "UnknownTemplate",
    "ChangeFeed",
    "Subscription",
    "OrderStore",
    "OrderSnapshotSource",
    "DispatchSettings",
    "ReconciliationSettings",
]
