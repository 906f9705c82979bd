"""
Domain models for the order due-date alerting engine.

Orders and customers are owned by the external order store; this package only
reads them. Notifications are derived from orders on every reconciliation pass
and are never persisted.

Design decisions:
- Using Pydantic for validation and serialization
- Order/customer records mirror the columns the store query returns
- Notification identity is derived from (type, order_id) so read state can be
  carried across recomputations
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums - Status values used across the domain
# =============================================================================

class OrderStatus(str, Enum):
    """Order lifecycle states as stored in the orders table."""
    PENDING = "pending"           # Order taken, work not started
    IN_PROGRESS = "in_progress"   # Being worked on
    READY = "ready"               # Ready for pickup
    DELIVERED = "delivered"       # Handed over to the customer
    CANCELLED = "cancelled"       # Order was cancelled


# Orders in these states never raise due-date alerts
CLOSED_ORDER_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class NotificationType(str, Enum):
    """Kinds of derived due-date alerts."""
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"


class NotificationPriority(str, Enum):
    """Alert priority. Overdue orders are always high."""
    HIGH = "high"
    MEDIUM = "medium"


class ChangeType(str, Enum):
    """Change event kinds pushed by the order store subscription."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


# =============================================================================
# External entities (read-only to the engine)
# =============================================================================

class Order(BaseModel):
    """
    Order record as returned by the snapshot query.

    The customer name (and mobile, when available) comes joined from the
    customers table so alerts can be built without a second lookup.
    """
    id: str = Field(..., description="Unique order identifier")
    order_number: str = Field(..., description="Human-facing order number")
    customer_id: str = Field(..., description="Reference to customer")
    customer_name: str = Field(default="", description="Joined customer display name")
    customer_mobile: Optional[str] = Field(default=None, description="Joined customer mobile")
    status: OrderStatus = Field(default=OrderStatus.PENDING, description="Lifecycle status")
    due_date: Optional[date] = Field(default=None, description="Committed due date")

    model_config = ConfigDict(use_enum_values=True)

    @property
    def is_open(self) -> bool:
        """True while the order has not been delivered or cancelled."""
        return self.status not in CLOSED_ORDER_STATUSES


class Customer(BaseModel):
    """Customer contact details used for outbound messages."""
    id: str = Field(..., description="Unique customer identifier")
    name: str = Field(..., description="Customer display name")
    mobile: str = Field(..., description="Mobile number, with or without country code")
    email: Optional[str] = Field(default=None, description="Email address")


class InvoiceItem(BaseModel):
    """A billed line on an invoice."""
    description: str
    total_price: float = Field(..., ge=0)


class Invoice(BaseModel):
    """Invoice summary used by the bill receipt message."""
    invoice_number: str = Field(..., description="Printed invoice number")
    total_amount: float = Field(..., ge=0, description="Invoice total")
    created_at: datetime = Field(default_factory=utcnow)
    items: list[InvoiceItem] = Field(default_factory=list)


# =============================================================================
# Derived entities
# =============================================================================

def notification_id(notification_type: str, order_id: str) -> str:
    """Stable identity of an alert: one per (type, order)."""
    if isinstance(notification_type, NotificationType):
        notification_type = notification_type.value
    return f"{notification_type}_{order_id}"


class Notification(BaseModel):
    """
    A due-date alert derived from one order.

    Notifications are rebuilt from scratch on every pass; only ``is_read``
    is carried over, by ``id``.
    """
    id: str = Field(..., description="Deterministic identity, '<type>_<order_id>'")
    type: NotificationType
    order_id: str
    customer_id: str
    customer_name: str
    order_number: str
    due_date: date
    days_until_due: int = Field(..., description="Whole days until due, negative when overdue")
    priority: NotificationPriority
    title: str
    message: str
    is_read: bool = False
    created_at: datetime

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    def with_read(self, is_read: bool) -> "Notification":
        """Copy of this notification with the read flag set."""
        if self.is_read == is_read:
            return self
        return self.model_copy(update={"is_read": is_read})


class ChangeEvent(BaseModel):
    """A row-level change pushed by the order store subscription."""
    event_type: ChangeType
    table: str = Field(default="orders")
    record: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(use_enum_values=True)

    def __str__(self) -> str:
        return f"ChangeEvent({self.event_type}, table={self.table}, id={self.record.get('id')})"
