"""
Due-date alert derivation.

Turns a snapshot of orders into the set of alerts an operator should see.
This is a pure function of (orders, now): no I/O, no clock reads, no shared
state, so two calls with the same inputs return identical notifications.

Classification, by whole days until the due date (rounded up):
- days < 0        -> overdue, high priority
- 0 <= days <= 5  -> due_soon, medium priority (due today counts as due soon)
- days > 5        -> nothing
Orders without a due date, and delivered/cancelled orders, never alert.
"""

import math
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional

from shared.models import (
    Notification,
    NotificationPriority,
    NotificationType,
    Order,
    notification_id,
)

DUE_SOON_WINDOW_DAYS = 5
SECONDS_PER_DAY = 24 * 60 * 60

TITLES = {
    NotificationType.OVERDUE: "Order Overdue",
    NotificationType.DUE_SOON: "Due Date Approaching",
}

PRIORITIES = {
    NotificationType.OVERDUE: NotificationPriority.HIGH,
    NotificationType.DUE_SOON: NotificationPriority.MEDIUM,
}

# Keyed by value: notifications store priority as a plain string
_PRIORITY_RANK = {
    NotificationPriority.HIGH.value: 0,
    NotificationPriority.MEDIUM.value: 1,
}


def _as_utc(now: datetime) -> datetime:
    # Naive timestamps are taken to be UTC
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def days_until_due(due_date: date, now: datetime) -> int:
    """
    Whole days from ``now`` until the start of ``due_date`` (UTC), rounded up.

    An order due today is 0 days away for the whole of today; it becomes
    -1 once the next day starts.
    """
    due_at = datetime.combine(due_date, time.min, tzinfo=timezone.utc)
    delta = (due_at - _as_utc(now)).total_seconds()
    return math.ceil(delta / SECONDS_PER_DAY)


def is_eligible(order: Order) -> bool:
    """True if the order can raise a due-date alert at all."""
    return order.due_date is not None and order.is_open


def classify(days: int, window_days: int = DUE_SOON_WINDOW_DAYS) -> Optional[NotificationType]:
    """Alert type for a days-until-due value, or None outside the window."""
    if days < 0:
        return NotificationType.OVERDUE
    if days <= window_days:
        return NotificationType.DUE_SOON
    return None


MESSAGES = {
    NotificationType.OVERDUE: "Order {order_number} for {customer_name} is {days} days overdue",
    NotificationType.DUE_SOON: "Order {order_number} for {customer_name} is due in {days} days",
}


def build_message(notification_type: NotificationType, order: Order, days: int) -> str:
    """
    Operator-facing alert text.

    One fixed wording per type: no singular
    form for 1 day and no special case for 0.
    """
    return MESSAGES[NotificationType(notification_type)].format(
        order_number=order.order_number,
        customer_name=order.customer_name,
        days=abs(days),
    )


def build_notification(order: Order, now: datetime,
                       window_days: int = DUE_SOON_WINDOW_DAYS) -> Optional[Notification]:
    """Alert for a single order, or None if it does not warrant one."""
    if not is_eligible(order):
        return None

    days = days_until_due(order.due_date, now)
    notification_type = classify(days, window_days)
    if notification_type is None:
        return None

    return Notification(
        id=notification_id(notification_type, order.id),
        type=notification_type,
        order_id=order.id,
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        order_number=order.order_number,
        due_date=order.due_date,
        days_until_due=days,
        priority=PRIORITIES[notification_type],
        title=TITLES[notification_type],
        message=build_message(notification_type, order, days),
        is_read=False,
        created_at=now,
    )


def compute_notifications(orders: Iterable[Order], now: datetime,
                          window_days: int = DUE_SOON_WINDOW_DAYS) -> list[Notification]:
    """
    Derive the alert set for an order snapshot.

    The result is keyed by notification id, so an order that appears more
    than once in the snapshot still yields a single alert (the last copy
    wins). Order of the returned list carries no meaning; use
    ``sort_by_urgency`` for display.
    """
    by_id: dict[str, Notification] = {}
    for order in orders:
        notification = build_notification(order, now, window_days)
        if notification is not None:
            by_id[notification.id] = notification
    return list(by_id.values())


def sort_by_urgency(notifications: Iterable[Notification]) -> list[Notification]:
    """Most urgent first: high priority before medium, then fewest days left."""
    return sorted(
        notifications,
        key=lambda n: (_PRIORITY_RANK.get(n.priority, len(_PRIORITY_RANK)), n.days_until_due, n.id),
    )
