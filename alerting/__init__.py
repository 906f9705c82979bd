"""
Due-date alerting engine.

- computer: derives overdue / due-soon alerts from an order snapshot
- read_state: carries read/unread state across recomputations
- reconciliation: keeps the alert set fresh from push events and a timer
"""

from alerting.computer import compute_notifications, days_until_due, sort_by_urgency
from alerting.read_state import NotificationSummary, ReadStateTracker, merge_read_state
from alerting.reconciliation import ReconciliationHandle, ReconciliationLoop, start

__all__ = [
    "compute_notifications",
    "days_until_due",
    "sort_by_urgency",
    "NotificationSummary",
    "ReadStateTracker",
    "merge_read_state",
    "ReconciliationHandle",
    "ReconciliationLoop",
    "start",
]
