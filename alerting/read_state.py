"""
Read/unread tracking for derived alerts.

Alerts are recomputed from scratch on every pass, so read state cannot live
on the alert itself. The tracker keeps a map from notification id to a read
mark and overlays it onto each freshly computed set.

Invariants:
- The unread count is always derived from the merged set, never kept as a
  separate counter. An alert that disappears (order delivered, due date
  moved) takes its unread contribution with it.
- Read marks for ids that are no longer computed are dropped on update.
- Marks made while a pass is in flight are applied by the next update.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Optional, Union

from shared.models import Notification, NotificationType, utcnow

logger = logging.getLogger("read_state")


@dataclass
class ReadMark:
    """Read flag plus the last time the user touched it."""
    is_read: bool
    last_seen: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class NotificationSummary:
    """Counts shown on the operator dashboard."""
    total: int
    unread: int
    overdue: int
    due_soon: int


ReadStateMap = Mapping[str, Union[bool, ReadMark]]


def _flag(value: Union[bool, ReadMark]) -> bool:
    if isinstance(value, ReadMark):
        return value.is_read
    return bool(value)


def merge_read_state(current: Iterable[Notification], read_state: ReadStateMap) -> list[Notification]:
    """
    Overlay read flags onto ``current`` by id.

    Ids missing from ``read_state`` are unread. Inputs are not modified.
    """
    return [n.with_read(_flag(read_state[n.id]) if n.id in read_state else False) for n in current]


def count_unread(notifications: Iterable[Notification]) -> int:
    return sum(1 for n in notifications if not n.is_read)


class ReadStateTracker:
    """
    Session-scoped read state for the current alert set.

    Example:
        tracker = ReadStateTracker()
        merged = tracker.update(compute_notifications(orders, now))
        tracker.mark_read(merged[0].id)
        tracker.unread_count   # derived from tracker.notifications
    """

    def __init__(self, clock=utcnow):
        self._clock = clock
        self._marks: dict[str, ReadMark] = {}
        self._computed: list[Notification] = []

    # =========================================================================
    # Merging
    # =========================================================================

    def merge(self, current: Iterable[Notification]) -> list[Notification]:
        """Overlay this tracker's read state onto ``current`` without storing it."""
        return merge_read_state(current, self._marks)

    def update(self, computed: Iterable[Notification]) -> list[Notification]:
        """
        Replace the current alert set with a freshly computed one.

        Read marks whose id is not in the new set are discarded.
        Returns the merged set.
        """
        self._computed = list(computed)
        live_ids = {n.id for n in self._computed}
        stale = [nid for nid in self._marks if nid not in live_ids]
        for nid in stale:
            del self._marks[nid]
        if stale:
            logger.debug(f"Dropped read state for {len(stale)} resolved notification(s)")
        return self.notifications

    # =========================================================================
    # Marking
    # =========================================================================

    def _known(self, notification_id: str) -> bool:
        return any(n.id == notification_id for n in self._computed)

    def _set(self, notification_id: str, is_read: bool) -> bool:
        if not self._known(notification_id):
            logger.debug(f"Ignoring mark for unknown notification {notification_id}")
            return False
        self._marks[notification_id] = ReadMark(is_read=is_read, last_seen=self._clock())
        return True

    def mark_read(self, notification_id: str) -> bool:
        """Mark one alert read. Returns False if it is not in the current set."""
        return self._set(notification_id, True)

    def mark_unread(self, notification_id: str) -> bool:
        """Mark one alert unread. Returns False if it is not in the current set."""
        return self._set(notification_id, False)

    def mark_all_read(self) -> int:
        """Mark every current alert read. Returns how many were unread."""
        newly_read = 0
        now = self._clock()
        for notification in self.notifications:
            if not notification.is_read:
                newly_read += 1
            self._marks[notification.id] = ReadMark(is_read=True, last_seen=now)
        return newly_read

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def notifications(self) -> list[Notification]:
        """The current alert set with read flags applied."""
        return self.merge(self._computed)

    @property
    def unread_count(self) -> int:
        return count_unread(self.notifications)

    @property
    def read_state(self) -> dict[str, bool]:
        """Snapshot of id -> read flag for ids the user has touched."""
        return {nid: mark.is_read for nid, mark in self._marks.items()}

    def get(self, notification_id: str) -> Optional[Notification]:
        for notification in self.notifications:
            if notification.id == notification_id:
                return notification
        return None

    def last_seen(self, notification_id: str) -> Optional[datetime]:
        mark = self._marks.get(notification_id)
        return mark.last_seen if mark else None

    def summary(self) -> NotificationSummary:
        merged = self.notifications
        return NotificationSummary(
            total=len(merged),
            unread=count_unread(merged),
            overdue=sum(1 for n in merged if n.type == NotificationType.OVERDUE),
            due_soon=sum(1 for n in merged if n.type == NotificationType.DUE_SOON),
        )
