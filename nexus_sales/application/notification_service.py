"""
Notification Service
====================

Read/update operations over the notification repository, plus a polling
monitor. Every interval the monitor asks the repository for unread
notifications newer than the last check and then fires the callback so
the caller can reload its feed.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

from ..infrastructure.config import get_settings
from ..infrastructure.persistence import Database, NotificationItem, utc_now

logger = logging.getLogger(__name__)


def _newest_first(items: List[NotificationItem]) -> List[NotificationItem]:
    return sorted(items, key=lambda n: n.timestamp or datetime.min, reverse=True)


class NotificationService:
    """
    Usage:
        service = NotificationService(db)
        service.start_monitoring(lambda updates: print(len(updates)))
        ...
        service.stop_monitoring()
    """

    def __init__(self, db: Database):
        self.db = db
        self._last_checked = utc_now()
        self._callback: Optional[Callable[[List[NotificationItem]], None]] = None
        self._interval = get_settings().notifications.poll_interval_seconds
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Queries ────────────────────────────────────────────────────

    def get_notifications(self, count: Optional[int] = None) -> List[NotificationItem]:
        if count is None:
            count = get_settings().notifications.default_count
        return self.db.get_notifications()[:count]

    def get_all_notifications(self) -> List[NotificationItem]:
        return self.db.get_notifications()

    def get_all_notifications_including_public(self, laptop_serial: str) -> List[NotificationItem]:
        private = self.db.get_notifications()
        public = self.db.get_unseen_public_notifications(laptop_serial)
        return _newest_first(private + public)

    def get_unread_count(self) -> int:
        return sum(1 for n in self.db.get_notifications() if not n.is_read)

    def get_total_unread_count(self, laptop_serial: str) -> int:
        return self.get_unread_count() + self.db.get_unseen_public_notifications_count(laptop_serial)

    # ── Updates ────────────────────────────────────────────────────

    def mark_as_read(self, notification_id: int):
        self.db.mark_notification_as_read(notification_id)

    def mark_all_as_read(self):
        for notification in self.db.get_notifications():
            if not notification.is_read:
                self.db.mark_notification_as_read(notification.id)

    def remove_notification(self, notification_id: int):
        """Delete the notification. Pins stay until the user unpins."""
        self.db.remove_notification(notification_id, keep_bookmarks=True)

    def mark_public_notification_seen(self, public_notification_id: int, laptop_serial: str):
        self.db.mark_public_notification_seen(public_notification_id, laptop_serial)

    # ── Monitoring ─────────────────────────────────────────────────

    @property
    def is_monitoring(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_monitoring(
        self,
        callback: Callable[[List[NotificationItem]], None],
        interval_seconds: Optional[float] = None,
    ):
        """Poll every interval_seconds and call callback after each check."""
        if self.is_monitoring:
            self.stop_monitoring()

        self._callback = callback
        if interval_seconds is not None:
            self._interval = interval_seconds
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._monitor_loop, name="notification-monitor", daemon=True)
        self._thread.start()
        logger.info(f"Notification monitoring started (every {self._interval}s)")

    def stop_monitoring(self):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
            logger.info("Notification monitoring stopped")

    def _monitor_loop(self):
        while not self._stop_event.wait(self._interval):
            self.check_for_new_notifications()

    def check_for_new_notifications(self) -> List[NotificationItem]:
        """Fetch updates since the last check and notify the callback."""
        with self._lock:
            try:
                updates = self.db.get_updates(self._last_checked)
                self._last_checked = utc_now()
            except Exception as e:
                logger.error(f"Error checking for notifications: {e}")
                return []

            if self._callback is not None:
                try:
                    self._callback(updates)
                except Exception as e:
                    logger.error(f"Notification callback failed: {e}")
            return updates
